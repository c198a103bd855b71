"""Invoice models - header and item rows."""
import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Numeric, Date, DateTime, Enum, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from backoffice.database import Base


class TaxRegime(enum.Enum):
    """How line tax is computed; regimes are mutually exclusive."""
    FLAT = "FLAT"            # each line's own tax percent
    CGST_SGST = "CGST_SGST"  # intra-state split
    IGST = "IGST"            # inter-state
    NONE = "NONE"


class Invoice(Base):
    """Sales invoice issued by a vendor."""

    __tablename__ = 'invoice'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'invoice_number', name='uq_invoice_tenant_number'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenant.id'), nullable=False, index=True)
    invoice_number = Column(Integer, nullable=False)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)

    customer_id = Column(Integer, ForeignKey('customer.id'), nullable=True)
    customer_name = Column(String(200), nullable=False)
    billing_address = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    gst_number = Column(String(32), nullable=True)

    tax_regime = Column(Enum(TaxRegime, name='tax_regime'), nullable=False, default=TaxRegime.FLAT)
    cgst_percent = Column(Numeric(5, 2), nullable=False, default=0)
    sgst_percent = Column(Numeric(5, 2), nullable=False, default=0)
    igst_percent = Column(Numeric(5, 2), nullable=False, default=0)

    subtotal = Column(Numeric(12, 2), nullable=False)
    discount_total = Column(Numeric(12, 2), nullable=False, default=0)
    cgst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    sgst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    igst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_total = Column(Numeric(12, 2), nullable=False)
    grand_total = Column(Numeric(12, 2), nullable=False)

    notes = Column(Text, nullable=True)
    is_custom = Column(Boolean, nullable=False, default=True)  # manual lines vs. built from units
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    items = relationship('InvoiceItem', back_populates='invoice', cascade='all, delete-orphan',
                         order_by='InvoiceItem.position')

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_number': self.invoice_number,
            'invoice_date': self.invoice_date.isoformat(),
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'customer_id': self.customer_id,
            'customer_name': self.customer_name,
            'billing_address': self.billing_address,
            'phone': self.phone,
            'email': self.email,
            'gst_number': self.gst_number,
            'tax_regime': self.tax_regime.value,
            'cgst_percent': str(self.cgst_percent),
            'sgst_percent': str(self.sgst_percent),
            'igst_percent': str(self.igst_percent),
            'subtotal': str(self.subtotal),
            'discount_total': str(self.discount_total),
            'cgst_amount': str(self.cgst_amount),
            'sgst_amount': str(self.sgst_amount),
            'igst_amount': str(self.igst_amount),
            'tax_total': str(self.tax_total),
            'grand_total': str(self.grand_total),
            'notes': self.notes,
            'is_custom': self.is_custom,
            'items': [item.to_dict() for item in self.items],
        }

    def __repr__(self):
        return f"<Invoice(id={self.id}, number={self.invoice_number}, total={self.grand_total})>"


class InvoiceItem(Base):
    """Priced, taxed line of an invoice."""

    __tablename__ = 'invoice_item'

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey('invoice.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(Integer, ForeignKey('product.id'), nullable=True)
    description = Column(String(255), nullable=False)
    hsn_code = Column(String(20), nullable=True)
    quantity = Column(Integer, nullable=False)
    rate = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_percent = Column(Numeric(5, 2), nullable=False, default=0)
    line_subtotal = Column(Numeric(12, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)
    unit_ids = Column(Text, nullable=True)  # comma separated unit ids the line was built from

    invoice = relationship('Invoice', back_populates='items')

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'description': self.description,
            'hsn_code': self.hsn_code,
            'quantity': self.quantity,
            'rate': str(self.rate),
            'discount': str(self.discount),
            'tax_percent': str(self.tax_percent),
            'line_subtotal': str(self.line_subtotal),
            'tax_amount': str(self.tax_amount),
            'line_total': str(self.line_total),
            'unit_ids': [int(x) for x in self.unit_ids.split(',')] if self.unit_ids else [],
        }
