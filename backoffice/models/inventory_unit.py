"""Inventory unit model - one physically trackable item of a product."""
import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Boolean, Numeric, Date, DateTime, Enum, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from backoffice.database import Base


class UnitStatus(enum.Enum):
    """Unit lifecycle status."""
    IN_STOCK = "IN_STOCK"
    DEMO = "DEMO"
    SOLD = "SOLD"
    RETURNED = "RETURNED"
    INVOICED = "INVOICED"
    OUT_OF_STOCK = "OUT_OF_STOCK"


# Statuses that carry customer attribution
ATTRIBUTED_STATUSES = frozenset({UnitStatus.SOLD, UnitStatus.DEMO})


class InventoryUnit(Base):
    """
    A single unit of a product.

    Customer attribution (customer_id, customer_name, customer_phone,
    attributed_at) is only set while the unit is SOLD or DEMO.
    Verified units are locked against ordinary edit and delete.
    """

    __tablename__ = 'inventory_unit'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'unit_code', name='uq_inventory_unit_tenant_code'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenant.id'), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey('product.id'), nullable=False, index=True)
    unit_code = Column(String(80), nullable=False)
    status = Column(Enum(UnitStatus, name='unit_status'), nullable=False, default=UnitStatus.IN_STOCK)
    manufacture_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=True)
    price = Column(Numeric(12, 2), nullable=True)

    # Sale / demo attribution
    customer_id = Column(Integer, ForeignKey('customer.id'), nullable=True)
    customer_name = Column(String(200), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    attributed_at = Column(DateTime, nullable=True)

    # Verification lock
    verified = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    product = relationship('Product')
    customer = relationship('Customer')

    def is_expired(self, today):
        return self.expiry_date is not None and self.expiry_date < today

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'unit_code': self.unit_code,
            'status': self.status.value,
            'manufacture_date': self.manufacture_date.isoformat() if self.manufacture_date else None,
            'expiry_date': self.expiry_date.isoformat() if self.expiry_date else None,
            'price': str(self.price) if self.price is not None else None,
            'customer_id': self.customer_id,
            'customer_name': self.customer_name,
            'customer_phone': self.customer_phone,
            'attributed_at': self.attributed_at.isoformat() if self.attributed_at else None,
            'verified': self.verified,
            'verified_at': self.verified_at.isoformat() if self.verified_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<InventoryUnit(id={self.id}, code='{self.unit_code}', status={self.status.value})>"
