"""
Invoice line aggregation, tax calculation and persistence.

Per line:
    base   = max(quantity * rate - discount, 0)        rounded to 2 places
    tax    = round(base * percent / 100, 2)            per tax component
    amount = base + tax

Totals sum the already rounded line values:
    subtotal    = round(sum(base), 2)
    tax_total   = round(sum(tax), 2)
    grand_total = round(subtotal + tax_total, 2)

Tax regimes are mutually exclusive: FLAT uses each line's own percent,
CGST_SGST and IGST use invoice-level percents, NONE taxes nothing.

Creating an invoice never changes unit status; INVOICED is set separately
by the operator.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from backoffice.exceptions import ValidationError, NotFoundError
from backoffice.models import Invoice, InvoiceItem, InventoryUnit, Product, Customer, UnitStatus, TaxRegime
from backoffice.schemas import InvoiceLineInput
from backoffice.services.unit_store import chunked, store_errors, DEFAULT_CHUNK_SIZE
from backoffice.utils.domain_metrics import invoices_created_total
from backoffice.utils.money import round_money, ZERO

logger = logging.getLogger(__name__)

HUNDRED = Decimal('100')


@dataclass(frozen=True)
class CalculatedLine:
    """An invoice line with its derived money values."""
    line: InvoiceLineInput
    base: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    tax: Decimal
    tax_percent: Decimal

    @property
    def amount(self) -> Decimal:
        return self.base + self.tax

    def to_dict(self):
        return {
            'product_id': self.line.product_id,
            'description': self.line.description,
            'hsn_code': self.line.hsn_code,
            'quantity': self.line.quantity,
            'rate': str(self.line.rate),
            'discount': str(self.line.discount),
            'tax_percent': str(self.tax_percent),
            'base': str(self.base),
            'cgst': str(self.cgst),
            'sgst': str(self.sgst),
            'igst': str(self.igst),
            'tax': str(self.tax),
            'amount': str(self.amount),
            'unit_ids': list(self.line.unit_ids),
        }


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    discount_total: Decimal
    cgst_total: Decimal
    sgst_total: Decimal
    igst_total: Decimal
    tax_total: Decimal
    grand_total: Decimal

    def to_dict(self):
        return {k: str(v) for k, v in self.__dict__.items()}


def _percent_of(base: Decimal, percent: Decimal) -> Decimal:
    if not percent:
        return ZERO
    return round_money(base * percent / HUNDRED)


def calculate_line(line: InvoiceLineInput, tax) -> CalculatedLine:
    """
    Price and tax a single line.

    Args:
        line: InvoiceLineInput
        tax: InvoiceTax (regime and invoice-level percents)
    """
    gross = Decimal(line.quantity) * line.rate - line.discount
    base = round_money(max(gross, ZERO))

    cgst = sgst = igst = flat = ZERO
    if tax.regime == TaxRegime.FLAT:
        percent = line.tax_percent
        flat = _percent_of(base, percent)
    elif tax.regime == TaxRegime.CGST_SGST:
        percent = tax.cgst_percent + tax.sgst_percent
        cgst = _percent_of(base, tax.cgst_percent)
        sgst = _percent_of(base, tax.sgst_percent)
    elif tax.regime == TaxRegime.IGST:
        percent = tax.igst_percent
        igst = _percent_of(base, tax.igst_percent)
    else:
        percent = ZERO

    return CalculatedLine(
        line=line, base=base, cgst=cgst, sgst=sgst, igst=igst,
        tax=flat + cgst + sgst + igst, tax_percent=percent
    )


def calculate_totals(calculated: List[CalculatedLine]) -> InvoiceTotals:
    """Sum already rounded line values."""
    subtotal = round_money(sum((c.base for c in calculated), ZERO))
    tax_total = round_money(sum((c.tax for c in calculated), ZERO))
    return InvoiceTotals(
        subtotal=subtotal,
        discount_total=round_money(sum((c.line.discount for c in calculated), ZERO)),
        cgst_total=round_money(sum((c.cgst for c in calculated), ZERO)),
        sgst_total=round_money(sum((c.sgst for c in calculated), ZERO)),
        igst_total=round_money(sum((c.igst for c in calculated), ZERO)),
        tax_total=tax_total,
        grand_total=round_money(subtotal + tax_total),
    )


def calculate_invoice(lines, tax):
    """Calculated lines plus totals for a set of InvoiceLineInput."""
    calculated = [calculate_line(line, tax) for line in lines]
    return calculated, calculate_totals(calculated)


@dataclass
class _UnitGroup:
    product_id: int
    description: str
    hsn_code: Optional[str]
    rate: Decimal
    tax_percent: Decimal
    discount: Decimal = ZERO
    unit_ids: list = field(default_factory=list)


class UnitInvoiceDraft:
    """
    Sold units grouped into invoice lines, one line per product.

    Each unit adds quantity 1 to its product's line. Rate and discount can be
    overridden per product; the override applies to the whole line.
    """

    def __init__(self):
        self._groups = OrderedDict()

    def __len__(self):
        return len(self._groups)

    @property
    def unit_ids(self):
        return [uid for group in self._groups.values() for uid in group.unit_ids]

    def add_unit(self, unit_id: int, product_id: int, description: str, rate: Decimal,
                 hsn_code: str = None, tax_percent: Decimal = ZERO):
        group = self._groups.get(product_id)
        if group is None:
            group = _UnitGroup(
                product_id=product_id,
                description=description,
                hsn_code=hsn_code,
                rate=rate,
                tax_percent=tax_percent,
            )
            self._groups[product_id] = group
        if unit_id in group.unit_ids:
            raise ValidationError(f'Unit {unit_id} is already on this invoice')
        group.unit_ids.append(unit_id)

    def remove_unit(self, unit_id: int):
        """Take one unit off its line; a line left with no units is dropped."""
        for product_id, group in self._groups.items():
            if unit_id in group.unit_ids:
                group.unit_ids.remove(unit_id)
                if not group.unit_ids:
                    del self._groups[product_id]
                return
        raise NotFoundError(f'Unit {unit_id} is not on this invoice')

    def set_override(self, product_id: int, rate: Decimal = None, discount: Decimal = None):
        group = self._groups.get(product_id)
        if group is None:
            raise NotFoundError(f'Product {product_id} is not on this invoice')
        if rate is not None:
            group.rate = rate
        if discount is not None:
            group.discount = discount

    def lines(self):
        return [
            InvoiceLineInput(
                description=group.description,
                quantity=len(group.unit_ids),
                rate=group.rate,
                discount=group.discount,
                tax_percent=group.tax_percent,
                hsn_code=group.hsn_code,
                product_id=group.product_id,
                unit_ids=tuple(group.unit_ids),
            )
            for group in self._groups.values()
        ]


def build_unit_draft(session, tenant_id: int, unit_ids, overrides=None, chunk_size: int = DEFAULT_CHUNK_SIZE):
    """
    Load the referenced units (tenant-scoped) and group them by product.

    The line rate defaults to the product's sale price, falling back to the
    unit's own price; HSN and tax percent come from the product.

    Raises:
        NotFoundError: A unit id does not exist in the tenant
        ValidationError: A unit is not SOLD
    """
    unit_ids = list(dict.fromkeys(unit_ids))
    if not unit_ids:
        raise ValidationError('Select at least one unit to invoice')

    units = {}
    with store_errors(session, 'Failed to load units for invoice'):
        for chunk in chunked(unit_ids, chunk_size):
            rows = (session.query(InventoryUnit, Product)
                    .join(Product, InventoryUnit.product_id == Product.id)
                    .filter(
                        InventoryUnit.tenant_id == tenant_id,
                        InventoryUnit.id.in_(chunk)
                    ).all())
            units.update({unit.id: (unit, product) for unit, product in rows})

    missing = [uid for uid in unit_ids if uid not in units]
    if missing:
        raise NotFoundError(f'Unit(s) not found: {", ".join(str(m) for m in missing[:10])}')

    draft = UnitInvoiceDraft()
    for uid in unit_ids:
        unit, product = units[uid]
        if unit.status != UnitStatus.SOLD:
            raise ValidationError(
                f'Unit {unit.unit_code} is {unit.status.value}; only SOLD units can be invoiced'
            )
        rate = product.sale_price if product.sale_price else (unit.price or ZERO)
        draft.add_unit(
            unit_id=unit.id,
            product_id=product.id,
            description=product.name,
            rate=Decimal(rate),
            hsn_code=product.hsn_code,
            tax_percent=Decimal(product.tax_percent or 0),
        )

    for product_id, override in (overrides or {}).items():
        draft.set_override(product_id, rate=override.rate, discount=override.discount)

    return draft


def invoice_lines_for(session, tenant_id: int, request):
    """Lines of an InvoiceRequest: manual rows, or rows grouped from units."""
    if request.is_custom:
        return list(request.lines)
    return build_unit_draft(session, tenant_id, request.unit_ids, request.overrides).lines()


def preview_invoice(session, tenant_id: int, request):
    """Calculate lines and totals without saving anything."""
    lines = invoice_lines_for(session, tenant_id, request)
    calculated, totals = calculate_invoice(lines, request.tax)
    return {
        'lines': [c.to_dict() for c in calculated],
        'totals': totals.to_dict(),
        'tax_regime': request.tax.regime.value,
        'is_custom': request.is_custom,
    }


def next_invoice_number(session, tenant_id: int) -> int:
    current = session.query(func.max(Invoice.invoice_number)).filter(
        Invoice.tenant_id == tenant_id
    ).scalar()
    return (current or 0) + 1


def create_invoice(session, ctx, request) -> Invoice:
    """
    Persist an invoice built from manual lines or sold units.

    Steps:
    1. Validate customer name and line set
    2. Calculate lines and totals
    3. Assign the next per-tenant invoice number
    4. Insert header + items and commit

    Args:
        session: SQLAlchemy session
        ctx: TenantContext
        request: InvoiceRequest

    Returns:
        The created Invoice

    Raises:
        ValidationError: Missing customer name, no lines, non-SOLD unit
        NotFoundError: Unknown unit or customer
    """
    if not request.customer_name:
        raise ValidationError('Customer name is required')
    if request.due_date and request.due_date < request.invoice_date:
        raise ValidationError('Due date cannot be before the invoice date')

    lines = invoice_lines_for(session, ctx.tenant_id, request)
    if not lines:
        raise ValidationError('Add at least one line to the invoice')

    if request.customer_id is not None:
        customer = session.query(Customer).filter(
            Customer.id == request.customer_id,
            Customer.tenant_id == ctx.tenant_id
        ).first()
        if not customer:
            raise NotFoundError(f'Customer {request.customer_id} not found')

    calculated, totals = calculate_invoice(lines, request.tax)

    try:
        invoice = Invoice(
            tenant_id=ctx.tenant_id,
            invoice_number=next_invoice_number(session, ctx.tenant_id),
            invoice_date=request.invoice_date,
            due_date=request.due_date,
            customer_id=request.customer_id,
            customer_name=request.customer_name,
            billing_address=request.billing_address,
            phone=request.phone,
            email=request.email,
            gst_number=request.gst_number,
            tax_regime=request.tax.regime,
            cgst_percent=request.tax.cgst_percent,
            sgst_percent=request.tax.sgst_percent,
            igst_percent=request.tax.igst_percent,
            subtotal=totals.subtotal,
            discount_total=totals.discount_total,
            cgst_amount=totals.cgst_total,
            sgst_amount=totals.sgst_total,
            igst_amount=totals.igst_total,
            tax_total=totals.tax_total,
            grand_total=totals.grand_total,
            notes=request.notes,
            is_custom=request.is_custom,
        )
        session.add(invoice)
        session.flush()

        for position, c in enumerate(calculated):
            session.add(InvoiceItem(
                invoice_id=invoice.id,
                position=position,
                product_id=c.line.product_id,
                description=c.line.description,
                hsn_code=c.line.hsn_code,
                quantity=c.line.quantity,
                rate=c.line.rate,
                discount=c.line.discount,
                tax_percent=c.tax_percent,
                line_subtotal=c.base,
                tax_amount=c.tax,
                line_total=c.amount,
                unit_ids=','.join(str(uid) for uid in c.line.unit_ids) or None,
            ))

        session.commit()
    except IntegrityError:
        # Two invoices raced for the same number
        session.rollback()
        raise ValidationError('Invoice number already taken, please retry')

    invoices_created_total.labels(source='custom' if request.is_custom else 'units').inc()
    logger.info(
        f"Invoice #{invoice.invoice_number} created for tenant {ctx.tenant_id}: "
        f"{len(calculated)} line(s), total {totals.grand_total}"
    )
    return invoice


def get_invoice(session, tenant_id: int, invoice_id: int) -> Invoice:
    invoice = session.query(Invoice).filter(
        Invoice.id == invoice_id,
        Invoice.tenant_id == tenant_id
    ).first()
    if not invoice:
        raise NotFoundError(f'Invoice {invoice_id} not found')
    return invoice


def list_invoices(session, tenant_id: int, limit: int = 50, offset: int = 0):
    """Invoices of a tenant, newest number first."""
    return (session.query(Invoice)
            .filter(Invoice.tenant_id == tenant_id)
            .order_by(Invoice.invoice_number.desc())
            .limit(limit)
            .offset(offset)
            .all())
