"""
Unit lifecycle service - status transitions and single-unit operations.

STATES:
    IN_STOCK, DEMO, SOLD, RETURNED, INVOICED, OUT_OF_STOCK

Every state is reachable from every other one; the graph is guarded, not
ordered:

    - verified units are locked: any mutation needs override credentials
    - SOLD / DEMO need a customer; the resolved customer and a snapshot of
      its name/phone are written with the status
    - leaving SOLD / DEMO clears the attribution fields in the same write
    - RETURNED always needs override credentials (it reopens sold stock)
    - target == current status is a no-op

The lock check and the write are separate statements. A unit verified
between the two is still written; callers accept that race.
"""
import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from backoffice.exceptions import ValidationError, NotFoundError, LockedError
from backoffice.models import Product, UnitStatus, ATTRIBUTED_STATUSES
from backoffice.services.customer_service import resolve_or_create_customer
from backoffice.services.unit_store import UnitStore, DEFAULT_CHUNK_SIZE, store_errors
from backoffice.utils.domain_metrics import unit_transitions_total

logger = logging.getLogger(__name__)

CLEARED_ATTRIBUTION = {
    'customer_id': None,
    'customer_name': None,
    'customer_phone': None,
    'attributed_at': None,
}

BATCH_CODE_WIDTH = 3
MAX_BATCH_SIZE = 1000


def get_product(session, tenant_id: int, product_id: int) -> Product:
    """Load a product of the tenant or raise NotFoundError."""
    with store_errors(session, 'Failed to load product'):
        product = session.query(Product).filter(
            Product.id == product_id,
            Product.tenant_id == tenant_id
        ).first()
    if not product:
        raise NotFoundError(f'Product {product_id} not found')
    return product


def unit_store_for(session, ctx, product_id: int, chunk_size: int = DEFAULT_CHUNK_SIZE, today=None) -> UnitStore:
    """UnitStore for a product after checking the product belongs to the tenant."""
    get_product(session, ctx.tenant_id, product_id)
    return UnitStore(session, ctx.tenant_id, product_id, chunk_size=chunk_size, today=today)


def _require_unit(store: UnitStore, unit_id: int):
    unit = store.get(unit_id)
    if unit is None:
        raise NotFoundError(f'Unit {unit_id} not found')
    return unit


def ensure_unlocked(gate, unit, credentials, action: str):
    """
    Raise LockedError for a verified unit unless the override is valid.

    Returns True when the override was checked and granted.
    """
    if not unit.verified:
        return False
    if not gate.permits(credentials, f'{action} on verified unit {unit.unit_code}'):
        raise LockedError(
            f'Unit {unit.unit_code} is verified and locked. Admin credentials are required.',
            payload={'unit_id': unit.id}
        )
    return True


def _apply(store: UnitStore, unit, values: dict):
    """Conditional single-row update + commit; the row must still exist."""
    updated = store.update(unit.id, values)
    if not updated:
        store.session.rollback()
        raise NotFoundError(f'Unit {unit.id} not found')
    with store_errors(store.session, 'Failed to save unit'):
        store.session.commit()
    return store.get(unit.id)


def transition_unit(session, ctx, gate, product_id: int, unit_id: int, request, now: datetime = None):
    """
    Move one unit to ``request.target``.

    Args:
        session: SQLAlchemy session
        ctx: TenantContext
        gate: OverrideGate
        product_id: Product the unit must belong to
        unit_id: Unit ID
        request: TransitionRequest (target, customer payload, credentials)
        now: Event timestamp (defaults to utcnow)

    Returns:
        The unit as stored after the transition

    Raises:
        NotFoundError: Product or unit not in the caller's scope
        LockedError: Unit is verified and no valid override was given
        AuthorizationError: RETURNED without valid override credentials
        ValidationError: SOLD/DEMO without a customer name
    """
    store = unit_store_for(session, ctx, product_id)
    unit = _require_unit(store, unit_id)
    target = request.target

    overridden = ensure_unlocked(gate, unit, request.credentials, f'transition to {target.value}')

    if unit.status == target:
        return unit

    if target == UnitStatus.RETURNED and not overridden:
        gate.check(request.credentials, f'RETURNED transition of unit {unit.unit_code}')

    if target in ATTRIBUTED_STATUSES:
        customer = request.customer
        if customer is None or not (customer.name or '').strip():
            raise ValidationError('Customer name is required')

        customer_id = resolve_or_create_customer(session, ctx.tenant_id, customer)
        values = {
            'status': target,
            'customer_id': customer_id,
            'customer_name': customer.name.strip(),
            'customer_phone': (customer.phone or '').strip() or None,
            'attributed_at': now or datetime.utcnow(),
        }
    else:
        values = dict(CLEARED_ATTRIBUTION, status=target)

    previous = unit.status
    unit = _apply(store, unit, values)

    unit_transitions_total.labels(target_status=target.value).inc()
    logger.info(
        f"Unit {unit.unit_code} (tenant {ctx.tenant_id}) {previous.value} -> {target.value} "
        f"by {ctx.actor_name}"
    )
    return unit


def create_unit(session, ctx, product_id: int, data):
    """
    Add a single unit (manual add or scan).

    SOLD and DEMO cannot be initial states because they need a customer.
    """
    if data.status in ATTRIBUTED_STATUSES:
        raise ValidationError(f'New units cannot start as {data.status.value}; use a status change instead')

    store = unit_store_for(session, ctx, product_id)
    if store.existing_codes([data.unit_code]):
        raise ValidationError(f'Unit code "{data.unit_code}" already exists')

    try:
        unit = store.insert(
            unit_code=data.unit_code,
            manufacture_date=data.manufacture_date,
            expiry_date=data.expiry_date,
            price=data.price,
            status=data.status,
        )
        session.commit()
    except IntegrityError:
        # Another request took the code between the check and the insert
        session.rollback()
        raise ValidationError(f'Unit code "{data.unit_code}" already exists')

    logger.info(f"Unit {unit.unit_code} added to product {product_id} (tenant {ctx.tenant_id})")
    return unit


def batch_unit_codes(base_code: str, quantity: int):
    return [f'{base_code}-{i:0{BATCH_CODE_WIDTH}d}' for i in range(1, quantity + 1)]


def create_unit_batch(session, ctx, product_id: int, data):
    """
    Add ``data.quantity`` units coded ``BASE-001``, ``BASE-002``, ...

    All or nothing: if any generated code already exists nothing is added.
    """
    if data.quantity > MAX_BATCH_SIZE:
        raise ValidationError(f'At most {MAX_BATCH_SIZE} units can be added at once')

    store = unit_store_for(session, ctx, product_id)
    codes = batch_unit_codes(data.base_code, data.quantity)

    taken = store.existing_codes(codes)
    if taken:
        sample = ', '.join(sorted(taken)[:5])
        raise ValidationError(f'Unit codes already exist: {sample}', payload={'existing_count': len(taken)})

    try:
        units = store.insert_many([
            {
                'unit_code': code,
                'manufacture_date': data.manufacture_date,
                'expiry_date': data.expiry_date,
                'price': data.price,
                'status': UnitStatus.IN_STOCK,
            }
            for code in codes
        ])
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ValidationError('Unit codes already exist')

    logger.info(f"{len(units)} units added to product {product_id} (tenant {ctx.tenant_id})")
    return units


def find_unit_by_code(session, ctx, product_id: int, unit_code: str):
    """Scan lookup: exact code within the product."""
    code = (unit_code or '').strip()
    if not code:
        raise ValidationError('Unit code is required')
    unit = unit_store_for(session, ctx, product_id).find_by_code(code)
    if unit is None:
        raise NotFoundError('Unit not found for this product')
    return unit


def edit_unit(session, ctx, gate, product_id: int, unit_id: int, edit):
    """Change dates/price of one unit; verified units need the override."""
    values = edit.values()
    if not values:
        raise ValidationError('Nothing to update')

    store = unit_store_for(session, ctx, product_id)
    unit = _require_unit(store, unit_id)
    ensure_unlocked(gate, unit, edit.credentials, 'edit')

    return _apply(store, unit, values)


def delete_unit(session, ctx, gate, product_id: int, unit_id: int, credentials=None):
    """Delete one unit; verified units need the override."""
    store = unit_store_for(session, ctx, product_id)
    unit = _require_unit(store, unit_id)
    ensure_unlocked(gate, unit, credentials, 'delete')

    code = unit.unit_code
    if not store.delete(unit.id):
        session.rollback()
        raise NotFoundError(f'Unit {unit_id} not found')
    with store_errors(session, 'Failed to delete unit'):
        session.commit()

    logger.info(f"Unit {code} deleted from product {product_id} by {ctx.actor_name}")


def set_verified(session, ctx, gate, product_id: int, unit_id: int, verified: bool,
                 credentials=None, now: datetime = None):
    """
    Verify (lock) or un-verify a unit.

    Verifying is open to any caller; un-verifying is a mutation of a locked
    unit and needs the override.
    """
    store = unit_store_for(session, ctx, product_id)
    unit = _require_unit(store, unit_id)

    if unit.verified == verified:
        return unit

    if verified:
        values = {'verified': True, 'verified_at': now or datetime.utcnow()}
    else:
        ensure_unlocked(gate, unit, credentials, 'un-verify')
        values = {'verified': False, 'verified_at': None}

    unit = _apply(store, unit, values)
    logger.info(f"Unit {unit.unit_code} verified={verified} by {ctx.actor_name}")
    return unit


def list_units(session, ctx, product_id: int, unit_filter=None, sort='created_desc', page=1, page_size=20,
               today=None):
    """Page of units plus the total matching the filter."""
    store = unit_store_for(session, ctx, product_id, today=today)
    page = max(1, page)
    units = store.find(unit_filter, sort=sort, offset=(page - 1) * page_size, limit=page_size)
    total = store.count(unit_filter)
    return units, total


def status_counts(session, ctx, product_id: int):
    """Totals per status; every status is present (zero when empty)."""
    counts = unit_store_for(session, ctx, product_id).status_counts()
    return {status.value: counts.get(status, 0) for status in UnitStatus}
