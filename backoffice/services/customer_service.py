"""Customer resolution for sale and demo events."""
import logging

from sqlalchemy import or_, func
from sqlalchemy.exc import SQLAlchemyError

from backoffice.exceptions import ValidationError, NotFoundError
from backoffice.models import Customer
from backoffice.services.unit_store import store_errors, contains_pattern, LIKE_ESCAPE

logger = logging.getLogger(__name__)

SUGGESTION_LIMIT = 8
SUGGESTION_MIN_CHARS = 2


def resolve_or_create_customer(session, tenant_id: int, payload) -> int:
    """
    Find or create the customer for a sale/demo event (tenant-scoped).

    Resolution order:
    1. A customer id picked from the suggestion list is used as-is
       (it only has to belong to the tenant).
    2. Exact match on phone OR email; when several customers match, the most
       recently created wins (ties broken by highest id).
    3. Otherwise a new customer row is added. Blank optional fields are
       stored as NULL.

    The new row is flushed, not committed; the caller commits it together
    with the unit update.

    Args:
        session: SQLAlchemy session
        tenant_id: Tenant ID
        payload: CustomerPayload

    Returns:
        customer_id: ID of the resolved customer

    Raises:
        ValidationError: If the name is blank
        NotFoundError: If a selected customer id is not in the tenant
    """
    if payload is None or not (payload.name or '').strip():
        raise ValidationError('Customer name is required')

    name = payload.name.strip()
    phone = (payload.phone or '').strip() or None
    email = (payload.email or '').strip() or None
    address = (payload.address or '').strip() or None

    with store_errors(session, 'Failed to resolve customer'):
        if payload.customer_id is not None:
            customer = session.query(Customer).filter(
                Customer.id == payload.customer_id,
                Customer.tenant_id == tenant_id
            ).first()
            if not customer:
                raise NotFoundError(f'Customer {payload.customer_id} not found')
            return customer.id

        if phone or email:
            matches = []
            if phone:
                matches.append(Customer.phone == phone)
            if email:
                matches.append(Customer.email == email)

            existing = (session.query(Customer)
                        .filter(Customer.tenant_id == tenant_id, or_(*matches))
                        .order_by(Customer.created_at.desc(), Customer.id.desc())
                        .first())
            if existing:
                logger.info(f"Reusing customer {existing.id} for tenant {tenant_id}")
                return existing.id

        customer = Customer(
            tenant_id=tenant_id,
            name=name,
            phone=phone,
            email=email,
            address=address
        )
        session.add(customer)
        session.flush()  # Get ID without committing

    logger.info(f"Created customer {customer.id} for tenant {tenant_id}")
    return customer.id


def suggest_customers(session, tenant_id: int, query: str, limit: int = SUGGESTION_LIMIT):
    """
    Typeahead search over name, phone and email (case-insensitive substring).

    Read-only. Failures are logged and degrade to an empty list so a broken
    suggestion request never blocks the sale flow.
    """
    text = (query or '').strip().lower()
    if len(text) < SUGGESTION_MIN_CHARS:
        return []

    pattern = contains_pattern(text)
    try:
        return (session.query(Customer)
                .filter(
                    Customer.tenant_id == tenant_id,
                    or_(
                        func.lower(Customer.name).like(pattern, escape=LIKE_ESCAPE),
                        func.lower(Customer.phone).like(pattern, escape=LIKE_ESCAPE),
                        func.lower(Customer.email).like(pattern, escape=LIKE_ESCAPE)
                    ))
                .order_by(Customer.created_at.desc(), Customer.id.desc())
                .limit(limit)
                .all())
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning(f"Customer suggestion search failed: {e}")
        return []
