"""
Bulk audit trail for unit delete/edit operations.
"""
from backoffice.models import UnitBulkAudit, BulkOperation, BulkScopeKind
from backoffice.schemas import FilteredScope
from backoffice.services.unit_store import store_errors
from datetime import datetime
import json
import logging

logger = logging.getLogger(__name__)


def record_bulk_operation(
    session,
    ctx,
    product_id: int,
    operation: BulkOperation,
    scope,
    target_count: int,
    verified_in_target: int,
    affected_count: int,
    chunks_applied: int,
    is_admin_override: bool = False,
    skipped_verified_units: int = 0,
    patch: dict = None,
    completed: bool = True
):
    """
    Append one audit record and commit it.

    Args:
        session: Database session
        ctx: TenantContext of the caller
        product_id: Product whose units were targeted
        operation: BulkOperation
        scope: SelectedScope or FilteredScope
        target_count: Rows in scope when the operation started
        verified_in_target: Verified rows in scope when the operation started
        affected_count: Rows actually deleted/updated
        chunks_applied: Chunks committed before the operation ended
        is_admin_override: Whether override credentials were used
        skipped_verified_units: Verified rows left untouched
        patch: Serialized patch (EDIT only)
        completed: False when a chunk failed part way

    Returns:
        The created UnitBulkAudit
    """
    filtered = isinstance(scope, FilteredScope)
    entry = UnitBulkAudit(
        tenant_id=ctx.tenant_id,
        product_id=product_id,
        operation=operation,
        scope_kind=BulkScopeKind.FILTERED if filtered else BulkScopeKind.SELECTED,
        filter_json=scope.unit_filter.to_json() if filtered else None,
        patch_json=json.dumps(patch, sort_keys=True) if patch else None,
        target_count=target_count,
        verified_in_target=verified_in_target,
        affected_count=affected_count,
        skipped_verified_units=skipped_verified_units,
        chunks_applied=chunks_applied,
        completed=completed,
        actor_name=ctx.actor_name,
        actor_user_id=ctx.actor_user_id,
        is_admin_override=is_admin_override,
        created_at=datetime.utcnow()
    )

    with store_errors(session, 'Failed to write bulk audit record'):
        session.add(entry)
        session.commit()

    logger.info(
        f"Bulk audit: {operation.value} {affected_count}/{target_count} units "
        f"of product {product_id} by {ctx.actor_name} (override={is_admin_override})"
    )
    return entry


def get_bulk_audit_log(session, tenant_id: int, product_id: int = None, limit: int = 100, offset: int = 0):
    """
    Retrieve bulk audit records for a tenant, newest first.

    Args:
        session: Database session
        tenant_id: Tenant ID
        product_id: Optional product filter
        limit: Max number of results
        offset: Pagination offset
    """
    query = session.query(UnitBulkAudit).filter(
        UnitBulkAudit.tenant_id == tenant_id
    )

    if product_id:
        query = query.filter(UnitBulkAudit.product_id == product_id)

    query = query.order_by(UnitBulkAudit.created_at.desc(), UnitBulkAudit.id.desc())
    return query.limit(limit).offset(offset).all()
