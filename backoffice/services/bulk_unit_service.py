"""
Bulk mutation engine - edit or delete many units of one product at once.

A scope is either an explicit id list (SelectedScope) or a UnitFilter
evaluated at execution time (FilteredScope). Both are always narrowed to the
caller's tenant and product.

Verified units:
    - bulk edit rejects the whole batch with LockedError when any row in
      scope is verified, unless override credentials are supplied; with
      them the verified rows are edited too
    - bulk delete needs an explicit mode when verified rows are in scope:
      SKIP_VERIFIED (no credentials) or DELETE_ALL (credentials required)

Every execution appends exactly one UnitBulkAudit record, including runs
that stop part way because a chunk failed.
"""
import logging
from dataclasses import dataclass
from datetime import date

from backoffice.exceptions import ValidationError, LockedError, StoreError
from backoffice.models import InventoryUnit, UnitStatus, BulkOperation
from backoffice.schemas import SelectedScope, BulkDeleteMode
from backoffice.services.audit_service import record_bulk_operation
from backoffice.services.unit_lifecycle_service import unit_store_for, CLEARED_ATTRIBUTION
from backoffice.services.unit_store import DEFAULT_CHUNK_SIZE
from backoffice.utils.domain_metrics import bulk_operations_total, bulk_rows_affected_total

logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATION = 'DELETE'


@dataclass
class BulkResult:
    """Outcome of a bulk run, mirrored in the audit record."""
    target_count: int
    verified_in_target: int
    affected_count: int
    chunks_applied: int
    skipped_verified_units: int = 0
    is_admin_override: bool = False
    audit_id: int = None

    def to_dict(self):
        return {
            'target_count': self.target_count,
            'verified_in_target': self.verified_in_target,
            'affected_count': self.affected_count,
            'chunks_applied': self.chunks_applied,
            'skipped_verified_units': self.skipped_verified_units,
            'is_admin_override': self.is_admin_override,
            'audit_id': self.audit_id,
        }


def _scope_args(scope):
    if isinstance(scope, SelectedScope):
        return {'ids': scope.ids}
    return {'unit_filter': scope.unit_filter}


def _count_scope(store, scope, verified=None):
    if isinstance(scope, SelectedScope):
        return store.count_ids(scope.ids, verified=verified)
    return store.count(scope.unit_filter, verified=verified)


def _audit_partial(session, ctx, product_id, operation, scope, error, **kwargs):
    """Write the audit row for a run that stopped on a failed chunk."""
    try:
        record_bulk_operation(
            session, ctx, product_id, operation, scope,
            affected_count=error.affected_count,
            chunks_applied=error.chunks_applied,
            completed=False,
            **kwargs
        )
    except StoreError as audit_error:
        logger.error(f"Audit record for failed bulk {operation.value} could not be written: {audit_error}")


def _patch_parts(patch):
    """
    (values, criteria) pairs for a bulk patch.

    Rows whose status changes get their attribution cleared; rows already in
    the target status only receive the date changes. The same-status part
    runs first so the second part never sees rows it just updated.
    """
    dates = {}
    if patch.manufacture_date is not None:
        dates['manufacture_date'] = patch.manufacture_date
    if patch.expiry_date is not None:
        dates['expiry_date'] = patch.expiry_date

    if patch.status is None:
        return [(dates, ())]

    parts = []
    if dates:
        parts.append((dates, (InventoryUnit.status == patch.status,)))
    changed = dict(dates, status=patch.status, **CLEARED_ATTRIBUTION)
    parts.append((changed, (InventoryUnit.status != patch.status,)))
    return parts


def bulk_edit(session, ctx, gate, product_id: int, request, chunk_size: int = DEFAULT_CHUNK_SIZE,
              today: date = None) -> BulkResult:
    """
    Apply a patch (status and/or dates) to every unit in scope.

    Args:
        session: SQLAlchemy session
        ctx: TenantContext
        gate: OverrideGate
        product_id: Product ID
        request: BulkEditRequest
        chunk_size: Ids per statement for id scopes
        today: Reference date for expiry filters

    Returns:
        BulkResult

    Raises:
        ValidationError: Empty patch or SOLD status
        AuthorizationError: RETURNED without valid override credentials
        LockedError: Verified units in scope without valid override credentials
        StoreError: A chunk failed; carries chunks_applied and affected_count
    """
    patch = request.patch
    if patch.is_empty():
        raise ValidationError('Choose at least one field to update')
    if patch.status == UnitStatus.SOLD:
        raise ValidationError('Units cannot be marked SOLD in bulk; a sale needs a customer per unit')

    store = unit_store_for(session, ctx, product_id, chunk_size=chunk_size, today=today)

    if patch.status == UnitStatus.RETURNED:
        gate.check(request.credentials, f'bulk RETURNED on product {product_id}')

    target_count = _count_scope(store, request.scope)
    verified_in_target = _count_scope(store, request.scope, verified=True)

    is_admin_override = False
    if verified_in_target:
        if not gate.permits(request.credentials, f'bulk edit of {verified_in_target} verified units'):
            raise LockedError(
                f'{verified_in_target} verified unit(s) in selection. Admin credentials are required.',
                payload={'verified_in_target': verified_in_target}
            )
        is_admin_override = True

    audit_args = dict(
        target_count=target_count,
        verified_in_target=verified_in_target,
        is_admin_override=is_admin_override,
        patch=patch.to_dict(),
    )

    try:
        progress = store.update_many_split(_patch_parts(patch), **_scope_args(request.scope))
    except StoreError as e:
        bulk_operations_total.labels(operation='edit', outcome='failed').inc()
        _audit_partial(session, ctx, product_id, BulkOperation.EDIT, request.scope, e, **audit_args)
        raise

    entry = record_bulk_operation(
        session, ctx, product_id, BulkOperation.EDIT, request.scope,
        affected_count=progress.affected,
        chunks_applied=progress.chunks_applied,
        **audit_args
    )

    bulk_operations_total.labels(operation='edit', outcome='completed').inc()
    bulk_rows_affected_total.labels(operation='edit').inc(progress.affected)
    logger.info(
        f"Bulk edit on product {product_id}: {progress.affected}/{target_count} units updated "
        f"by {ctx.actor_name}"
    )

    return BulkResult(
        target_count=target_count,
        verified_in_target=verified_in_target,
        affected_count=progress.affected,
        chunks_applied=progress.chunks_applied,
        is_admin_override=is_admin_override,
        audit_id=entry.id,
    )


def confirmation_matches(confirmation: str, expected: str = DEFAULT_CONFIRMATION) -> bool:
    return (confirmation or '').strip().upper() == expected.upper()


def bulk_delete(session, ctx, gate, product_id: int, request, chunk_size: int = DEFAULT_CHUNK_SIZE,
                today: date = None, confirmation_phrase: str = DEFAULT_CONFIRMATION) -> BulkResult:
    """
    Delete every unit in scope, honoring the verification lock.

    The verified count is taken before the delete. The ordinary path (no
    verified rows seen) deletes without re-checking ``verified``, so a unit
    verified in between is removed as well.

    Raises:
        ValidationError: Wrong confirmation phrase, or verified rows in scope
            and no mode chosen
        AuthorizationError: DELETE_ALL without valid override credentials
        StoreError: A chunk failed; carries chunks_applied and affected_count
    """
    if not confirmation_matches(request.confirmation, confirmation_phrase):
        raise ValidationError(f'Type {confirmation_phrase} to confirm')

    store = unit_store_for(session, ctx, product_id, chunk_size=chunk_size, today=today)

    target_count = _count_scope(store, request.scope)
    verified_in_target = _count_scope(store, request.scope, verified=True)

    only_unverified = False
    skipped = 0
    is_admin_override = False

    if verified_in_target:
        if request.mode is None:
            raise ValidationError(
                f'{verified_in_target} verified unit(s) in selection. '
                f'Choose SKIP_VERIFIED or DELETE_ALL.',
                payload={'verified_in_target': verified_in_target}
            )
        if request.mode == BulkDeleteMode.SKIP_VERIFIED:
            only_unverified = True
            skipped = verified_in_target
        else:
            gate.check(request.credentials, f'DELETE_ALL of {verified_in_target} verified units')
            is_admin_override = True

    audit_args = dict(
        target_count=target_count,
        verified_in_target=verified_in_target,
        skipped_verified_units=skipped,
        is_admin_override=is_admin_override,
    )

    try:
        progress = store.delete_many(only_unverified=only_unverified, **_scope_args(request.scope))
    except StoreError as e:
        bulk_operations_total.labels(operation='delete', outcome='failed').inc()
        _audit_partial(session, ctx, product_id, BulkOperation.DELETE, request.scope, e, **audit_args)
        raise

    entry = record_bulk_operation(
        session, ctx, product_id, BulkOperation.DELETE, request.scope,
        affected_count=progress.affected,
        chunks_applied=progress.chunks_applied,
        **audit_args
    )

    bulk_operations_total.labels(operation='delete', outcome='completed').inc()
    bulk_rows_affected_total.labels(operation='delete').inc(progress.affected)
    logger.info(
        f"Bulk delete on product {product_id}: {progress.affected}/{target_count} units deleted, "
        f"{skipped} verified skipped, override={is_admin_override}, by {ctx.actor_name}"
    )

    return BulkResult(
        target_count=target_count,
        verified_in_target=verified_in_target,
        affected_count=progress.affected,
        chunks_applied=progress.chunks_applied,
        skipped_verified_units=skipped,
        is_admin_override=is_admin_override,
        audit_id=entry.id,
    )
