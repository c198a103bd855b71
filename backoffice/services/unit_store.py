"""
Unit store adapter - every read and write against inventory units.

All statements are conditioned on tenant + product so a stale client can
never reach across either boundary. Id lists are processed in chunks; each
chunk commits on its own and the first failing chunk stops the run.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date

from sqlalchemy import and_, or_, func
from sqlalchemy.exc import SQLAlchemyError, IntegrityError

from backoffice.exceptions import StoreError
from backoffice.models import InventoryUnit
from backoffice.services.unit_filters import ExpiryFilter

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 500

UNIT_SORTS = {
    'created_desc': (InventoryUnit.created_at.desc(), InventoryUnit.id.desc()),
    'created_asc': (InventoryUnit.created_at.asc(), InventoryUnit.id.asc()),
    'exp_asc': (InventoryUnit.expiry_date.asc().nulls_last(), InventoryUnit.id.asc()),
    'exp_desc': (InventoryUnit.expiry_date.desc().nulls_last(), InventoryUnit.id.desc()),
    'mfg_desc': (InventoryUnit.manufacture_date.desc(), InventoryUnit.id.desc()),
    'mfg_asc': (InventoryUnit.manufacture_date.asc(), InventoryUnit.id.asc()),
    'code_asc': (InventoryUnit.unit_code.asc(),),
    'code_desc': (InventoryUnit.unit_code.desc(),),
}


LIKE_ESCAPE = '\\'


def contains_pattern(text: str) -> str:
    """LIKE pattern matching ``text`` literally anywhere; use with escape=LIKE_ESCAPE."""
    escaped = text.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return f'%{escaped}%'


def apply_unit_filter(query, unit_filter, today: date):
    """
    Translate a UnitFilter into query criteria.

    include_no_expiry widens both the NOT_EXPIRED quick filter and the
    expiry date range to units that have no expiry date.
    """
    if unit_filter is None:
        return query

    if unit_filter.status is not None:
        query = query.filter(InventoryUnit.status == unit_filter.status)

    if unit_filter.search:
        query = query.filter(
            InventoryUnit.unit_code.ilike(contains_pattern(unit_filter.search), escape=LIKE_ESCAPE)
        )

    if unit_filter.expiry == ExpiryFilter.EXPIRED:
        query = query.filter(
            InventoryUnit.expiry_date.isnot(None),
            InventoryUnit.expiry_date < today
        )
    elif unit_filter.expiry == ExpiryFilter.NOT_EXPIRED:
        if unit_filter.include_no_expiry:
            query = query.filter(or_(
                InventoryUnit.expiry_date.is_(None),
                InventoryUnit.expiry_date >= today
            ))
        else:
            query = query.filter(InventoryUnit.expiry_date >= today)

    if unit_filter.manufacture_from:
        query = query.filter(InventoryUnit.manufacture_date >= unit_filter.manufacture_from)
    if unit_filter.manufacture_to:
        query = query.filter(InventoryUnit.manufacture_date <= unit_filter.manufacture_to)

    if unit_filter.expiry_from or unit_filter.expiry_to:
        in_range = []
        if unit_filter.expiry_from:
            in_range.append(InventoryUnit.expiry_date >= unit_filter.expiry_from)
        if unit_filter.expiry_to:
            in_range.append(InventoryUnit.expiry_date <= unit_filter.expiry_to)

        if unit_filter.include_no_expiry:
            query = query.filter(or_(InventoryUnit.expiry_date.is_(None), and_(*in_range)))
        else:
            query = query.filter(*in_range)

    return query


def chunked(items, size):
    items = list(items)
    for start in range(0, len(items), size):
        yield items[start:start + size]


@dataclass
class ChunkProgress:
    chunks_applied: int = 0
    affected: int = 0


@contextmanager
def store_errors(session, message, passthrough=()):
    """
    Roll back and re-raise SQLAlchemy failures as StoreError.

    Exception types listed in ``passthrough`` are rolled back and re-raised
    unchanged so the caller can translate them.
    """
    try:
        yield
    except passthrough:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"{message}: {e}")
        raise StoreError(f'{message}: {e.__class__.__name__}')


class UnitStore:
    """Tenant + product scoped access to inventory units."""

    def __init__(self, session, tenant_id: int, product_id: int, chunk_size: int = DEFAULT_CHUNK_SIZE,
                 today: date = None):
        if chunk_size < 1:
            raise ValueError('chunk_size must be positive')
        self.session = session
        self.tenant_id = tenant_id
        self.product_id = product_id
        self.chunk_size = chunk_size
        self.today = today or date.today()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def base_query(self):
        return self.session.query(InventoryUnit).filter(
            InventoryUnit.tenant_id == self.tenant_id,
            InventoryUnit.product_id == self.product_id
        )

    def filtered_query(self, unit_filter=None):
        return apply_unit_filter(self.base_query(), unit_filter, self.today)

    def find(self, unit_filter=None, sort='created_desc', offset=None, limit=None):
        query = self.filtered_query(unit_filter).order_by(*UNIT_SORTS.get(sort, UNIT_SORTS['created_desc']))
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        with store_errors(self.session, 'Failed to load units'):
            return query.all()

    def count(self, unit_filter=None, verified=None):
        query = self.filtered_query(unit_filter)
        if verified is not None:
            query = query.filter(InventoryUnit.verified == verified)
        with store_errors(self.session, 'Failed to count units'):
            return query.count()

    def count_ids(self, ids, verified=None):
        """Count rows of an id list that exist in scope (chunked)."""
        total = 0
        with store_errors(self.session, 'Failed to count units'):
            for chunk in chunked(ids, self.chunk_size):
                query = self.base_query().filter(InventoryUnit.id.in_(chunk))
                if verified is not None:
                    query = query.filter(InventoryUnit.verified == verified)
                total += query.count()
        return total

    def get(self, unit_id: int):
        with store_errors(self.session, 'Failed to load unit'):
            return self.base_query().filter(InventoryUnit.id == unit_id).first()

    def get_by_ids(self, ids):
        units = []
        with store_errors(self.session, 'Failed to load selected units'):
            for chunk in chunked(ids, self.chunk_size):
                units.extend(
                    self.base_query()
                    .filter(InventoryUnit.id.in_(chunk))
                    .order_by(InventoryUnit.created_at.desc(), InventoryUnit.id.desc())
                    .all()
                )
        return units

    def find_by_code(self, unit_code: str):
        with store_errors(self.session, 'Scan lookup failed'):
            return self.base_query().filter(InventoryUnit.unit_code == unit_code).first()

    def existing_codes(self, codes):
        """Codes already taken anywhere in the tenant (codes are unique per tenant)."""
        taken = set()
        with store_errors(self.session, 'Failed to check unit codes'):
            for chunk in chunked(codes, self.chunk_size):
                rows = self.session.query(InventoryUnit.unit_code).filter(
                    InventoryUnit.tenant_id == self.tenant_id,
                    InventoryUnit.unit_code.in_(chunk)
                ).all()
                taken.update(code for (code,) in rows)
        return taken

    def status_counts(self):
        with store_errors(self.session, 'Failed to count units'):
            rows = (self.base_query()
                    .with_entities(InventoryUnit.status, func.count(InventoryUnit.id))
                    .group_by(InventoryUnit.status)
                    .all())
        return {status: count for status, count in rows}

    # ------------------------------------------------------------------
    # Single-row writes (caller commits)
    # ------------------------------------------------------------------

    def insert(self, **values):
        unit = InventoryUnit(tenant_id=self.tenant_id, product_id=self.product_id, **values)
        with store_errors(self.session, 'Failed to add unit', passthrough=(IntegrityError,)):
            self.session.add(unit)
            self.session.flush()
        return unit

    def insert_many(self, rows):
        units = [InventoryUnit(tenant_id=self.tenant_id, product_id=self.product_id, **values) for values in rows]
        with store_errors(self.session, 'Failed to add units', passthrough=(IntegrityError,)):
            self.session.add_all(units)
            self.session.flush()
        return units

    def update(self, unit_id: int, values: dict) -> int:
        with store_errors(self.session, 'Failed to update unit'):
            return self.base_query().filter(InventoryUnit.id == unit_id).update(
                values, synchronize_session=False
            )

    def delete(self, unit_id: int) -> int:
        with store_errors(self.session, 'Failed to delete unit'):
            return self.base_query().filter(InventoryUnit.id == unit_id).delete(synchronize_session=False)

    # ------------------------------------------------------------------
    # Scoped writes (commit per chunk)
    # ------------------------------------------------------------------

    def _run_chunks(self, statements, message):
        """
        Execute and commit each statement in turn.

        ``statements`` yields callables returning a row count. The first
        failure rolls back its own chunk and raises StoreError with the
        progress made so far.
        """
        progress = ChunkProgress()
        for run in statements:
            try:
                affected = run()
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.error(
                    f"{message} after {progress.chunks_applied} chunk(s), "
                    f"{progress.affected} row(s): {e}"
                )
                raise StoreError(
                    f'{message}: {e.__class__.__name__}',
                    chunks_applied=progress.chunks_applied,
                    affected_count=progress.affected,
                )
            progress.chunks_applied += 1
            progress.affected += affected or 0
        return progress

    def _scope_queries(self, ids=None, unit_filter=None):
        if ids is not None:
            for chunk in chunked(ids, self.chunk_size):
                yield self.base_query().filter(InventoryUnit.id.in_(chunk))
        else:
            yield self.filtered_query(unit_filter)

    def update_many(self, values, ids=None, unit_filter=None, criteria=()):
        """Apply ``values`` to an id list or a filter, plus extra criteria."""
        def statements():
            for query in self._scope_queries(ids, unit_filter):
                q = query.filter(*criteria)
                yield lambda q=q: q.update(values, synchronize_session=False)

        return self._run_chunks(statements(), 'Bulk update failed')

    def update_many_split(self, parts, ids=None, unit_filter=None):
        """
        Like update_many, but each chunk runs several (values, criteria)
        statements that commit together.
        """
        def statements():
            for query in self._scope_queries(ids, unit_filter):
                def run(query=query):
                    affected = 0
                    for values, criteria in parts:
                        affected += query.filter(*criteria).update(values, synchronize_session=False)
                    return affected
                yield run

        return self._run_chunks(statements(), 'Bulk update failed')

    def delete_many(self, ids=None, unit_filter=None, only_unverified=False):
        def statements():
            for query in self._scope_queries(ids, unit_filter):
                if only_unverified:
                    query = query.filter(InventoryUnit.verified == False)
                yield lambda q=query: q.delete(synchronize_session=False)

        return self._run_chunks(statements(), 'Bulk delete failed')
