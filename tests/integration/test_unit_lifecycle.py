"""
Integration tests for the unit status state machine and single-unit operations.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from backoffice.exceptions import ValidationError, NotFoundError, LockedError, AuthorizationError
from backoffice.models import InventoryUnit, UnitStatus, Customer
from backoffice.schemas import (
    TransitionRequest, CustomerPayload, OverrideCredentials, UnitCreate, UnitBatchCreate, UnitEdit
)
from backoffice.services.unit_filters import UnitFilter, ExpiryFilter
from backoffice.services.unit_store import UnitStore
from backoffice.services.unit_lifecycle_service import (
    transition_unit, create_unit, create_unit_batch, find_unit_by_code, edit_unit, delete_unit,
    set_verified, list_units, status_counts
)


def reload(session, unit_id):
    session.expire_all()
    return session.query(InventoryUnit).filter_by(id=unit_id).first()


def sell(session, ctx, gate, unit, name='Ravi Kumar', phone='9800000001', status=UnitStatus.SOLD, **kwargs):
    request = TransitionRequest(
        target=status,
        customer=CustomerPayload(name=name, phone=phone),
        credentials=kwargs.pop('credentials', None),
    )
    return transition_unit(session, ctx, gate, unit.product_id, unit.id, request, **kwargs)


class TestTransitions:

    def test_sold_without_customer_name_fails(self, session, ctx1, gate, product_tenant1, make_units):
        unit, = make_units(product_tenant1)

        with pytest.raises(ValidationError):
            sell(session, ctx1, gate, unit, name='   ')

        assert reload(session, unit.id).status == UnitStatus.IN_STOCK
        assert session.query(Customer).count() == 0

    def test_sold_without_customer_payload_fails(self, session, ctx1, gate, product_tenant1, make_units):
        unit, = make_units(product_tenant1)

        with pytest.raises(ValidationError):
            transition_unit(session, ctx1, gate, product_tenant1.id, unit.id, TransitionRequest(UnitStatus.DEMO))

    def test_sold_writes_attribution(self, session, ctx1, gate, product_tenant1, make_units):
        unit, = make_units(product_tenant1)
        when = datetime(2026, 3, 1, 10, 30)

        sell(session, ctx1, gate, unit, name=' Ravi Kumar ', phone='9800000001', now=when)

        stored = reload(session, unit.id)
        customer = session.query(Customer).one()
        assert stored.status == UnitStatus.SOLD
        assert stored.customer_id == customer.id
        assert stored.customer_name == 'Ravi Kumar'
        assert stored.customer_phone == '9800000001'
        assert stored.attributed_at == when
        assert customer.tenant_id == ctx1.tenant_id

    @pytest.mark.parametrize('attributed', [UnitStatus.SOLD, UnitStatus.DEMO])
    def test_back_to_in_stock_clears_attribution(self, session, ctx1, gate, product_tenant1, make_units, attributed):
        unit, = make_units(product_tenant1)
        sell(session, ctx1, gate, unit, status=attributed)

        transition_unit(session, ctx1, gate, product_tenant1.id, unit.id, TransitionRequest(UnitStatus.IN_STOCK))

        stored = reload(session, unit.id)
        assert stored.status == UnitStatus.IN_STOCK
        assert stored.customer_id is None
        assert stored.customer_name is None
        assert stored.customer_phone is None
        assert stored.attributed_at is None

    def test_sold_to_demo_replaces_attribution(self, session, ctx1, gate, product_tenant1, make_units):
        unit, = make_units(product_tenant1)
        sell(session, ctx1, gate, unit, name='First Buyer', phone='111')

        sell(session, ctx1, gate, unit, name='Demo Clinic', phone='222', status=UnitStatus.DEMO)

        stored = reload(session, unit.id)
        assert stored.status == UnitStatus.DEMO
        assert stored.customer_name == 'Demo Clinic'
        assert session.query(Customer).count() == 2

    @pytest.mark.parametrize('target', [UnitStatus.OUT_OF_STOCK, UnitStatus.INVOICED, UnitStatus.IN_STOCK])
    def test_verified_unit_is_locked(self, session, ctx1, gate, product_tenant1, make_units, target):
        unit, = make_units(product_tenant1, status=UnitStatus.DEMO, verified=True,
                           customer_name='Clinic', customer_phone='5')

        with pytest.raises(LockedError):
            transition_unit(session, ctx1, gate, product_tenant1.id, unit.id, TransitionRequest(target))

        stored = reload(session, unit.id)
        assert stored.status == UnitStatus.DEMO
        assert stored.customer_name == 'Clinic'

    def test_verified_unit_with_wrong_credentials_is_locked(self, session, ctx1, gate, product_tenant1, make_units):
        unit, = make_units(product_tenant1, verified=True)
        request = TransitionRequest(UnitStatus.OUT_OF_STOCK, credentials=OverrideCredentials('admin', 'nope'))

        with pytest.raises(LockedError):
            transition_unit(session, ctx1, gate, product_tenant1.id, unit.id, request)

    def test_verified_unit_with_override(self, session, ctx1, gate, product_tenant1, make_units, admin_credentials):
        unit, = make_units(product_tenant1, verified=True)
        request = TransitionRequest(UnitStatus.OUT_OF_STOCK, credentials=admin_credentials)

        result = transition_unit(session, ctx1, gate, product_tenant1.id, unit.id, request)

        assert result.status == UnitStatus.OUT_OF_STOCK
        assert reload(session, unit.id).verified is True

    def test_same_status_is_noop(self, session, ctx1, gate, product_tenant1, make_units):
        unit, = make_units(product_tenant1)
        updated_at = unit.updated_at

        result = transition_unit(session, ctx1, gate, product_tenant1.id, unit.id,
                                 TransitionRequest(UnitStatus.IN_STOCK))

        assert result.status == UnitStatus.IN_STOCK
        assert reload(session, unit.id).updated_at == updated_at

    def test_noop_on_verified_unit_still_needs_override(self, session, ctx1, gate, product_tenant1, make_units):
        unit, = make_units(product_tenant1, verified=True)

        with pytest.raises(LockedError):
            transition_unit(session, ctx1, gate, product_tenant1.id, unit.id, TransitionRequest(UnitStatus.IN_STOCK))

    def test_returned_requires_override(self, session, ctx1, gate, product_tenant1, make_units):
        unit, = make_units(product_tenant1, status=UnitStatus.SOLD, customer_name='Buyer')

        with pytest.raises(AuthorizationError):
            transition_unit(session, ctx1, gate, product_tenant1.id, unit.id, TransitionRequest(UnitStatus.RETURNED))

        assert reload(session, unit.id).status == UnitStatus.SOLD

    def test_returned_with_alternate_pair(self, session, ctx1, gate, product_tenant1, make_units):
        unit, = make_units(product_tenant1, status=UnitStatus.SOLD, customer_name='Buyer')
        request = TransitionRequest(UnitStatus.RETURNED, credentials=OverrideCredentials('manager', 'manager-secret'))

        transition_unit(session, ctx1, gate, product_tenant1.id, unit.id, request)

        stored = reload(session, unit.id)
        assert stored.status == UnitStatus.RETURNED
        assert stored.customer_name is None

    def test_returned_on_verified_unit_checks_credentials_once(self, session, ctx1, gate, product_tenant1,
                                                               make_units, admin_credentials, monkeypatch):
        unit, = make_units(product_tenant1, status=UnitStatus.SOLD, customer_name='Buyer', verified=True)
        checked = []
        real_is_valid = gate.is_valid

        def counting_is_valid(credentials):
            checked.append(credentials)
            return real_is_valid(credentials)

        monkeypatch.setattr(gate, 'is_valid', counting_is_valid)

        transition_unit(session, ctx1, gate, product_tenant1.id, unit.id,
                        TransitionRequest(UnitStatus.RETURNED, credentials=admin_credentials))

        assert len(checked) == 1
        assert reload(session, unit.id).status == UnitStatus.RETURNED

    def test_unit_of_other_product_not_found(self, session, ctx1, gate, product_tenant1,
                                             second_product_tenant1, make_units):
        unit, = make_units(product_tenant1)

        with pytest.raises(NotFoundError):
            transition_unit(session, ctx1, gate, second_product_tenant1.id, unit.id,
                            TransitionRequest(UnitStatus.OUT_OF_STOCK))

    def test_selected_customer_must_belong_to_tenant(self, session, ctx1, gate, tenant2, product_tenant1, make_units):
        foreign = Customer(tenant_id=tenant2.id, name='Other Tenant Buyer')
        session.add(foreign)
        session.commit()
        unit, = make_units(product_tenant1)
        request = TransitionRequest(
            UnitStatus.SOLD,
            customer=CustomerPayload(name='Other Tenant Buyer', customer_id=foreign.id)
        )

        with pytest.raises(NotFoundError):
            transition_unit(session, ctx1, gate, product_tenant1.id, unit.id, request)

        assert reload(session, unit.id).status == UnitStatus.IN_STOCK


class TestUnitCrud:

    def test_create_unit(self, session, ctx1, product_tenant1):
        unit = create_unit(session, ctx1, product_tenant1.id, UnitCreate(
            unit_code='SN-100', manufacture_date=date(2025, 5, 1), expiry_date=date(2027, 5, 1),
            price=Decimal('1450.00')
        ))

        assert unit.id is not None
        assert unit.status == UnitStatus.IN_STOCK
        assert unit.verified is False

    def test_create_unit_duplicate_code_in_tenant(self, session, ctx1, product_tenant1, second_product_tenant1,
                                                  make_units):
        make_units(product_tenant1, prefix='SN')

        with pytest.raises(ValidationError):
            create_unit(session, ctx1, second_product_tenant1.id,
                        UnitCreate(unit_code='SN-001', manufacture_date=date(2025, 5, 1)))

    def test_create_unit_cannot_start_sold(self, session, ctx1, product_tenant1):
        with pytest.raises(ValidationError):
            create_unit(session, ctx1, product_tenant1.id,
                        UnitCreate(unit_code='X1', manufacture_date=date(2025, 5, 1), status=UnitStatus.SOLD))

    def test_create_batch(self, session, ctx1, product_tenant1):
        units = create_unit_batch(session, ctx1, product_tenant1.id, UnitBatchCreate(
            base_code='LOT9', quantity=3, manufacture_date=date(2025, 5, 1)
        ))

        assert sorted(u.unit_code for u in units) == ['LOT9-001', 'LOT9-002', 'LOT9-003']

    def test_create_batch_is_all_or_nothing(self, session, ctx1, product_tenant1, make_units):
        make_units(product_tenant1, prefix='LOT9', count=1)

        with pytest.raises(ValidationError):
            create_unit_batch(session, ctx1, product_tenant1.id, UnitBatchCreate(
                base_code='LOT9', quantity=3, manufacture_date=date(2025, 5, 1)
            ))

        assert session.query(InventoryUnit).count() == 1

    def test_create_unit_code_taken_after_check(self, session, ctx1, product_tenant1, make_units, monkeypatch):
        make_units(product_tenant1, prefix='SN')
        monkeypatch.setattr(UnitStore, 'existing_codes', lambda self, codes: set())

        with pytest.raises(ValidationError, match='already exists'):
            create_unit(session, ctx1, product_tenant1.id,
                        UnitCreate(unit_code='SN-001', manufacture_date=date(2025, 5, 1)))

        assert session.query(InventoryUnit).filter_by(unit_code='SN-001').count() == 1

    def test_create_batch_code_taken_after_check(self, session, ctx1, product_tenant1, make_units, monkeypatch):
        make_units(product_tenant1, prefix='LOT9', count=1)
        monkeypatch.setattr(UnitStore, 'existing_codes', lambda self, codes: set())

        with pytest.raises(ValidationError, match='already exist'):
            create_unit_batch(session, ctx1, product_tenant1.id, UnitBatchCreate(
                base_code='LOT9', quantity=3, manufacture_date=date(2025, 5, 1)
            ))

        assert session.query(InventoryUnit).count() == 1

    def test_scan_lookup(self, session, ctx1, product_tenant1, make_units):
        make_units(product_tenant1, prefix='SCAN', count=2)

        unit = find_unit_by_code(session, ctx1, product_tenant1.id, ' SCAN-002 ')

        assert unit.unit_code == 'SCAN-002'
        with pytest.raises(NotFoundError):
            find_unit_by_code(session, ctx1, product_tenant1.id, 'SCAN-404')

    def test_edit_locked_unit(self, session, ctx1, gate, product_tenant1, make_units, admin_credentials):
        unit, = make_units(product_tenant1, verified=True)

        with pytest.raises(LockedError):
            edit_unit(session, ctx1, gate, product_tenant1.id, unit.id, UnitEdit(expiry_date=date(2030, 1, 1)))

        edit_unit(session, ctx1, gate, product_tenant1.id, unit.id,
                  UnitEdit(expiry_date=date(2030, 1, 1), credentials=admin_credentials))
        assert reload(session, unit.id).expiry_date == date(2030, 1, 1)

    def test_edit_without_changes(self, session, ctx1, gate, product_tenant1, make_units):
        unit, = make_units(product_tenant1)

        with pytest.raises(ValidationError):
            edit_unit(session, ctx1, gate, product_tenant1.id, unit.id, UnitEdit())

    def test_delete_locked_unit(self, session, ctx1, gate, product_tenant1, make_units, admin_credentials):
        unit, = make_units(product_tenant1, verified=True)
        unit_id = unit.id

        with pytest.raises(LockedError):
            delete_unit(session, ctx1, gate, product_tenant1.id, unit_id)
        assert reload(session, unit_id) is not None

        delete_unit(session, ctx1, gate, product_tenant1.id, unit_id, admin_credentials)
        assert reload(session, unit_id) is None

    def test_verify_and_unverify(self, session, ctx1, gate, product_tenant1, make_units, admin_credentials):
        unit, = make_units(product_tenant1)

        set_verified(session, ctx1, gate, product_tenant1.id, unit.id, True)
        stored = reload(session, unit.id)
        assert stored.verified is True
        assert stored.verified_at is not None

        with pytest.raises(LockedError):
            set_verified(session, ctx1, gate, product_tenant1.id, unit.id, False)

        set_verified(session, ctx1, gate, product_tenant1.id, unit.id, False, credentials=admin_credentials)
        stored = reload(session, unit.id)
        assert stored.verified is False
        assert stored.verified_at is None

    def test_status_counts(self, session, ctx1, product_tenant1, make_units):
        make_units(product_tenant1, prefix='A', count=3)
        make_units(product_tenant1, prefix='B', count=2, status=UnitStatus.OUT_OF_STOCK)

        counts = status_counts(session, ctx1, product_tenant1.id)

        assert counts['IN_STOCK'] == 3
        assert counts['OUT_OF_STOCK'] == 2
        assert counts['SOLD'] == 0
        assert set(counts) == {s.value for s in UnitStatus}


class TestListingFilters:
    """Expiry quick filter and ranges, relative to a fixed 'today'."""

    TODAY = date(2026, 1, 1)

    @pytest.fixture
    def stocked(self, product_tenant1, make_units):
        make_units(product_tenant1, prefix='OLD', expiry_date=date(2025, 6, 1))
        make_units(product_tenant1, prefix='NEW', expiry_date=date(2026, 6, 1))
        make_units(product_tenant1, prefix='NOEXP', expiry_date=None)
        make_units(product_tenant1, prefix='SOLD', status=UnitStatus.SOLD, customer_name='B',
                   expiry_date=date(2026, 6, 1))

    def _codes(self, session, ctx, product, **filters):
        units, total = list_units(session, ctx, product.id, unit_filter=UnitFilter(**filters),
                                  sort='code_asc', page_size=100, today=self.TODAY)
        assert total == len(units)
        return [u.unit_code for u in units]

    def test_expired(self, session, ctx1, product_tenant1, stocked):
        assert self._codes(session, ctx1, product_tenant1, expiry=ExpiryFilter.EXPIRED) == ['OLD-001']

    def test_not_expired_includes_no_expiry(self, session, ctx1, product_tenant1, stocked):
        codes = self._codes(session, ctx1, product_tenant1, expiry=ExpiryFilter.NOT_EXPIRED)

        assert codes == ['NEW-001', 'NOEXP-001', 'SOLD-001']

    def test_not_expired_without_no_expiry(self, session, ctx1, product_tenant1, stocked):
        codes = self._codes(session, ctx1, product_tenant1, expiry=ExpiryFilter.NOT_EXPIRED,
                            include_no_expiry=False)

        assert codes == ['NEW-001', 'SOLD-001']

    def test_expiry_range(self, session, ctx1, product_tenant1, stocked):
        codes = self._codes(session, ctx1, product_tenant1, expiry_from=date(2026, 1, 1),
                            expiry_to=date(2026, 12, 31), include_no_expiry=False)

        assert codes == ['NEW-001', 'SOLD-001']

    def test_status_and_search(self, session, ctx1, product_tenant1, stocked):
        assert self._codes(session, ctx1, product_tenant1, status=UnitStatus.SOLD) == ['SOLD-001']
        assert self._codes(session, ctx1, product_tenant1, search='exp') == ['NOEXP-001']

    def test_pagination(self, session, ctx1, product_tenant1, stocked):
        units, total = list_units(session, ctx1, product_tenant1.id, sort='code_asc', page=2, page_size=3,
                                  today=self.TODAY)

        assert total == 4
        assert [u.unit_code for u in units] == ['SOLD-001']

    def test_search_treats_wildcards_literally(self, session, ctx1, product_tenant1, make_units):
        make_units(product_tenant1, prefix='AB')
        make_units(product_tenant1, prefix='A_')

        assert self._codes(session, ctx1, product_tenant1, search='A_-') == ['A_-001']
        assert self._codes(session, ctx1, product_tenant1, search='%') == []
