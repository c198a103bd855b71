"""
Unit tests for SQLAlchemy models.
"""

import pytest
import uuid
from datetime import date, datetime
from decimal import Decimal

from backoffice.models import (
    Tenant, TenantStatus, InventoryUnit, UnitStatus, ATTRIBUTED_STATUSES, Invoice, InvoiceItem, TaxRegime
)


class TestTenantModel:
    """Tests for Tenant model."""

    def test_create_tenant(self, session):
        """New tenants wait for approval."""
        suffix = str(uuid.uuid4())[:8]
        tenant = Tenant(slug=f'test-tenant-{suffix}', display_name=f'Test Tenant {suffix}')
        session.add(tenant)
        session.commit()

        assert tenant.id is not None
        assert tenant.status == TenantStatus.PENDING
        assert tenant.active is True
        assert tenant.is_usable is False

    def test_tenant_slug_unique(self, session, tenant1):
        """Test that tenant slug must be unique."""
        session.add(Tenant(slug=tenant1.slug, display_name='Duplicate Tenant'))

        with pytest.raises(Exception):  # IntegrityError
            session.commit()

    def test_disabled_tenant_not_usable(self, session, tenant1):
        tenant1.active = False
        session.commit()

        assert tenant1.is_usable is False


class TestInventoryUnitModel:
    """Tests for InventoryUnit model."""

    def test_defaults(self, session, product_tenant1):
        unit = InventoryUnit(
            tenant_id=product_tenant1.tenant_id,
            product_id=product_tenant1.id,
            unit_code='SN-1',
            manufacture_date=date(2025, 1, 1)
        )
        session.add(unit)
        session.commit()

        assert unit.status == UnitStatus.IN_STOCK
        assert unit.verified is False
        assert unit.customer_id is None
        assert unit.created_at is not None

    def test_code_unique_per_tenant(self, session, product_tenant1, product_tenant2, make_units):
        make_units(product_tenant1, prefix='SN')
        make_units(product_tenant2, prefix='SN')

        session.add(InventoryUnit(
            tenant_id=product_tenant1.tenant_id,
            product_id=product_tenant1.id,
            unit_code='SN-001',
            manufacture_date=date(2025, 1, 1)
        ))

        with pytest.raises(Exception):  # IntegrityError
            session.commit()

    def test_is_expired(self, product_tenant1, make_units):
        unit, = make_units(product_tenant1, expiry_date=date(2026, 1, 1))

        assert unit.is_expired(date(2026, 1, 2)) is True
        assert unit.is_expired(date(2026, 1, 1)) is False

    def test_no_expiry_never_expires(self, product_tenant1, make_units):
        unit, = make_units(product_tenant1)

        assert unit.is_expired(date(2100, 1, 1)) is False

    def test_attributed_statuses(self):
        assert ATTRIBUTED_STATUSES == {UnitStatus.SOLD, UnitStatus.DEMO}

    def test_to_dict(self, product_tenant1, make_units):
        unit, = make_units(
            product_tenant1, status=UnitStatus.SOLD, customer_name='Ravi',
            attributed_at=datetime(2026, 2, 1, 10, 30), price=Decimal('99.50')
        )

        data = unit.to_dict()

        assert data['status'] == 'SOLD'
        assert data['price'] == '99.50'
        assert data['manufacture_date'] == '2025-01-10'
        assert data['expiry_date'] is None
        assert data['attributed_at'] == '2026-02-01T10:30:00'


class TestInvoiceModel:
    """Tests for Invoice and InvoiceItem models."""

    def _invoice(self, tenant, number):
        return Invoice(
            tenant_id=tenant.id,
            invoice_number=number,
            invoice_date=date(2026, 3, 1),
            customer_name='Walk-in',
            subtotal=Decimal('100.00'),
            tax_total=Decimal('0.00'),
            grand_total=Decimal('100.00'),
        )

    def test_number_unique_per_tenant(self, session, tenant1, tenant2):
        session.add(self._invoice(tenant1, 1))
        session.add(self._invoice(tenant2, 1))
        session.commit()

        session.add(self._invoice(tenant1, 1))
        with pytest.raises(Exception):  # IntegrityError
            session.commit()

    def test_items_ordered_by_position(self, session, tenant1):
        invoice = self._invoice(tenant1, 1)
        for position, name in [(1, 'Second'), (0, 'First')]:
            invoice.items.append(InvoiceItem(
                position=position, description=name, quantity=1, rate=Decimal('50'),
                line_subtotal=Decimal('50'), tax_amount=Decimal('0'), line_total=Decimal('50')
            ))
        session.add(invoice)
        session.commit()
        session.expire_all()

        reloaded = session.get(Invoice, invoice.id)
        assert [i.description for i in reloaded.items] == ['First', 'Second']
        assert reloaded.tax_regime == TaxRegime.FLAT

    def test_item_unit_ids(self):
        item = InvoiceItem(
            description='Glucometer', quantity=2, rate=Decimal('10'), discount=Decimal('0'),
            tax_percent=Decimal('0'), line_subtotal=Decimal('20'), tax_amount=Decimal('0'),
            line_total=Decimal('20'), unit_ids='4,7'
        )

        assert item.to_dict()['unit_ids'] == [4, 7]
