"""Models package - exports all SQLAlchemy models."""
from backoffice.models.tenant import Tenant, TenantStatus
from backoffice.models.product import Product
from backoffice.models.customer import Customer
from backoffice.models.inventory_unit import InventoryUnit, UnitStatus, ATTRIBUTED_STATUSES
from backoffice.models.unit_bulk_audit import UnitBulkAudit, BulkOperation, BulkScopeKind
from backoffice.models.invoice import Invoice, InvoiceItem, TaxRegime

__all__ = [
    'Tenant', 'TenantStatus',
    'Product', 'Customer',
    'InventoryUnit', 'UnitStatus', 'ATTRIBUTED_STATUSES',
    'UnitBulkAudit', 'BulkOperation', 'BulkScopeKind',
    'Invoice', 'InvoiceItem', 'TaxRegime',
]
