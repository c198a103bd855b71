"""Prometheus counters for inventory and invoicing events."""
from prometheus_client import Counter

unit_transitions_total = Counter(
    'unit_transitions_total',
    'Unit status transitions applied',
    ['target_status']
)

bulk_operations_total = Counter(
    'unit_bulk_operations_total',
    'Bulk unit operations by outcome',
    ['operation', 'outcome']
)

bulk_rows_affected_total = Counter(
    'unit_bulk_rows_affected_total',
    'Rows deleted or updated by bulk unit operations',
    ['operation']
)

override_checks_total = Counter(
    'override_checks_total',
    'Override credential checks by result',
    ['result']
)

invoices_created_total = Counter(
    'invoices_created_total',
    'Invoices created',
    ['source']
)
