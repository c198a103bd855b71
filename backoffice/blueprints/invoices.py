"""Invoice endpoints (JSON)."""
from typing import Any, Dict, Tuple

from flask import Blueprint, request, current_app

from backoffice.database import get_session
from backoffice.exceptions import ValidationError
from backoffice.middleware import require_tenant, current_context
from backoffice.schemas import InvoiceRequest
from backoffice.services.invoice_service import preview_invoice, create_invoice, get_invoice, list_invoices

invoices_bp = Blueprint('invoices', __name__, url_prefix='/invoices')


def _tax_defaults() -> Dict[str, str]:
    return {
        'cgst_percent': current_app.config.get('INVOICE_CGST_PERCENT', '9'),
        'sgst_percent': current_app.config.get('INVOICE_SGST_PERCENT', '9'),
        'igst_percent': current_app.config.get('INVOICE_IGST_PERCENT', '18'),
    }


def _invoice_request() -> InvoiceRequest:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return InvoiceRequest.from_dict(data, _tax_defaults())


@invoices_bp.route('/preview', methods=['POST'])
@require_tenant
def preview() -> Dict[str, Any]:
    """Lines and totals for the form, nothing saved."""
    ctx = current_context()
    return preview_invoice(get_session(), ctx.tenant_id, _invoice_request())


@invoices_bp.route('', methods=['POST'])
@require_tenant
def create() -> Tuple[Dict[str, Any], int]:
    invoice = create_invoice(get_session(), current_context(), _invoice_request())
    return {'invoice': invoice.to_dict()}, 201


@invoices_bp.route('', methods=['GET'])
@require_tenant
def index() -> Dict[str, Any]:
    ctx = current_context()
    try:
        limit = min(int(request.args.get('limit', 50)), 200)
        offset = max(int(request.args.get('offset', 0)), 0)
    except ValueError:
        raise ValidationError('limit and offset must be integers')

    invoices = list_invoices(get_session(), ctx.tenant_id, limit=limit, offset=offset)
    return {
        'invoices': [
            {
                'id': inv.id,
                'invoice_number': inv.invoice_number,
                'invoice_date': inv.invoice_date.isoformat(),
                'customer_name': inv.customer_name,
                'grand_total': str(inv.grand_total),
                'is_custom': inv.is_custom,
            }
            for inv in invoices
        ]
    }


@invoices_bp.route('/<int:invoice_id>', methods=['GET'])
@require_tenant
def view(invoice_id: int) -> Dict[str, Any]:
    invoice = get_invoice(get_session(), current_context().tenant_id, invoice_id)
    return {'invoice': invoice.to_dict()}
