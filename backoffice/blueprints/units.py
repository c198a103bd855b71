"""Inventory unit endpoints (JSON) for one product."""
from typing import Any, Dict, Tuple

from flask import Blueprint, request, current_app, Response

from backoffice.database import get_session
from backoffice.exceptions import ValidationError
from backoffice.middleware import require_tenant, current_context
from backoffice.schemas import (
    TransitionRequest, UnitCreate, UnitBatchCreate, UnitEdit, BulkEditRequest, BulkDeleteRequest,
    OverrideCredentials
)
from backoffice.services.audit_service import get_bulk_audit_log
from backoffice.services.bulk_unit_service import bulk_edit, bulk_delete
from backoffice.services.override_service import OverrideGate
from backoffice.services.unit_export_service import write_units_csv
from backoffice.services.unit_filters import UnitFilter
from backoffice.services.unit_lifecycle_service import (
    transition_unit, create_unit, create_unit_batch, find_unit_by_code, edit_unit, delete_unit,
    set_verified, list_units, status_counts, get_product, unit_store_for
)
from backoffice.services.unit_store import UNIT_SORTS

units_bp = Blueprint('units', __name__, url_prefix='/products/<int:product_id>/units')


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _gate() -> OverrideGate:
    return OverrideGate.from_config(current_app.config)


def _int_arg(name: str, default: int) -> int:
    value = request.args.get(name, '').strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f'{name} must be an integer')


@units_bp.route('', methods=['GET'])
@require_tenant
def list_product_units(product_id: int) -> Dict[str, Any]:
    """List units with filters, sorting and pagination."""
    unit_filter = UnitFilter.from_dict(request.args.to_dict())
    sort = request.args.get('sort', 'created_desc')
    if sort not in UNIT_SORTS:
        raise ValidationError(f"Invalid sort '{sort}'")

    page_sizes = current_app.config.get('UNITS_PAGE_SIZES', (20, 50, 100))
    page_size = _int_arg('page_size', page_sizes[0])
    if page_size not in page_sizes:
        page_size = page_sizes[0]
    page = max(1, _int_arg('page', 1))

    units, total = list_units(
        get_session(), current_context(), product_id,
        unit_filter=unit_filter, sort=sort, page=page, page_size=page_size
    )
    return {
        'units': [u.to_dict() for u in units],
        'total': total,
        'page': page,
        'page_size': page_size,
        'filter': unit_filter.to_dict(),
    }


@units_bp.route('', methods=['POST'])
@require_tenant
def add_unit(product_id: int) -> Tuple[Dict[str, Any], int]:
    unit = create_unit(get_session(), current_context(), product_id, UnitCreate.from_dict(_json_body()))
    return {'unit': unit.to_dict()}, 201


@units_bp.route('/batch', methods=['POST'])
@require_tenant
def add_unit_batch(product_id: int) -> Tuple[Dict[str, Any], int]:
    """Add BASE-001 .. BASE-nnn in one go."""
    units = create_unit_batch(get_session(), current_context(), product_id, UnitBatchCreate.from_dict(_json_body()))
    return {'units': [u.to_dict() for u in units], 'count': len(units)}, 201


@units_bp.route('/scan', methods=['GET'])
@require_tenant
def scan_unit(product_id: int) -> Dict[str, Any]:
    unit = find_unit_by_code(get_session(), current_context(), product_id, request.args.get('code', ''))
    return {'unit': unit.to_dict()}


@units_bp.route('/counts', methods=['GET'])
@require_tenant
def unit_counts(product_id: int) -> Dict[str, Any]:
    counts = status_counts(get_session(), current_context(), product_id)
    return {'counts': counts, 'total': sum(counts.values())}


@units_bp.route('/<int:unit_id>', methods=['PATCH'])
@require_tenant
def update_unit(product_id: int, unit_id: int) -> Dict[str, Any]:
    unit = edit_unit(get_session(), current_context(), _gate(), product_id, unit_id,
                     UnitEdit.from_dict(_json_body()))
    return {'unit': unit.to_dict()}


@units_bp.route('/<int:unit_id>', methods=['DELETE'])
@require_tenant
def remove_unit(product_id: int, unit_id: int) -> Dict[str, Any]:
    credentials = OverrideCredentials.from_dict(_json_body().get('override'))
    delete_unit(get_session(), current_context(), _gate(), product_id, unit_id, credentials)
    return {'status': 'ok', 'deleted': unit_id}


@units_bp.route('/<int:unit_id>/transition', methods=['POST'])
@require_tenant
def change_status(product_id: int, unit_id: int) -> Dict[str, Any]:
    """Status change; SOLD/DEMO need a customer, RETURNED needs the override."""
    unit = transition_unit(get_session(), current_context(), _gate(), product_id, unit_id,
                           TransitionRequest.from_dict(_json_body()))
    return {'unit': unit.to_dict()}


@units_bp.route('/<int:unit_id>/verify', methods=['POST'])
@require_tenant
def verify_unit(product_id: int, unit_id: int) -> Dict[str, Any]:
    data = _json_body()
    verified = data.get('verified', True)
    if not isinstance(verified, bool):
        raise ValidationError('verified must be true or false')
    unit = set_verified(get_session(), current_context(), _gate(), product_id, unit_id, verified,
                        credentials=OverrideCredentials.from_dict(data.get('override')))
    return {'unit': unit.to_dict()}


@units_bp.route('/bulk-edit', methods=['POST'])
@require_tenant
def bulk_edit_units(product_id: int) -> Dict[str, Any]:
    result = bulk_edit(
        get_session(), current_context(), _gate(), product_id,
        BulkEditRequest.from_dict(_json_body()),
        chunk_size=current_app.config.get('UNIT_BULK_CHUNK_SIZE', 500)
    )
    return {'status': 'ok', 'result': result.to_dict()}


@units_bp.route('/bulk-delete', methods=['POST'])
@require_tenant
def bulk_delete_units(product_id: int) -> Dict[str, Any]:
    result = bulk_delete(
        get_session(), current_context(), _gate(), product_id,
        BulkDeleteRequest.from_dict(_json_body()),
        chunk_size=current_app.config.get('UNIT_BULK_CHUNK_SIZE', 500),
        confirmation_phrase=current_app.config.get('BULK_DELETE_CONFIRMATION', 'DELETE')
    )
    return {'status': 'ok', 'result': result.to_dict()}


@units_bp.route('/bulk-audit', methods=['GET'])
@require_tenant
def bulk_audit(product_id: int) -> Dict[str, Any]:
    ctx = current_context()
    session = get_session()
    get_product(session, ctx.tenant_id, product_id)
    entries = get_bulk_audit_log(
        session, ctx.tenant_id, product_id=product_id,
        limit=min(_int_arg('limit', 100), 500), offset=max(0, _int_arg('offset', 0))
    )
    return {'entries': [e.to_dict() for e in entries]}


@units_bp.route('/export.csv', methods=['GET'])
@require_tenant
def export_units(product_id: int) -> Response:
    """CSV of every unit matching the current filter."""
    ctx = current_context()
    session = get_session()
    product = get_product(session, ctx.tenant_id, product_id)
    unit_filter = UnitFilter.from_dict(request.args.to_dict())
    units = unit_store_for(session, ctx, product_id).find(unit_filter, sort=request.args.get('sort', 'created_desc'))

    current_app.logger.info(f"Exported {len(units)} units of product {product_id} for tenant {ctx.tenant_id}")
    return Response(
        write_units_csv(product, units),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename=units-product-{product_id}.csv'}
    )
