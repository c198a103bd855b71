from flask import Blueprint, request, g, current_app
from typing import Dict, Any
from backoffice.database import get_session
from backoffice.middleware import require_tenant
from backoffice.services.customer_service import suggest_customers

customers_bp = Blueprint('customers', __name__, url_prefix='/customers')


@customers_bp.route('/suggest', methods=['GET'])
@require_tenant
def suggest() -> Dict[str, Any]:
    """Typeahead for the sale/demo dialog (JSON). Debounced by the client."""
    limit = current_app.config.get('CUSTOMER_SUGGESTION_LIMIT', 8)
    customers = suggest_customers(get_session(), g.tenant_id, request.args.get('q', ''), limit=limit)
    return {'results': [c.to_dict() for c in customers]}
