"""Middleware for tenant context."""
from functools import wraps
from flask import session, g, jsonify, current_app
from backoffice.database import get_session
from backoffice.models import Tenant
from backoffice.schemas import TenantContext


def load_tenant_context():
    """
    Load the authenticated tenant into g (Flask's per-request global).

    Authentication happens upstream; the identity provider leaves
    ``tenant_id``, ``actor_name`` and ``user_id`` in the session. The tenant
    is only accepted if it exists, is active and has been approved.
    Sets g.tenant_id, g.actor_name and g.user_id.
    """
    g.tenant_id = None
    g.actor_name = None
    g.user_id = None

    tenant_id = session.get('tenant_id')
    if not tenant_id:
        return

    db_session = get_session()
    tenant = db_session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant or not tenant.is_usable:
        current_app.logger.warning(f"Rejected session for unusable tenant {tenant_id}")
        session.pop('tenant_id', None)
        return

    g.tenant_id = tenant.id
    g.actor_name = session.get('actor_name') or tenant.display_name
    g.user_id = session.get('user_id')


def require_tenant(f):
    """
    Decorator: Require an authenticated, approved tenant.

    Returns 401 JSON when no tenant context was loaded.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('tenant_id') is None:
            return jsonify({'status': 'error', 'kind': 'unauthenticated',
                            'message': 'Sign in to a vendor account first.'}), 401
        return f(*args, **kwargs)
    return decorated_function


def current_context() -> TenantContext:
    """TenantContext for the current request (after require_tenant)."""
    return TenantContext(
        tenant_id=g.tenant_id,
        actor_name=g.actor_name,
        actor_user_id=str(g.user_id) if g.get('user_id') is not None else None,
    )
