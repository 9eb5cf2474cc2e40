from functools import wraps
from flask import g, abort
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity
from inventory_iam import get_directory
from inventory_iam.services.session import IdentityEvent, SessionAuthorizer


def resolve_session(optional: bool = False) -> SessionAuthorizer:
    """Resolve the bearer token's identity against the directory for this request.

    Role comes from the directory record, never from token claims.
    """
    verify_jwt_in_request(optional=optional)
    authorizer = SessionAuthorizer(get_directory())
    identity = get_jwt_identity()
    if identity:
        authorizer.handle(IdentityEvent.SIGNED_IN, identity)
    else:
        authorizer.handle(IdentityEvent.NO_SESSION)
    g.session_authorizer = authorizer
    return authorizer


def require_actor(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        authorizer = resolve_session()
        if not authorizer.is_authorized:
            abort(403, description=authorizer.error.detail if authorizer.error else 'Access denied')
        g.actor = authorizer.actor
        return fn(*args, **kwargs)
    return wrapper
