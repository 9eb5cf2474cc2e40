from flask import Blueprint, request, abort, current_app, g
from flask_jwt_extended import create_access_token
from inventory_iam import get_directory, get_identity_provider
from inventory_iam.constants.roles import Action
from inventory_iam.decorators.audit import audit_log
from inventory_iam.decorators.auth import require_actor, resolve_session
from inventory_iam.services.lifecycle import AccountChanges, AccountRequest, UserLifecycle
from inventory_iam.services.policy import Target, authorize
from inventory_iam.utils.listing import make_cached_list_response, request_pagination

iam_bp = Blueprint('iam', __name__)


def _lifecycle() -> UserLifecycle:
    return UserLifecycle(get_directory(), get_identity_provider())


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, description='JSON object required')
    return data


# --- Session ---

@iam_bp.post('/auth/login')
def login():
    data = _json_body()
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    if not get_identity_provider().authenticate(email, password):
        abort(401, description='invalid credentials')
    # Only the identity goes into the token; role is resolved from the directory per request
    token = create_access_token(identity=email)
    return {'access_token': token}


@iam_bp.get('/auth/session')
def session_state():
    authorizer = resolve_session(optional=True)
    return authorizer.to_json()


@iam_bp.get('/auth/me')
@require_actor
def me():
    account = get_directory().find_by_identity(g.actor.identity)
    if account is None:
        # deleted between resolution and this read
        abort(403, description='Access denied')
    return account.to_json()


# --- User directory ---

def _matches(account, term: str) -> bool:
    term = term.lower()
    haystack = [account.identity, account.role.value, account.department.value, account.full_name or '']
    return any(term in h.lower() for h in haystack)


@iam_bp.get('/users')
@require_actor
def list_users():
    authorize(g.actor.role, Action.VIEW, Target(role=g.actor.role, is_self=True))
    limit, offset = request_pagination()
    accounts = _lifecycle().refresh()
    term = (request.args.get('q') or '').strip()
    if term:
        accounts = [a for a in accounts if _matches(a, term)]
    role = request.args.get('role')
    if role:
        accounts = [a for a in accounts if a.role.value == role]
    total = len(accounts)
    rows = [a.to_json() for a in accounts[offset:offset + limit]]
    return make_cached_list_response(rows, total, limit, offset, head=request.method == 'HEAD')


@iam_bp.get('/users/<int:user_id>')
@require_actor
def get_user(user_id: int):
    return _lifecycle().view_account(g.actor, user_id).to_json()


@iam_bp.post('/users')
@require_actor
@audit_log('USER.CREATE', entity='User', payload_key='account', entity_id_key='id',
           meta_keys=['email', 'role', 'department', 'account_type'])
def create_user():
    req = AccountRequest.parse(_json_body(), current_app.config['MIN_SECRET_LENGTH'])
    result = _lifecycle().create_account(g.actor, req)
    return result.to_json(), 201


def _snapshot(user_id):
    account = get_directory().find_by_id(user_id)
    return account.to_json() if account else {}


@iam_bp.patch('/users/<int:user_id>')
@require_actor
@audit_log('USER.UPDATE', entity='User', payload_key='account', entity_id_arg='user_id',
           diff_keys=['email', 'full_name', 'department', 'role', 'account_type'],
           pre_fetch=lambda a, kw: _snapshot(kw.get('user_id')))
def update_user(user_id: int):
    changes = AccountChanges.parse(_json_body())
    result = _lifecycle().edit_account(g.actor, user_id, changes)
    return result.to_json()


@iam_bp.delete('/users/<int:user_id>')
@require_actor
@audit_log('USER.DELETE', entity='User', entity_id_arg='user_id')
def delete_user(user_id: int):
    result = _lifecycle().delete_account(g.actor, user_id)
    body = result.to_json()
    body['status'] = 'deleted'
    return body
