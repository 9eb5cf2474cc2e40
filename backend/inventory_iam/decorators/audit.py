"""Audit logging decorator for mutating IAM routes.

Usage examples:

@audit_log('USER.CREATE', entity='User', payload_key='account', entity_id_key='id',
           meta_keys=['email', 'role'])
def create_user(): ... return result.to_json(), 201

@audit_log('USER.UPDATE', entity='User', entity_id_arg='user_id', payload_key='account',
           diff_keys=['email', 'role', 'department'], pre_fetch=lambda a, kw: _snapshot(kw['user_id']))
def update_user(user_id): ...

Parameters:
  action: required audit action code (e.g. USER.CREATE)
  entity: optional entity label (User)
  payload_key: key of the returned JSON whose object is inspected (default: the whole body)
  entity_id_key: key in the inspected object whose value becomes entity_id.
  entity_id_arg: name of the view argument to use for entity_id (fallback if entity_id_key absent).
  meta_keys: keys to project from the inspected object into meta (shallow copy).
  diff_keys / pre_fetch: record before/after values of these keys; pre_fetch(args, kwargs)
    returns the "before" snapshot and runs ahead of the view.

Only successful responses (status < 400) are audited; errors raised by the view
propagate untouched. A failure while writing the audit row is logged and never
changes the response.
"""

from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict

from flask import current_app

from inventory_iam.services.audit import add_audit
from inventory_iam import get_db


def _extract_payload(rv: Any):
    """Return (data, status) for the common view return shapes."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    return rv, 200


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    payload_key: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = pre_fetch(args, kwargs) if (diff_keys and pre_fetch) else None
            rv = fn(*args, **kwargs)
            data, status = _extract_payload(rv)
            if status >= 400:
                return rv
            try:
                _record(data, kwargs, before_snapshot)
            except Exception:
                current_app.logger.exception('audit write failed for %s', action)
                get_db().rollback()
            return rv

        def _record(data, kwargs, before_snapshot):
            obj = data.get(payload_key) if (isinstance(data, dict) and payload_key) else data
            if not isinstance(obj, dict):
                obj = {}
            entity_id = None
            if entity_id_key and obj.get(entity_id_key) is not None:
                entity_id = obj.get(entity_id_key)
            elif entity_id_arg and entity_id_arg in kwargs:
                entity_id = kwargs.get(entity_id_arg)
            meta = {k: obj.get(k) for k in (meta_keys or []) if k in obj}
            if diff_keys and isinstance(before_snapshot, dict):
                changes = {}
                for k in diff_keys:
                    if k in before_snapshot and k in obj and before_snapshot.get(k) != obj.get(k):
                        changes[k] = {'before': before_snapshot.get(k), 'after': obj.get(k)}
                if changes:
                    meta['changes'] = changes
            add_audit(action, entity, entity_id, meta)
            get_db().commit()

        return wrapper
    return outer
