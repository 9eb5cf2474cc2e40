from __future__ import annotations
from typing import Any, Dict, Optional
from flask import g
from inventory_iam import get_db
from inventory_iam.models.audit import AuditLog


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    """Persist an audit log entry within the current DB session.

    Parameters:
      action: short action code e.g. USER.CREATE, USER.UPDATE, USER.DELETE
      entity: optional entity name (User)
      entity_id: optional primary key string
      meta: additional JSON-safe dictionary (will be shallow copied)

    The actor is the one resolved for the current request (g.actor); outside a
    resolved request it is recorded as 'system'.
    """
    session = get_db()
    actor = g.get('actor') if g else None
    log = AuditLog(
        actor_identity=actor.identity if actor else 'system',
        actor_role=actor.role.value if actor else None,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
