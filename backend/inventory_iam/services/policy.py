"""Role policy engine for user-management actions.

`decide()` walks RULES top to bottom and returns the first matching outcome.
Pure function: no store access, no request context, no state.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from inventory_iam.constants.roles import Action, Role, MANAGER_ROLES, PROTECTED_ROLES
from inventory_iam.errors import AuthorizationError

log = logging.getLogger(__name__)

INSUFFICIENT_PRIVILEGE = 'insufficient privilege'
ADMIN_CREATE_PROTECTED = 'Admins can only create Operator or Reporter users.'
ADMIN_EDIT_PROTECTED = 'Admins cannot edit Super Admin or Admin users.'
ADMIN_DELETE_PROTECTED = 'Admins cannot delete Super Admin or Admin users.'
ADMIN_OWN_ROLE = 'Admins cannot change their own role.'
ADMIN_ASSIGN_PROTECTED = 'Admins can only assign Operator or Reporter roles.'


@dataclass(frozen=True)
class Target:
    """What the action applies to.

    role: the target account's current role (for Create: the requested role).
    is_self: target identity equals the actor identity.
    requested_role: new role asked for by an Edit, None when role is untouched.
    """
    role: Role
    is_self: bool = False
    requested_role: Optional[Role] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    rule: str
    reason: Optional[str] = None

    def raise_for_deny(self):
        if not self.allowed:
            raise AuthorizationError(self.reason or INSUFFICIENT_PRIVILEGE, rule=self.rule)
        return self


def allow(rule: str) -> Decision:
    return Decision(True, rule)


def deny(rule: str, reason: str) -> Decision:
    return Decision(False, rule, reason)


@dataclass(frozen=True)
class Rule:
    name: str
    applies: Callable[[Role, Action, Target], bool]
    outcome: Callable[[Role, Action, Target], Decision]


def _non_manager(actor: Role, action: Action, target: Target) -> bool:
    return actor not in MANAGER_ROLES


def _non_manager_outcome(actor: Role, action: Action, target: Target) -> Decision:
    if action is Action.VIEW:
        return allow('non-manager')
    return deny('non-manager', INSUFFICIENT_PRIVILEGE)


def _admin_create_protected(actor: Role, action: Action, target: Target) -> bool:
    return actor is Role.ADMIN and action is Action.CREATE and target.role in PROTECTED_ROLES


def _admin_touch_protected(actor: Role, action: Action, target: Target) -> bool:
    return (
        actor is Role.ADMIN
        and action in (Action.EDIT, Action.DELETE)
        and target.role in PROTECTED_ROLES
    )


def _admin_touch_protected_outcome(actor: Role, action: Action, target: Target) -> Decision:
    reason = ADMIN_EDIT_PROTECTED if action is Action.EDIT else ADMIN_DELETE_PROTECTED
    return deny('admin-protected-target', reason)


def _admin_own_role(actor: Role, action: Action, target: Target) -> bool:
    return (
        actor is Role.ADMIN
        and action is Action.EDIT
        and target.is_self
        and target.requested_role is not None
        and target.requested_role != target.role
    )


def _admin_assign_protected(actor: Role, action: Action, target: Target) -> bool:
    return (
        actor is Role.ADMIN
        and action is Action.EDIT
        and target.requested_role in PROTECTED_ROLES
        and target.requested_role != target.role
    )


RULES: List[Rule] = [
    Rule('non-manager', _non_manager, _non_manager_outcome),
    Rule('super-admin', lambda a, act, t: a is Role.SUPER_ADMIN, lambda a, act, t: allow('super-admin')),
    Rule('admin-create-protected', _admin_create_protected,
         lambda a, act, t: deny('admin-create-protected', ADMIN_CREATE_PROTECTED)),
    Rule('admin-protected-target', _admin_touch_protected, _admin_touch_protected_outcome),
    Rule('admin-own-role', _admin_own_role, lambda a, act, t: deny('admin-own-role', ADMIN_OWN_ROLE)),
    Rule('admin-assign-protected', _admin_assign_protected,
         lambda a, act, t: deny('admin-assign-protected', ADMIN_ASSIGN_PROTECTED)),
    Rule('default', lambda a, act, t: True, lambda a, act, t: allow('default')),
]


def decide(actor_role: Role, action: Action, target: Target) -> Decision:
    for rule in RULES:
        if rule.applies(actor_role, action, target):
            decision = rule.outcome(actor_role, action, target)
            log.debug(
                'policy %s %s on %s (self=%s) -> %s via %s',
                actor_role.value, action.value, target.role.value, target.is_self,
                'allow' if decision.allowed else 'deny', decision.rule,
            )
            return decision
    # RULES ends with a catch-all
    raise AssertionError('policy table exhausted')


def authorize(actor_role: Role, action: Action, target: Target) -> Decision:
    """decide() that raises AuthorizationError on Deny."""
    return decide(actor_role, action, target).raise_for_deny()


def precheck(actor_role: Role, action: Action) -> None:
    """Raise AuthorizationError when action is denied for every possible target role.

    Lets callers reject an actor before reading the target from the store.
    """
    decisions = [decide(actor_role, action, Target(role=r)) for r in Role]
    if not any(d.allowed for d in decisions):
        decisions[0].raise_for_deny()


__all__ = ['Target', 'Decision', 'Rule', 'RULES', 'decide', 'authorize', 'precheck']
