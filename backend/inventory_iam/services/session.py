"""Session authorizer: derives the authorization state of the signed-in identity.

State is recomputed from the directory on every identity event; a valid login
with no matching directory account is AccessDenied, never Authorized.

    UNRESOLVED --signed_in--> RESOLVING --found--> AUTHORIZED(role)
                                        --absent/error--> ACCESS_DENIED
    any --no_session/refresh_failed--> ACCESS_DENIED
    any --signed_out--> UNRESOLVED

Resolutions are ticketed: `begin()` hands out a ticket, `settle()` applies a
result only if its ticket is still the latest, so a slow lookup for a previous
identity can never overwrite a newer one.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from inventory_iam.constants.roles import Role
from inventory_iam.errors import DirectoryError, SessionResolutionError
from inventory_iam.services.directory import Account, DirectoryStore
from inventory_iam.utils.fsm import TransitionValidator

log = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNRESOLVED = 'UNRESOLVED'
    RESOLVING = 'RESOLVING'
    AUTHORIZED = 'AUTHORIZED'
    ACCESS_DENIED = 'ACCESS_DENIED'


class IdentityEvent(str, Enum):
    SIGNED_IN = 'SIGNED_IN'
    SIGNED_OUT = 'SIGNED_OUT'
    NO_SESSION = 'NO_SESSION'
    REFRESH_FAILED = 'REFRESH_FAILED'


_ANY = {SessionState.RESOLVING, SessionState.ACCESS_DENIED, SessionState.UNRESOLVED}

SESSION_FSM = TransitionValidator({
    SessionState.UNRESOLVED: set(_ANY),
    SessionState.RESOLVING: _ANY | {SessionState.AUTHORIZED},
    SessionState.AUTHORIZED: set(_ANY),
    SessionState.ACCESS_DENIED: set(_ANY),
}, field_name='session state')

NOT_REGISTERED = 'Access denied: this account is not registered in the user directory.'
NO_SESSION = 'Access denied: no active session.'
LOOKUP_FAILED = 'Access denied: user directory lookup failed.'


@dataclass(frozen=True)
class Actor:
    identity: str
    role: Role


class SessionAuthorizer:
    def __init__(self, directory: DirectoryStore):
        self.directory = directory
        self.state = SessionState.UNRESOLVED
        self.identity: Optional[str] = None
        self.role: Optional[Role] = None
        self.error: Optional[SessionResolutionError] = None
        self._ticket = 0

    # --- transitions ---
    def _move(self, target: SessionState, role: Optional[Role] = None, error: Optional[SessionResolutionError] = None):
        SESSION_FSM.assert_can_transition(self.state, target)
        self.state = target
        self.role = role
        self.error = error

    def handle(self, event: IdentityEvent, identity: Optional[str] = None) -> SessionState:
        """Apply an identity provider event and return the resulting state."""
        if event is IdentityEvent.SIGNED_IN:
            if not identity:
                return self.handle(IdentityEvent.NO_SESSION)
            return self.signed_in(identity)
        self._ticket += 1  # supersede anything in flight
        if event is IdentityEvent.SIGNED_OUT:
            self.identity = None
            self._move(SessionState.UNRESOLVED)
        else:
            self.identity = None
            self._move(SessionState.ACCESS_DENIED, error=SessionResolutionError(NO_SESSION))
        log.info('session %s -> %s', event.value, self.state.value)
        return self.state

    def begin(self, identity: str) -> int:
        self._ticket += 1
        self.identity = identity
        self._move(SessionState.RESOLVING)
        return self._ticket

    def settle(self, ticket: int, account: Optional[Account] = None, failure: Optional[BaseException] = None) -> bool:
        """Apply a lookup result. Returns False if the ticket was superseded and the result dropped."""
        if ticket != self._ticket or self.state is not SessionState.RESOLVING:
            log.debug('dropping stale session resolution ticket=%s latest=%s', ticket, self._ticket)
            return False
        if failure is not None:
            log.warning('session lookup for %s failed: %s', self.identity, failure)
            self._move(SessionState.ACCESS_DENIED, error=SessionResolutionError(LOOKUP_FAILED))
        elif account is None or account.identity != self.identity:
            log.info('identity %s has no directory account', self.identity)
            self._move(SessionState.ACCESS_DENIED, error=SessionResolutionError(NOT_REGISTERED))
        else:
            self._move(SessionState.AUTHORIZED, role=account.role)
        return True

    def signed_in(self, identity: str) -> SessionState:
        ticket = self.begin(identity)
        try:
            account = self.directory.find_by_identity(identity)
        except DirectoryError as e:
            self.settle(ticket, failure=e)
        else:
            self.settle(ticket, account=account)
        return self.state

    def refresh(self) -> SessionState:
        """Re-resolve the current identity, e.g. after the directory was refetched."""
        if self.identity is None:
            return self.state
        return self.signed_in(self.identity)

    # --- accessors ---
    @property
    def is_authorized(self) -> bool:
        return self.state is SessionState.AUTHORIZED

    @property
    def actor(self) -> Optional[Actor]:
        if self.state is SessionState.AUTHORIZED and self.identity and self.role:
            return Actor(self.identity, self.role)
        return None

    def require_actor(self) -> Actor:
        actor = self.actor
        if actor is None:
            raise self.error or SessionResolutionError(NO_SESSION)
        return actor

    def to_json(self):
        return {
            'state': self.state.value,
            'identity': self.identity,
            'role': self.role.value if self.role else None,
            'detail': self.error.detail if self.error else None,
        }


__all__ = ['SessionState', 'IdentityEvent', 'Actor', 'SessionAuthorizer', 'SESSION_FSM']
