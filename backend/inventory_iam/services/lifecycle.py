"""User lifecycle controller: create / edit / delete directory accounts.

Each operation runs the same pipeline:

    validate input -> load target (edit/delete) -> policy decision
        -> exactly one store mutation -> refetch the full directory

Nothing touches the store before the policy allows it, and the in-memory
`accounts` list is only ever replaced by a refetch, never patched locally.
Failures set `last_error` and are re-raised for the caller to report.

Known gaps (intentional, see DESIGN.md):
  - no version check: two actors editing one account is last-writer-wins;
  - provisioning and insert are not one transaction; an identity left
    behind by a failed insert is linked, not re-provisioned, on retry.
"""
import logging
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from inventory_iam.constants.roles import AccountType, Action, Department, Role, parse_enum
from inventory_iam.errors import IamError, NotFoundError, ValidationError
from inventory_iam.services.directory import Account, DirectoryStore, DUPLICATE_IDENTITY
from inventory_iam.services.identity import IdentityProvider
from inventory_iam.services.policy import Target, authorize, precheck
from inventory_iam.services.session import Actor
from inventory_iam.utils.validation import validate_identity, validate_optional_text, validate_secret

log = logging.getLogger(__name__)

DEFAULT_MIN_SECRET_LENGTH = 6
EDITABLE_FIELDS = ('identity', 'full_name', 'department', 'role', 'account_type')


def _pick(data: Mapping[str, Any], *keys: str):
    for k in keys:
        if k in data:
            return data[k]
    return None


@dataclass(frozen=True)
class AccountRequest:
    identity: str
    department: Department
    role: Role
    account_type: AccountType
    full_name: Optional[str] = None
    initial_secret: Optional[str] = field(default=None, repr=False)

    @classmethod
    def parse(cls, data: Mapping[str, Any], min_secret_length: int = DEFAULT_MIN_SECRET_LENGTH) -> 'AccountRequest':
        if not isinstance(data, Mapping):
            raise ValidationError('JSON object required')
        secret = _pick(data, 'password', 'initial_secret')
        return cls(
            identity=validate_identity(_pick(data, 'email', 'identity')),
            department=parse_enum(Department, data.get('department'), 'department'),
            role=parse_enum(Role, data.get('role'), 'role'),
            account_type=parse_enum(AccountType, data.get('account_type'), 'account_type'),
            full_name=validate_optional_text(data.get('full_name'), 'full_name'),
            initial_secret=validate_secret(secret, min_secret_length) if secret is not None else None,
        )


@dataclass(frozen=True)
class AccountChanges:
    """Partial update: only keys present in `fields` are written."""
    fields: Dict[str, Any]

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> 'AccountChanges':
        if not isinstance(data, Mapping):
            raise ValidationError('JSON object required')
        if 'id' in data:
            raise ValidationError('id is immutable')
        raw = dict(data)
        if 'email' in raw:
            raw['identity'] = raw.pop('email')
        unknown = set(raw) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f'Unknown fields: {sorted(unknown)}')
        fields: Dict[str, Any] = {}
        if 'identity' in raw:
            fields['identity'] = validate_identity(raw['identity'])
        if 'full_name' in raw:
            fields['full_name'] = validate_optional_text(raw['full_name'], 'full_name')
        if 'department' in raw:
            fields['department'] = parse_enum(Department, raw['department'], 'department')
        if 'role' in raw:
            fields['role'] = parse_enum(Role, raw['role'], 'role')
        if 'account_type' in raw:
            fields['account_type'] = parse_enum(AccountType, raw['account_type'], 'account_type')
        if not fields:
            raise ValidationError('No changes supplied')
        return cls(fields)

    @property
    def role(self) -> Optional[Role]:
        return self.fields.get('role')

    @property
    def identity(self) -> Optional[str]:
        return self.fields.get('identity')


@dataclass(frozen=True)
class LifecycleResult:
    account: Optional[Account]
    accounts: List[Account]

    def to_json(self):
        return {
            'account': self.account.to_json() if self.account else None,
            'users': [a.to_json() for a in self.accounts],
        }


class UserLifecycle:
    def __init__(self, directory: DirectoryStore, identity_provider: IdentityProvider):
        self.directory = directory
        self.identity_provider = identity_provider
        self.accounts: List[Account] = []
        self.last_error: Optional[IamError] = None

    def refresh(self) -> List[Account]:
        """Reload the directory (ordered by identity) as the new source of truth."""
        self.accounts = sorted(self.directory.list_all(), key=lambda a: (a.identity, a.id or 0))
        return self.accounts

    # --- operations ---
    def create_account(self, actor: Actor, request: AccountRequest) -> LifecycleResult:
        try:
            authorize(actor.role, Action.CREATE, Target(role=request.role, is_self=request.identity == actor.identity))
            if self.directory.find_by_identity(request.identity) is not None:
                raise ValidationError(DUPLICATE_IDENTITY)
            self._ensure_identity(request)
            new_id = self.directory.insert(Account(
                id=None,
                identity=request.identity,
                full_name=request.full_name,
                department=request.department,
                role=request.role,
                account_type=request.account_type,
            ))
        except IamError as e:
            self._failed('create', actor, e)
            raise
        log.info('%s created user %s (%s) as %s', actor.identity, new_id, request.identity, request.role.value)
        return self._reload(actor, new_id)

    def edit_account(self, actor: Actor, target_id: int, changes: AccountChanges) -> LifecycleResult:
        try:
            precheck(actor.role, Action.EDIT)
            target = self._load(target_id)
            authorize(actor.role, Action.EDIT, Target(
                role=target.role,
                is_self=target.identity == actor.identity,
                requested_role=changes.role,
            ))
            if changes.identity and changes.identity != target.identity:
                holder = self.directory.find_by_identity(changes.identity)
                if holder is not None and holder.id != target.id:
                    raise ValidationError(DUPLICATE_IDENTITY)
            self.directory.update(target_id, changes.fields)
        except IamError as e:
            self._failed('edit', actor, e)
            raise
        log.info('%s edited user %s fields=%s', actor.identity, target_id, sorted(changes.fields))
        return self._reload(actor, target_id)

    def delete_account(self, actor: Actor, target_id: int) -> LifecycleResult:
        try:
            precheck(actor.role, Action.DELETE)
            target = self._load(target_id)
            authorize(actor.role, Action.DELETE, Target(role=target.role, is_self=target.identity == actor.identity))
            self.directory.delete(target_id)
        except IamError as e:
            self._failed('delete', actor, e)
            raise
        log.info('%s deleted user %s (%s)', actor.identity, target_id, target.identity)
        return self._reload(actor, None)

    def view_account(self, actor: Actor, target_id: int) -> Account:
        try:
            target = self._load(target_id)
            authorize(actor.role, Action.VIEW, Target(role=target.role, is_self=target.identity == actor.identity))
        except IamError as e:
            self._failed('view', actor, e)
            raise
        return target

    # --- helpers ---
    def _load(self, target_id: int) -> Account:
        target = self.directory.find_by_id(target_id)
        if target is None:
            raise NotFoundError(f'User {target_id} not found')
        return target

    def _ensure_identity(self, request: AccountRequest):
        if self.identity_provider.has_identity(request.identity):
            # left behind by an earlier create whose insert never happened, or by a delete
            if request.initial_secret:
                self.identity_provider.reset_secret(request.identity, request.initial_secret)
                log.warning('identity %s already provisioned; secret reset, linking new directory record',
                            request.identity)
            else:
                log.warning('identity %s already provisioned; keeping its secret, linking new directory record',
                            request.identity)
            return
        secret = request.initial_secret or secrets.token_urlsafe(16)
        self.identity_provider.provision_identity(request.identity, secret)

    def _reload(self, actor: Actor, account_id: Optional[int]) -> LifecycleResult:
        try:
            accounts = self.refresh()
        except IamError as e:
            self._failed('refetch', actor, e)
            raise
        self.last_error = None
        account = next((a for a in accounts if a.id == account_id), None) if account_id is not None else None
        return LifecycleResult(account, accounts)

    def _failed(self, operation: str, actor: Actor, error: IamError):
        self.last_error = error
        log.warning('%s by %s rejected: %s', operation, actor.identity, error.detail)


__all__ = ['AccountRequest', 'AccountChanges', 'LifecycleResult', 'UserLifecycle', 'EDITABLE_FIELDS']
