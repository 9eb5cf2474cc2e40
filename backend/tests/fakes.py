"""In-memory collaborators for exercising the core without Flask or a database.

Both fakes record every call in `calls` (shared list when passed in) so tests
can assert ordering, and accept `fail_on` to inject errors per operation.
"""
from typing import Any, Dict, List, Optional, Set

from inventory_iam.constants.roles import AccountType, Department, Role
from inventory_iam.errors import DirectoryError, IdentityProviderError, NotFoundError
from inventory_iam.services.directory import Account, DirectoryStore
from inventory_iam.services.identity import IdentityProvider


class InMemoryDirectory(DirectoryStore):
    MUTATIONS = {'insert', 'update', 'delete'}

    def __init__(self, accounts=(), calls: Optional[list] = None):
        self.rows: Dict[int, Account] = {}
        self.calls: List[tuple] = calls if calls is not None else []
        self.fail_on: Set[str] = set()
        self._next_id = 1
        for a in accounts:
            self.seed(a.identity, a.role, a.department, a.account_type)

    def seed(self, identity: str, role: Role, department: Department = Department.DEVOPS,
             account_type: AccountType = AccountType.TYPE_0) -> Account:
        account = Account(self._next_id, identity, department, role, account_type)
        self.rows[account.id] = account
        self._next_id += 1
        return account

    def _call(self, op: str, *args):
        self.calls.append(('directory.' + op,) + args)
        if op in self.fail_on:
            raise DirectoryError(op, RuntimeError('injected'))

    @property
    def mutations(self):
        return [c for c in self.calls if c[0].split('.', 1)[1] in self.MUTATIONS]

    def find_by_identity(self, identity: str) -> Optional[Account]:
        self._call('find_by_identity', identity)
        return next((a for a in self.rows.values() if a.identity == identity), None)

    def find_by_id(self, account_id: int) -> Optional[Account]:
        self._call('find_by_id', account_id)
        return self.rows.get(account_id)

    def list_all(self) -> List[Account]:
        self._call('list_all')
        # unordered on purpose; callers sort
        return list(reversed(list(self.rows.values())))

    def insert(self, account: Account) -> int:
        self._call('insert', account.identity)
        new_id = self._next_id
        self._next_id += 1
        self.rows[new_id] = Account(new_id, account.identity, account.department, account.role,
                                    account.account_type, account.full_name)
        return new_id

    def update(self, account_id: int, fields: Dict[str, Any]) -> None:
        self._call('update', account_id, dict(fields))
        current = self.rows.get(account_id)
        if current is None:
            raise NotFoundError(f'User {account_id} not found')
        values = {
            'identity': current.identity, 'department': current.department, 'role': current.role,
            'account_type': current.account_type, 'full_name': current.full_name,
        }
        values.update(fields)
        self.rows[account_id] = Account(account_id, **values)

    def delete(self, account_id: int) -> None:
        self._call('delete', account_id)
        if self.rows.pop(account_id, None) is None:
            raise NotFoundError(f'User {account_id} not found')


class FakeIdentityProvider(IdentityProvider):
    def __init__(self, calls: Optional[list] = None):
        self.secrets: Dict[str, str] = {}
        self.calls: List[tuple] = calls if calls is not None else []
        self.fail_on: Set[str] = set()

    def _call(self, op: str, *args):
        self.calls.append(('idp.' + op,) + args)
        if op in self.fail_on:
            raise IdentityProviderError(f'{op} failed')

    def provision_identity(self, identity: str, initial_secret: str) -> None:
        self._call('provision_identity', identity)
        if identity in self.secrets:
            raise IdentityProviderError('identity already provisioned')
        self.secrets[identity] = initial_secret

    def has_identity(self, identity: str) -> bool:
        self._call('has_identity', identity)
        return identity in self.secrets

    def reset_secret(self, identity: str, secret: str) -> None:
        self._call('reset_secret', identity)
        if identity not in self.secrets:
            raise IdentityProviderError('identity not provisioned')
        self.secrets[identity] = secret

    def authenticate(self, identity: str, secret: str) -> bool:
        self._call('authenticate', identity)
        return self.secrets.get(identity) == secret
