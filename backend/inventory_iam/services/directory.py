"""Directory Store contract and its SQLAlchemy implementation.

The core only talks to `DirectoryStore`; records cross the boundary as frozen
`Account` values so nothing outside this module holds ORM state.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_iam.constants.roles import AccountType, Department, Role
from inventory_iam.errors import DirectoryError, NotFoundError, ValidationError
from inventory_iam.models.account import User

log = logging.getLogger(__name__)

DUPLICATE_IDENTITY = 'User with this email already exists.'

# Account field -> users column
FIELD_COLUMNS = {
    'identity': 'email',
    'full_name': 'full_name',
    'department': 'department',
    'role': 'role',
    'account_type': 'account_type',
}


@dataclass(frozen=True)
class Account:
    id: Optional[int]
    identity: str
    department: Department
    role: Role
    account_type: AccountType
    full_name: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'email': self.identity,
            'full_name': self.full_name,
            'department': self.department.value,
            'role': self.role.value,
            'account_type': self.account_type.value,
        }


class DirectoryStore(ABC):
    """Durable table of accounts keyed by identity and by id. Failures raise DirectoryError."""

    @abstractmethod
    def find_by_identity(self, identity: str) -> Optional[Account]: ...

    @abstractmethod
    def find_by_id(self, account_id: int) -> Optional[Account]: ...

    @abstractmethod
    def list_all(self) -> List[Account]: ...

    @abstractmethod
    def insert(self, account: Account) -> int: ...

    @abstractmethod
    def update(self, account_id: int, fields: Dict[str, Any]) -> None: ...

    @abstractmethod
    def delete(self, account_id: int) -> None: ...


def _to_account(row: User) -> Account:
    """Raises DirectoryError when a stored value is outside the closed enums (legacy rows)."""
    try:
        return Account(
            id=row.id,
            identity=row.email,
            full_name=row.full_name,
            department=Department(row.department),
            role=Role(row.role),
            account_type=AccountType(row.account_type),
        )
    except ValueError as e:
        log.warning('user %s (%s) has an unreadable record: %s', row.id, row.email, e)
        raise DirectoryError('decode', e) from e


def _column_value(value):
    return getattr(value, 'value', value)


class SqlDirectoryStore(DirectoryStore):
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _fail(self, session: Session, operation: str, exc: BaseException):
        try:
            session.rollback()
        except SQLAlchemyError:
            log.warning('rollback after failed %s also failed', operation)
        log.error('directory %s failed: %s', operation, exc)
        if isinstance(exc, IntegrityError):
            raise ValidationError(DUPLICATE_IDENTITY) from exc
        raise DirectoryError(operation, exc) from exc

    def find_by_identity(self, identity: str) -> Optional[Account]:
        session = self._session_factory()
        try:
            row = session.execute(select(User).where(User.email == identity)).scalar_one_or_none()
        except SQLAlchemyError as e:
            self._fail(session, 'find_by_identity', e)
        return _to_account(row) if row else None

    def find_by_id(self, account_id: int) -> Optional[Account]:
        session = self._session_factory()
        try:
            row = session.get(User, account_id)
        except SQLAlchemyError as e:
            self._fail(session, 'find_by_id', e)
        return _to_account(row) if row else None

    def list_all(self) -> List[Account]:
        session = self._session_factory()
        try:
            rows = session.execute(select(User)).scalars().all()
        except SQLAlchemyError as e:
            self._fail(session, 'list_all', e)
        accounts = []
        for r in rows:
            try:
                accounts.append(_to_account(r))
            except DirectoryError:
                # one bad row must not hide the rest of the directory
                continue
        return accounts

    def insert(self, account: Account) -> int:
        session = self._session_factory()
        row = User(
            email=account.identity,
            full_name=account.full_name,
            department=account.department.value,
            role=account.role.value,
            account_type=account.account_type.value,
        )
        try:
            session.add(row)
            session.commit()
        except SQLAlchemyError as e:
            self._fail(session, 'insert', e)
        return row.id

    def update(self, account_id: int, fields: Dict[str, Any]) -> None:
        session = self._session_factory()
        try:
            row = session.get(User, account_id)
            if row is None:
                raise NotFoundError(f'User {account_id} not found')
            for key, value in fields.items():
                setattr(row, FIELD_COLUMNS[key], _column_value(value))
            session.commit()
        except SQLAlchemyError as e:
            self._fail(session, 'update', e)

    def delete(self, account_id: int) -> None:
        session = self._session_factory()
        try:
            row = session.get(User, account_id)
            if row is None:
                raise NotFoundError(f'User {account_id} not found')
            session.delete(row)
            session.commit()
        except SQLAlchemyError as e:
            self._fail(session, 'delete', e)


__all__ = ['Account', 'DirectoryStore', 'SqlDirectoryStore', 'FIELD_COLUMNS', 'DUPLICATE_IDENTITY']
