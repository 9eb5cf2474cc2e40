"""Closed enumerations for roles, departments, account types and management actions.

Values are the exact strings stored in the directory. Extend cautiously; the
policy rules reference members, never raw strings.
"""
from __future__ import annotations
from enum import Enum
from typing import Any, Type, TypeVar

from inventory_iam.errors import ValidationError

E = TypeVar('E', bound=Enum)


class Role(str, Enum):
    SUPER_ADMIN = 'Super Admin'
    ADMIN = 'Admin'
    OPERATOR = 'Operator'
    REPORTER = 'Reporter'


class Department(str, Enum):
    ADMINISTRATORS = 'Administrators'
    CUSTOMER_SUPPORT = 'Customer Support'
    TECHNOLOGY_TEAM = 'Technology Team'
    PRODUCTION_TEAM = 'Production Team'
    QA_TEAM = 'QA Team'
    DEVOPS = 'DevOps'


class AccountType(str, Enum):
    TYPE_0 = '0'
    TYPE_1 = '1'
    TYPE_2 = '2'
    TYPE_3 = '3'
    TYPE_4 = '4'
    TYPE_5 = '5'


class Action(str, Enum):
    CREATE = 'Create'
    EDIT = 'Edit'
    DELETE = 'Delete'
    VIEW = 'View'


# Roles allowed to manage other accounts at all
MANAGER_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN})
# Roles an Admin may neither assign nor touch
PROTECTED_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN})


def parse_enum(enum_cls: Type[E], raw: Any, field_name: str) -> E:
    """Coerce raw input into enum_cls or raise ValidationError.

    Integers are accepted for string-valued enums (account_type 1 == '1').
    """
    if isinstance(raw, enum_cls):
        return raw
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError(f'{field_name} required')
    if isinstance(raw, bool):
        raise ValidationError(f'{field_name} invalid')
    value = str(raw).strip() if isinstance(raw, (str, int)) else raw
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ', '.join(m.value for m in enum_cls)
        raise ValidationError(f'{field_name} invalid (expected one of: {allowed})')


__all__ = [
    'Role', 'Department', 'AccountType', 'Action',
    'MANAGER_ROLES', 'PROTECTED_ROLES', 'parse_enum',
]
