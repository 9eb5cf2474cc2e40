"""Reusable validation helpers for account input.

All helpers raise ValidationError (400) so callers never compare raw strings.
"""
import re
from typing import Any, Optional

from inventory_iam.errors import ValidationError

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def validate_identity(raw: Any, field_name: str = 'email') -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError(f'{field_name} required')
    value = raw.strip()
    if not EMAIL_RE.match(value):
        raise ValidationError('Please enter a valid email address.')
    return value


def validate_optional_text(raw: Any, field_name: str, max_len: int = 128) -> Optional[str]:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(f'{field_name} must be a string')
    value = raw.strip()
    if len(value) > max_len:
        raise ValidationError(f'{field_name} too long (max {max_len})')
    return value or None


def validate_secret(raw: Any, min_len: int) -> str:
    if not isinstance(raw, str) or len(raw) < min_len:
        raise ValidationError(f'Password must be at least {min_len} characters long.')
    return raw


__all__ = ['validate_identity', 'validate_optional_text', 'validate_secret', 'EMAIL_RE']
