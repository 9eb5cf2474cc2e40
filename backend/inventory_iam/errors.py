"""Error taxonomy shared by the policy engine, session authorizer and lifecycle controller.

Every error carries an HTTP status and title so the app-level error handler can
render the standard ``{"error": {status, title, detail}}`` payload.
"""
from typing import Optional


class IamError(Exception):
    status = 500
    title = 'Internal Server Error'

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_payload(self):
        return {
            'error': {
                'status': self.status,
                'title': self.title,
                'detail': self.detail,
            }
        }


class ValidationError(IamError, ValueError):
    status = 400
    title = 'Bad Request'


class AuthorizationError(IamError):
    status = 403
    title = 'Forbidden'

    def __init__(self, reason: str, rule: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.rule = rule


class NotFoundError(IamError):
    status = 404
    title = 'Not Found'


class DirectoryError(IamError):
    status = 503
    title = 'Service Unavailable'
    RETRY_MESSAGE = 'Directory unavailable, please retry later.'

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__(self.RETRY_MESSAGE)
        self.operation = operation
        self.cause = cause


class IdentityProviderError(IamError):
    status = 502
    title = 'Bad Gateway'


class SessionResolutionError(IamError):
    status = 403
    title = 'Forbidden'


__all__ = [
    'IamError',
    'ValidationError',
    'AuthorizationError',
    'NotFoundError',
    'DirectoryError',
    'IdentityProviderError',
    'SessionResolutionError',
]
