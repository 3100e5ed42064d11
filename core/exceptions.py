# core/exceptions.py
"""
Application error hierarchy

Every error raised from a view or service that should reach the client is an
AppError; the factory's error handlers turn it into the JSON envelope.
"""

from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base exception for operational errors with an HTTP status"""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None,
                 errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors

    @property
    def status(self) -> str:
        return 'fail' if 400 <= self.status_code < 500 else 'error'

    def to_dict(self) -> Dict[str, Any]:
        body = {'status': self.status, 'message': self.message}
        if self.errors:
            body['errors'] = self.errors
        return body


class ValidationFailed(AppError):
    """Request payload failed validation"""
    status_code = 400

    def __init__(self, message: str = 'Validation failed', errors=None):
        super().__init__(message, errors=errors)

    @property
    def status(self) -> str:
        return 'error'


class BadRequestError(AppError):
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    """Duplicate names, e-mails and similar uniqueness conflicts"""
    status_code = 400


class DuplicateVoteError(ConflictError):
    def __init__(self, message: str = 'You have already voted for this nomination'):
        super().__init__(message)


class InvalidTransitionError(AppError):
    status_code = 400

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot change status from {current} to {requested}")
        self.current = current
        self.requested = requested


class AuthenticationError(AppError):
    status_code = 401


class AccountLockedError(AppError):
    status_code = 423


class PermissionDeniedError(AppError):
    status_code = 403


class StorageError(AppError):
    """Uploaded file could not be stored or read"""
    status_code = 400
