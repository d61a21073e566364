"""
Access control exceptions.

Denials from the evaluator are never exceptions; these cover the
administration path, where a rejected mutation must reach the caller.
"""
from fastapi import status


class AccessControlError(Exception):
    """Base class. status_code is what the API layer responds with."""
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PermissionDeniedError(AccessControlError):
    """The acting principal may not perform this administrative mutation."""
    status_code = status.HTTP_403_FORBIDDEN


class RuleValidationError(AccessControlError):
    """A rule is malformed or grants actions it does not make available."""
    status_code = status.HTTP_400_BAD_REQUEST


class RuleNotFoundError(AccessControlError):
    status_code = status.HTTP_404_NOT_FOUND


class RuleConflictError(AccessControlError):
    """Duplicate feature name, or a stale expected_version."""
    status_code = status.HTTP_409_CONFLICT


class StoreUnavailableError(AccessControlError):
    """The rule store could not be reached or failed mid-write."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
