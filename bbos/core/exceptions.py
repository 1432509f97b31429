"""
Domain exception taxonomy

Every error raised by the service layer derives from DataCollectionError and
carries an HTTP status and a stable machine-readable code. The API layer
renders them as {"success": false, "error": code, "message": text}; the API
client maps the code back to the same class.
"""
from typing import Dict, Type


class DataCollectionError(Exception):
    """Base class for all domain errors"""
    status_code = 500
    code = "error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(DataCollectionError, ValueError):
    """Missing required field, bad date range, malformed definition"""
    status_code = 400
    code = "validation_error"


class DuplicateKeyError(DataCollectionError):
    """Unique constraint violation"""
    status_code = 409
    code = "duplicate_key"


class DuplicateAttachmentError(DuplicateKeyError):
    """The form is already attached to the schedule"""
    code = "duplicate_attachment"


class StatePreconditionError(DataCollectionError):
    """Operation not allowed in the current lifecycle state"""
    status_code = 409
    code = "invalid_state"


class StaleVersionError(DataCollectionError):
    """Optimistic version check failed"""
    status_code = 409
    code = "stale_version"


class NotFoundError(DataCollectionError):
    status_code = 404
    code = "not_found"


class AuthenticationError(DataCollectionError):
    status_code = 401
    code = "not_authenticated"


class PermissionDeniedError(DataCollectionError):
    status_code = 403
    code = "permission_denied"


ERRORS_BY_CODE: Dict[str, Type[DataCollectionError]] = {
    cls.code: cls
    for cls in (
        ValidationError,
        DuplicateKeyError,
        DuplicateAttachmentError,
        StatePreconditionError,
        StaleVersionError,
        NotFoundError,
        AuthenticationError,
        PermissionDeniedError,
    )
}
