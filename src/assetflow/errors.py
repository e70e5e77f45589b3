"""Error taxonomy shared by the lineage graph, orchestration core and API.

Every error carries a stable machine-readable ``code`` plus a human-readable
message. Routers never build error payloads themselves; the exception handler
in ``assetflow.api`` renders any ``AssetFlowError`` via ``to_payload``.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Stable error kinds returned to callers."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE_RELATIONSHIP = "DUPLICATE_RELATIONSHIP"
    CYCLE_DETECTED = "CYCLE_DETECTED"
    ALREADY_TERMINAL = "ALREADY_TERMINAL"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    DATABASE_ERROR = "DATABASE_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AssetFlowError(Exception):
    """Base class for expected failures surfaced to callers."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    http_status: int = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {
            "success": False,
            "error": {"code": self.code.value, "message": self.message},
        }


class ValidationError(AssetFlowError):
    """Malformed or missing input; fixable by the caller."""

    code = ErrorCode.VALIDATION_ERROR
    http_status = 400
    default_message = "Invalid request"


class SelfLoopError(ValidationError):
    """Relationship whose parent and child are the same asset."""

    default_message = "An asset cannot have a relationship with itself"


class UnauthenticatedError(AssetFlowError):
    code = ErrorCode.UNAUTHENTICATED
    http_status = 401
    default_message = "Authentication required"


class NotFoundError(AssetFlowError):
    """Missing entity, or one owned by somebody else.

    Both cases share this error, so callers cannot tell whether another
    user's record exists.
    """

    code = ErrorCode.NOT_FOUND
    http_status = 404
    default_message = "Not found"


class DuplicateRelationshipError(AssetFlowError):
    code = ErrorCode.DUPLICATE_RELATIONSHIP
    http_status = 409
    default_message = "Relationship already exists between these assets"


class CycleDetectedError(AssetFlowError):
    code = ErrorCode.CYCLE_DETECTED
    http_status = 409
    default_message = "Relationship would create a lineage cycle"


class AlreadyTerminalError(AssetFlowError):
    code = ErrorCode.ALREADY_TERMINAL
    http_status = 409
    default_message = "Already in a terminal state"


class InvalidTransitionError(AssetFlowError):
    code = ErrorCode.INVALID_TRANSITION
    http_status = 409
    default_message = "Invalid state transition"


class DatabaseError(AssetFlowError):
    """Persistence-layer failure; not caller-fixable."""

    code = ErrorCode.DATABASE_ERROR
    http_status = 500
    default_message = "Database operation failed"


class StorageError(AssetFlowError):
    code = ErrorCode.STORAGE_ERROR
    http_status = 500
    default_message = "Storage operation failed"


class InternalError(AssetFlowError):
    code = ErrorCode.INTERNAL_ERROR
    http_status = 500
    default_message = "Internal server error"
