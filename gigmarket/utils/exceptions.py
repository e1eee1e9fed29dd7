class ServiceError(Exception):
    code = "SERVICE_ERROR"

    def __init__(self, message="Service error", details=None, code=None):
        self.code = code or self.code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self):
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class InvalidTransition(ServiceError):
    """The requested state change is not legal from the current state."""
    code = "INVALID_TRANSITION"


class Forbidden(ServiceError):
    """The caller's identity or role may not perform this operation."""
    code = "FORBIDDEN"


class RevisionLimitExceeded(ServiceError):
    code = "REVISION_LIMIT_EXCEEDED"


class NotFound(ServiceError):
    code = "NOT_FOUND"


class DuplicateReview(ServiceError):
    code = "DUPLICATE_REVIEW"


class ValidationFailed(ServiceError):
    code = "VALIDATION_ERROR"


class PersistenceUnavailable(ServiceError):
    """A best-effort downstream write could not complete."""
    code = "PERSISTENCE_UNAVAILABLE"


class IdentityUnavailable(ServiceError):
    """No authenticated caller could be resolved for the current request."""
    code = "IDENTITY_UNAVAILABLE"
