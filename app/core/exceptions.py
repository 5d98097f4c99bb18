from fastapi import status


class AppError(Exception):
    """Base for errors that map onto an http status and a short client message."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Something went wrong"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ValidationFailure(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class Conflict(ValidationFailure):
    default_message = "A record with that value already exists."


class StorageFailure(AppError):
    """Object store call failed or timed out. The store-side state may be unknown."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Storage backend unavailable"


class MetadataFailure(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Metadata store unavailable"
