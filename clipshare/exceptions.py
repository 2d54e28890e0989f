"""
Exception classes for the clips service.
Each carries the HTTP status code the API layer answers with.
"""


class ClipsException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class InvalidInput(ClipsException):
    """Raised when a required field is missing or malformed."""

    def __init__(self, message: str):
        super().__init__(message=message, status_code=400)


class UnsupportedMediaType(InvalidInput):
    """Raised when an upload is not an allowed video file."""

    def __init__(self, filename: str, content_type: str):
        super().__init__("Only video files are allowed (mp4, mov, avi, mkv, webm)")
        self.filename = filename
        self.content_type = content_type


class Forbidden(ClipsException):
    """Raised when a private clip is requested by an unprivileged caller."""

    def __init__(self, message: str = "This clip is private"):
        super().__init__(message=message, status_code=403)


class NotFound(ClipsException):
    """Raised when a clip or blob does not exist."""

    def __init__(self, what: str, identifier):
        super().__init__(message=f"{what} not found", status_code=404)
        self.identifier = identifier


class RangeNotSatisfiable(ClipsException):
    """Raised when a Range header falls outside the stored file."""

    def __init__(self, size: int):
        super().__init__(message="Requested range not satisfiable", status_code=416)
        self.size = size


class StorageFailure(ClipsException):
    """Raised when reading or writing blob bytes fails."""

    def __init__(self, operation: str, error: Exception):
        super().__init__(message=f"Storage {operation} failed: {error}", status_code=500)
        self.operation = operation


class RepositoryFailure(ClipsException):
    """Raised when a database operation fails."""

    def __init__(self, operation: str, error: Exception):
        super().__init__(message=f"Database {operation} failed: {error}", status_code=500)
        self.operation = operation
