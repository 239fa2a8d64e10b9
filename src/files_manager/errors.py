"""Error taxonomy shared by the service, worker and HTTP layers.

Every error carries a stable ``code`` and a short ``description`` that is
safe to show to callers. Filesystem paths, store details and tracebacks stay
in the logs.
"""

from typing import Any


class FilesError(Exception):
    """Base class for all caller-facing errors."""

    code: str = "internal"
    status_code: int = 500
    description: str = "Internal error"

    def __init__(self, description: str | None = None):
        if description is not None:
            self.description = description
        super().__init__(self.description)

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.description}}


class Unauthorized(FilesError):
    """Missing or invalid identity."""

    code = "unauthorized"
    status_code = 401
    description = "Unauthorized"


class InvalidArgument(FilesError):
    """Malformed create input, carrying the offending field."""

    code = "invalid_argument"
    status_code = 400

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Invalid argument: {field}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["error"]["field"] = self.field
        return data


class NotFound(FilesError):
    """Resource missing or not readable by the requester.

    Both cases deliberately produce the same error.
    """

    code = "not_found"
    status_code = 404
    description = "Not found"


class InvalidOperation(FilesError):
    code = "invalid_operation"
    status_code = 400
    description = "Invalid operation"


class StorageFailure(FilesError):
    """Blob I/O failed."""

    code = "storage_failure"
    status_code = 500
    description = "Storage failure"


class Internal(FilesError):
    code = "internal"
    status_code = 500
    description = "Internal error"


class TerminalJobError(Exception):
    """A derivative job that can never succeed and must not be retried."""
