# ABOUTME: Exceptions shared by the connection provider and the HTTP layer.
# ABOUTME: ApiError carries the status code and structured JSON body returned to clients.

from typing import Optional


class StorageUnavailableError(Exception):
    """Raised when no connection to the storage target can be opened."""


class ApiError(Exception):
    """Request-level failure rendered as {error, message, queryTime}."""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: Optional[str] = None,
        query_time_ms: Optional[float] = None,
    ):
        super().__init__(message or error)
        self.status_code = status_code
        self.error = error
        self.message = message
        self.query_time_ms = query_time_ms

    def to_json(self) -> dict:
        body = {"error": self.error}
        if self.message:
            body["message"] = self.message
        if self.query_time_ms is not None:
            body["queryTime"] = f"{round(self.query_time_ms)}ms"
        return body
