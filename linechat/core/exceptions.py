"""Custom exception classes."""

from typing import Any, Dict, Optional

# Keep error bodies from the backend short enough for logs
BODY_EXCERPT_LENGTH = 500


class LineChatException(Exception):
    """Base exception for the LINE chat application."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class InvalidRequestError(LineChatException):
    """The backend rejected the request with a 4xx status; never retried."""

    def __init__(self, status: int, body: str = "") -> None:
        self.status = status
        self.body = body[:BODY_EXCERPT_LENGTH]
        super().__init__(
            f"invalid request: status {status} - {self.body}",
            status_code=400,
            details={"status": status, "body": self.body},
        )


class BackendUnavailableError(LineChatException):
    """The backend kept failing transiently until every retry attempt was used."""

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        attempts: int = 0,
    ) -> None:
        self.cause = cause
        self.attempts = attempts
        super().__init__(
            message,
            status_code=503,
            details={"attempts": attempts, "cause": repr(cause) if cause else None},
        )


class BackendTimeoutError(BackendUnavailableError):
    """Retries exhausted and the last failure was a timeout."""


class ModelError(LineChatException):
    """The backend answered but the payload could not be used."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, status_code=502, details=details)


class StreamCancelledError(LineChatException):
    """Streaming was stopped because the caller cancelled it."""

    def __init__(self, message: str = "streaming cancelled") -> None:
        super().__init__(message, status_code=499)


class StreamReadError(LineChatException):
    """Reading the streaming response body failed mid-stream."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, status_code=502, details=details)


class StorageError(LineChatException):
    """Session storage fault (not raised for missing or expired sessions)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, status_code=500, details=details)


class LineAPIError(LineChatException):
    """A call to the LINE Messaging API failed."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: str = "",
    ) -> None:
        self.status = status
        self.body = body[:BODY_EXCERPT_LENGTH]
        super().__init__(
            message,
            status_code=502,
            details={"status": status, "body": self.body},
        )
