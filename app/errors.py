from typing import Any, Optional


class RelayError(Exception):
    """Base error for the relay service."""


class PlatformError(RelayError):
    """The WhatsApp bridge rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class SessionNotStartedError(PlatformError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not started: {session_id}", status_code=404)


class TokenValidationError(RelayError):
    """Bearer token missing, rejected, or not verifiable."""

    def __init__(self, message: str, status_code: int = 401, details: Any = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)
