from typing import Optional


class HiveError(Exception):
    """Base exception for the Hive client."""

    pass


class TransportError(HiveError):
    """Raised when the transport binding cannot be opened."""

    pass


class ProtocolError(HiveError):
    """Raised when an RPC fails at the transport or Thrift layer."""

    pass


class ApplicationError(HiveError):
    """Raised when the server answers with a non-success status."""

    def __init__(self, message: str, status_text: Optional[str] = None):
        super().__init__(message)
        self.status_text = status_text if status_text is not None else message


class SessionError(HiveError):
    """Raised when a session is missing, closed or was not granted."""

    pass


class OperationGoneError(HiveError):
    """Raised when the server no longer knows an operation handle."""

    pass
