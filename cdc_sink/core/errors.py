"""
Error taxonomy for the CDC event sink.

Per-message errors (DecodeError, ProcessingError) are recovered where they
occur and only ever reach the log. Broker errors are retried by the
connection supervisor; RetryExhaustedError and ConfigurationError end the
process.
"""

from typing import Optional, Union


class CDCSinkError(Exception):
    """Base class for all CDC sink errors."""
    pass


class ConfigurationError(CDCSinkError):
    """Raised when the configuration is invalid."""
    pass


class DecodeError(CDCSinkError):
    """Raised when a message payload cannot be decoded into a CDC event."""

    def __init__(self, payload: Union[bytes, str, None], cause: Optional[BaseException] = None):
        self.payload = payload
        self.cause = cause
        super().__init__(f"Failed to decode CDC event: {cause}")

    def payload_text(self) -> str:
        """Best-effort text form of the offending payload for logging."""
        if isinstance(self.payload, bytes):
            return self.payload.decode("utf-8", errors="replace")
        return str(self.payload)


class ProcessingError(CDCSinkError):
    """Raised when recording a valid event fails."""

    def __init__(self, table: str, operation: str, cause: Optional[BaseException] = None):
        self.table = table
        self.operation = operation
        self.cause = cause
        super().__init__(f"Failed to process {operation} event on {table}: {cause}")


class BrokerConnectionError(CDCSinkError):
    """Raised when the broker cannot be reached, subscribed to, or fails fatally."""
    pass


class RetryExhaustedError(CDCSinkError):
    """Raised when the supervisor has used its whole retry budget."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Giving up after {attempts} connection attempts: {last_error}")
