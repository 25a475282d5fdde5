"""
Custom exceptions for the feed sync pipeline with structured error context.

Every exception carries a context dictionary so failures can be logged
and stored (``SourceSyncState.last_error``) with enough detail to debug
a single feed without re-running the whole sync.

Exception Hierarchy:
    SyncException (base)
    ├── FetchError
    │   ├── NetworkError
    │   └── ProtocolError
    │       └── ResponseTooLargeError
    ├── ParseError
    ├── PersistenceError
    │   └── UpsertError
    └── SyncAlreadyRunningError
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class SyncException(Exception):
    """
    Base exception for all sync-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (feed kind, url, status code, ...)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = dict(context or {})
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        details = {k: v for k, v in self.context.items() if k != "error_timestamp"}
        if details:
            context_str = ", ".join(f"{k}={v}" for k, v in details.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchError(SyncException):
    """Base exception for feed download failures."""
    pass


class NetworkError(FetchError):
    """
    Transport-level failure: timeout, DNS resolution, connection reset.

    Context should include:
        - url: The feed URL
        - file_kind / year: Feed identity
    """
    pass


class ProtocolError(FetchError):
    """
    The server answered, but not with something we accept.

    Raised for unexpected HTTP statuses (including redirects, which are
    never followed) and disallowed content types.

    Context should include:
        - url: The feed URL
        - status_code: HTTP status code
        - content_type: Response content type (if relevant)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        if status_code is not None:
            self.context.setdefault("status_code", status_code)


class ResponseTooLargeError(ProtocolError):
    """Response body exceeds the configured byte cap."""
    pass


# ============================================================================
# Parse Errors
# ============================================================================

class ParseError(SyncException):
    """
    A feed document is not well-formed XML.

    Individual rows with missing identity fields are dropped silently by
    the parsers; this is only raised when the document as a whole cannot
    be read.
    """
    pass


# ============================================================================
# Persistence Errors
# ============================================================================

class PersistenceError(SyncException):
    """
    Base exception for database failures while importing a feed.

    Context should include:
        - file_kind / year: Feed being imported
        - operation: What was being written
    """
    pass


class UpsertError(PersistenceError):
    """
    Exception raised when an upsert statement fails.

    Context should include:
        - table_name: Target table
        - external_key: Key of the record being upserted
    """
    pass


# ============================================================================
# Run Coordination
# ============================================================================

class SyncAlreadyRunningError(SyncException):
    """Another sync run holds the run lock."""
    pass
