"""
Core utilities and configuration for the water-quality sync service.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration
    clock: Timezone-aware UTC helpers

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import FetchError, NetworkError
    from core.logging import setup_logging

Example:
    setup_logging()

    async with async_session_maker() as session:
        runner = SyncRunner(session)
        summary = await runner.sync_from_terviseamet(force=True)
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    "utcnow",
    # Exceptions
    "SyncException",
    "FetchError",
    "NetworkError",
    "ProtocolError",
    "ResponseTooLargeError",
    "ParseError",
    "PersistenceError",
    "UpsertError",
    "SyncAlreadyRunningError",
]
