"""
Informer exception hierarchy.

Configuration and sync failures are fatal and raised to the caller; handler
failures are retried and only ever surface through logs and metrics.
"""

from typing import Optional

from .models.events import EventKey


class InformerError(Exception):
    """Base class for informer errors"""
    pass


class ConfigurationError(InformerError):
    """A watch or the informer configuration cannot be set up"""
    pass


class SyncTimeoutError(InformerError):
    """Caches did not complete their initial sync before timeout or stop"""
    pass


class StaleEventError(InformerError):
    """An event refers to state that can no longer be recovered"""

    def __init__(self, message: str, event_key: Optional[EventKey] = None):
        super().__init__(message)
        self.event_key = event_key


class KeyExtractionError(StaleEventError):
    """An object key could not be derived from a cache notification"""
    pass


class HandlerError(InformerError):
    """A handler invocation failed for one queued event"""

    def __init__(self, event_key: EventKey, retries: int, cause: BaseException):
        super().__init__(f"error processing ({event_key}, retries {retries}): {cause}")
        self.event_key = event_key
        self.retries = retries
        self.cause = cause


class TransientHandlerError(HandlerError):
    """Handler failure that will be retried"""
    pass


class TerminalHandlerError(HandlerError):
    """Handler failure after all retries were used"""
    pass
