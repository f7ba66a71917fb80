"""Exception types raised across the relay."""

from datetime import timedelta


class RelayError(Exception):
    """Base error for relay failures."""


class ClientInputFault(RelayError):
    """A client sent a message that cannot be decoded or parsed."""


class StorageFault(RelayError):
    """The durable buffer could not complete an operation."""


class TransientFault(RelayError):
    """Forwarding a batch failed and should be retried later."""


class NoCredential(RelayError):
    """Forwarding was requested but no API token is configured."""

    def __init__(self, message: str = "no API token configured"):
        super().__init__(message)


class RateLimited(RelayError):
    """Manual sync refused because the sliding window is full."""

    def __init__(self, retry_after: timedelta):
        self.retry_after = retry_after
        seconds = max(0, round(retry_after.total_seconds()))
        super().__init__(f"rate limited: try again in {seconds}s")


class ConfigError(RelayError):
    """Configuration file or environment holds an unusable value."""


class SyncInProgress(RelayError):
    """A manual sync found another drain still running."""

    def __init__(self, message: str = "sync already in progress"):
        super().__init__(message)
