"""Error kinds raised by the daybook core."""
from typing import Optional


class LedgerError(Exception):
    """Base class for daybook errors."""


class StorageFailure(LedgerError):
    """Durable read or write failed; the commit is not safe."""


class ConfigError(LedgerError):
    """Rejected configuration value (e.g. a malformed endpoint URL)."""


class RemoteFailure(LedgerError):
    """Network, HTTP or parse failure talking to the remote ledger."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
