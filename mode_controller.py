"""Remote endpoint configuration and the local-only / remote-backed mode it implies."""
import enum
import logging
from typing import Optional
from urllib.parse import urlparse

from ledger_errors import ConfigError
from ledger_store import LedgerStore

logger = logging.getLogger(__name__)


class Mode(enum.Enum):
    LOCAL_ONLY = "local-only"
    REMOTE_BACKED = "remote-backed"


def validate_endpoint(url: str) -> str:
    """Return the trimmed URL if it is an absolute http(s) URL, else raise ConfigError."""
    if not isinstance(url, str):
        raise ConfigError(f"Endpoint must be a string, got {type(url).__name__}")
    text = url.strip()
    try:
        parsed = urlparse(text)
    except ValueError as exc:
        raise ConfigError(f"Invalid endpoint URL {url!r}: {exc}") from exc
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc or not parsed.hostname:
        raise ConfigError(f"Endpoint must be an absolute http(s) URL, got {url!r}")
    return text


class ModeController:
    def __init__(self, store: LedgerStore, default_endpoint: Optional[str] = None):
        self._store = store
        self._endpoint = store.load_endpoint()
        if default_endpoint and not store.has_endpoint_config():
            try:
                self._endpoint = validate_endpoint(default_endpoint)
            except ConfigError:
                logger.warning("Ignoring malformed default endpoint %r", default_endpoint)

    @property
    def endpoint(self) -> Optional[str]:
        return self._endpoint

    def set_endpoint(self, url: Optional[str]) -> Mode:
        """Validate, persist and apply a new endpoint; blank or None clears it.

        A clear is persisted too, so a default endpoint does not come back
        on the next start.

        On ConfigError (or StorageFailure) the previous endpoint stays active.
        """
        if url is not None and not isinstance(url, str):
            raise ConfigError(f"Endpoint must be a string or null, got {type(url).__name__}")
        new = validate_endpoint(url) if url and url.strip() else None
        self._store.save_endpoint(new)
        self._endpoint = new
        mode = self.current_mode()
        logger.info("Endpoint %s; mode=%s", new or "cleared", mode.value)
        return mode

    def current_mode(self) -> Mode:
        return Mode.REMOTE_BACKED if self._endpoint else Mode.LOCAL_ONLY

    def is_remote_backed(self) -> bool:
        return self.current_mode() is Mode.REMOTE_BACKED
