"""
Write path to the remote ledger.

Every send() commits to the local store first; the remote POST is a single
best-effort attempt whose failure is reported on the outcome instead of
raised. Nothing is retried or queued for later.
"""
import enum
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

import requests

import ledger_settings as settings
from ledger_errors import RemoteFailure
from ledger_store import LedgerStore
from mode_controller import ModeController

logger = logging.getLogger(__name__)

MSG_LOCAL = "Saved locally"
MSG_LOCAL_REMOTE_ERROR = "Saved locally (remote error)"


class OperationKind(enum.Enum):
    SALE = "saveSale"
    CASH = "saveCash"
    EXPENSE = "saveExpense"


class SyncGateway:
    def __init__(
        self,
        store: LedgerStore,
        modes: ModeController,
        session: Optional[requests.Session] = None,
        timeout: float = settings.LEDGER_API_TIMEOUT,
        origin: Optional[str] = settings.LEDGER_ORIGIN,
        max_workers: int = 2,
    ):
        self.store = store
        self.modes = modes
        self.session = session or requests.Session()
        self.timeout = timeout
        self.origin = origin
        self._committers: Dict[OperationKind, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
            OperationKind.SALE: store.commit_sale,
            OperationKind.CASH: store.commit_cash,
            OperationKind.EXPENSE: store.commit_expense,
        }
        missing = set(OperationKind) - set(self._committers)
        if missing:
            raise RuntimeError(f"No local commit for {sorted(k.value for k in missing)}")
        self._max_workers = max_workers
        self._pool: Optional[ThreadPoolExecutor] = None

    # ---------- LOCAL ----------
    def _commit_local(self, kind: OperationKind, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            commit = self._committers[OperationKind(kind)]
        except (KeyError, ValueError):
            raise ValueError(f"Unknown operation kind: {kind!r}") from None
        return commit(payload)

    # ---------- REMOTE ----------
    def _headers(self) -> Dict[str, str]:
        headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }
        if self.origin:
            headers['Origin'] = self.origin
        return headers

    @staticmethod
    def _json_body(resp: requests.Response) -> Dict[str, Any]:
        if not resp.ok:
            raise RemoteFailure(f"HTTP {resp.status_code}", status=resp.status_code)
        try:
            body = resp.json()
        except ValueError as exc:
            raise RemoteFailure(f"Bad JSON response: {resp.text[:200]}", status=resp.status_code) from exc
        if not isinstance(body, dict):
            raise RemoteFailure(f"Unexpected response: {body!r}"[:200], status=resp.status_code)
        return body

    def _post(self, url: str, action: str, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self.session.post(
                url,
                json={'action': action, 'data': data},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise RemoteFailure(str(exc) or exc.__class__.__name__) from exc
        return self._json_body(resp)

    def _push(self, url: str, kind: OperationKind, payload: Dict[str, Any], record: Dict[str, Any]) -> Dict[str, Any]:
        try:
            body = self._post(url, kind.value, payload)
            if body.get('success') is False:
                raise RemoteFailure(body.get('message') or body.get('error') or 'Remote rejected the write')
        except RemoteFailure as exc:
            logger.warning("Remote %s failed, kept local record %s: %s", kind.value, record.get('id'), exc)
            return {
                'success': True,
                'local': True,
                'remoteError': str(exc),
                'message': MSG_LOCAL_REMOTE_ERROR,
                'data': record,
            }
        logger.info("Remote %s accepted record %s", kind.value, record.get('id'))
        result = dict(body)
        result['local'] = False
        return result

    # ---------- PUBLIC ----------
    def send(self, kind: OperationKind, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Commit locally, then try the remote once. StorageFailure propagates."""
        record = self._commit_local(kind, payload)
        url = self.modes.endpoint
        if not url:
            return {'success': True, 'local': True, 'message': MSG_LOCAL, 'data': record}
        return self._push(url, OperationKind(kind), payload, record)

    def send_async(self, kind: OperationKind, payload: Dict[str, Any]) -> "Future[Dict[str, Any]]":
        """Like send(), but only the remote attempt runs in the background.

        The local commit has completed when this returns, so a caller may
        drop or cancel the future without losing the record.
        """
        record = self._commit_local(kind, payload)
        url = self.modes.endpoint
        if not url:
            done: Future = Future()
            done.set_result({'success': True, 'local': True, 'message': MSG_LOCAL, 'data': record})
            return done
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix='ledger-sync')
        return self._pool.submit(self._push, url, OperationKind(kind), dict(payload), record)

    def test_connection(self) -> Dict[str, Any]:
        """Probe the endpoint with GET, falling back to POST. Diagnostics only."""
        url = self.modes.endpoint
        if not url:
            return {'success': False, 'message': 'No remote endpoint configured'}
        try:
            resp = self.session.get(
                url,
                params={'action': 'test', 't': int(time.time() * 1000)},
                headers={'Accept': 'application/json'},
                timeout=self.timeout,
            )
            details = self._json_body(resp)
            return {'success': True, 'message': 'GET connection successful', 'details': details}
        except (requests.RequestException, RemoteFailure) as exc:
            logger.info("GET probe failed, trying POST: %s", exc)
        try:
            details = self._post(url, 'test', {})
            return {'success': True, 'message': 'POST connection successful', 'details': details}
        except RemoteFailure as exc:
            logger.warning("Connection test against %s failed: %s", url, exc)
            return {
                'success': False,
                'message': (
                    f"Connection failed: {exc}\n\n"
                    "Make sure:\n"
                    "1. The endpoint is deployed and reachable without sign-in\n"
                    "2. The endpoint has been authorized (open the URL in a browser first)\n"
                    f"3. It accepts requests from origin {self.origin or '(none)'}"
                ),
            }

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=False)
            self._pool = None
        self.session.close()
