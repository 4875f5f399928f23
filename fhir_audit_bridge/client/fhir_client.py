"""HTTP delivery of AuditEvent records to a FHIR server.

Each record is one ``POST`` to the configured endpoint.  Failures are
logged and the record is dropped: there is no retry and no queue that
survives the process.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable, List, Optional

import httpx

from fhir_audit_bridge.client.auth import (
    AuthProvider,
    NoAuthProvider,
    TokenProvider,
    create_auth_provider,
)
from fhir_audit_bridge.config.schema import BridgeSettings
from fhir_audit_bridge.constants import (
    CONNECTION_TIMEOUT_SECONDS,
    CONTENT_TYPE_FHIR_JSON,
    REQUEST_TIMEOUT_SECONDS,
    WORKER_POOL_SIZE,
    WORKER_QUEUE_SIZE,
)
from fhir_audit_bridge.audit.serialization import to_json
from fhir_audit_bridge.errors import DeliveryError

logger = logging.getLogger(__name__)

_STOP = object()


class _DaemonWorkerPool:
    """Fixed number of daemon threads draining a bounded task queue.

    Daemon threads never hold up interpreter exit, so tasks still queued
    or running at shutdown may be lost.
    """

    def __init__(self, size: int, queue_size: int, name: str) -> None:
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._closed = False
        self._threads: List[threading.Thread] = []
        for i in range(size):
            t = threading.Thread(target=self._run, name=f"{name}-{i}", daemon=True)
            t.start()
            self._threads.append(t)

    def submit(self, fn: Callable[..., Any], *args: Any) -> bool:
        """Queue ``fn(*args)``.  Returns ``False`` if closed or full."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait((fn, args))
        except queue.Full:
            return False
        return True

    def shutdown(self) -> None:
        """Stop accepting work.  Does not wait for in-flight tasks."""
        if self._closed:
            return
        self._closed = True
        for _ in self._threads:
            try:
                self._queue.put_nowait(_STOP)
            except queue.Full:
                break

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            fn, args = item
            try:
                fn(*args)
            except Exception as exc:
                logger.error("Async send failed: %s - %s", type(exc).__name__, exc)


class FhirClient:
    """Sends FHIR AuditEvent records to a single endpoint.

    Parameters
    ----------
    server_url:
        Complete AuditEvent endpoint.  One trailing ``/`` is removed and
        nothing is appended.
    auth_provider:
        Supplies the ``Authorization`` header; defaults to no auth.
    async_enabled:
        When ``True``, :meth:`send` hands records to background workers
        and returns immediately.
    connect_timeout / request_timeout:
        Seconds allowed for connecting, and for each later phase (write,
        read, pool wait).  *request_timeout* bounds every phase on its own,
        not the whole exchange: a slowly trickling response can take longer.
    transport:
        Optional ``httpx`` transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        server_url: str,
        *,
        auth_provider: Optional[AuthProvider] = None,
        async_enabled: bool = True,
        connect_timeout: float = CONNECTION_TIMEOUT_SECONDS,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        pool_size: int = WORKER_POOL_SIZE,
        queue_size: int = WORKER_QUEUE_SIZE,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._server_url = server_url
        self._auth = auth_provider or NoAuthProvider()
        self._async_enabled = async_enabled
        self._closed = False
        self._lock = threading.Lock()

        self._http = httpx.Client(
            timeout=httpx.Timeout(request_timeout, connect=connect_timeout),
            transport=transport,
        )
        self._pool: Optional[_DaemonWorkerPool] = None
        if async_enabled:
            self._pool = _DaemonWorkerPool(pool_size, queue_size, name="fhir-client-worker")

        logger.info(
            "FhirClient initialized - URL: %s, Auth: %s, Async: %s",
            server_url,
            self._auth.auth_type.value,
            async_enabled,
        )

    @classmethod
    def from_settings(
        cls,
        settings: BridgeSettings,
        *,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> FhirClient:
        """Build a client from resolved process settings."""
        auth = create_auth_provider(
            settings.auth_type,
            username=settings.auth_username,
            password=settings.auth_password,
            token=settings.auth_token,
            token_provider=token_provider,
        )
        return cls(
            settings.server_url,
            auth_provider=auth,
            async_enabled=settings.async_enabled,
            connect_timeout=settings.connect_timeout,
            request_timeout=settings.request_timeout,
            transport=transport,
        )

    # ── properties ──────────────────────────────────────────────────

    @property
    def server_url(self) -> str:
        return self._server_url

    @property
    def endpoint(self) -> str:
        """The URL records are posted to."""
        url = self._server_url
        return url[:-1] if url.endswith("/") else url

    @property
    def async_enabled(self) -> bool:
        return self._async_enabled

    @property
    def closed(self) -> bool:
        return self._closed

    # ── public API ──────────────────────────────────────────────────

    def send(self, record: Optional[dict]) -> None:
        """Deliver *record* without ever raising.

        In async mode the record is queued for a background worker; in
        sync mode it is sent on the calling thread and errors are logged.
        """
        if record is None:
            logger.warning("Received null AuditEvent, skipping")
            return
        if self._closed:
            logger.warning("FhirClient is closed, dropping AuditEvent %s", record.get("id"))
            return

        if self._pool is not None:
            if not self._pool.submit(self._deliver_logged, record):
                logger.error(
                    "Async send queue unavailable, dropping AuditEvent %s", record.get("id")
                )
            return

        self._deliver_logged(record)

    def send_sync(self, record: Optional[dict]) -> Optional[int]:
        """Deliver *record* on the calling thread.

        Returns the HTTP status code of the server's response, or ``None``
        when *record* is ``None``.  A non-2xx response is logged and its
        status returned; callers decide whether that is a failure.

        Raises
        ------
        DeliveryError
            If the request could not be completed (connection error,
            timeout, serialization failure, an unusable ``Authorization``
            header or a closed client).
        """
        if record is None:
            logger.warning("Received null AuditEvent, skipping")
            return None
        if self._closed:
            raise DeliveryError("client is closed", url=self.endpoint)
        return self._deliver(record)

    def close(self) -> None:
        """Stop accepting records and release the HTTP client.  Idempotent.

        Records already handed to background workers may be lost.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._pool is not None:
            self._pool.shutdown()
        self._http.close()
        logger.debug("FhirClient closed")

    # ── delivery ────────────────────────────────────────────────────

    def _deliver_logged(self, record: dict) -> None:
        try:
            self._deliver(record)
        except DeliveryError as exc:
            logger.error("Failed to send AuditEvent to FHIR server: %s", exc)
            if exc.orig_exc is not None:
                logger.debug("Full error:", exc_info=exc.orig_exc)
        except Exception as exc:
            logger.error(
                "Failed to send AuditEvent to FHIR server: %s - %s", type(exc).__name__, exc
            )
            logger.debug("Full error:", exc_info=True)

    def _deliver(self, record: dict) -> int:
        url = self.endpoint
        try:
            body = to_json(record)
        except (TypeError, ValueError) as exc:
            raise DeliveryError("AuditEvent is not JSON serializable", url=url, orig_exc=exc) from exc

        logger.debug("Sending AuditEvent to %s: %s", url, body)

        headers = {
            "Content-Type": CONTENT_TYPE_FHIR_JSON,
            "Accept": CONTENT_TYPE_FHIR_JSON,
        }
        try:
            auth_header = self._auth.get_header()
        except Exception as exc:
            raise DeliveryError(
                f"could not obtain Authorization header: {type(exc).__name__}",
                url=url,
                orig_exc=exc,
            ) from exc
        if auth_header:
            headers["Authorization"] = auth_header

        try:
            response = self._http.post(url, content=body.encode("utf-8"), headers=headers)
        except httpx.HTTPError as exc:
            raise DeliveryError(f"{type(exc).__name__} - {exc}", url=url, orig_exc=exc) from exc
        except RuntimeError as exc:
            # httpx raises RuntimeError once the client has been closed
            raise DeliveryError(str(exc), url=url, orig_exc=exc) from exc
        except UnicodeEncodeError as exc:
            # header values must be ASCII
            raise DeliveryError(
                f"request headers are not encodable: {type(exc).__name__}", url=url, orig_exc=exc
            ) from exc

        status = response.status_code
        if 200 <= status < 300:
            logger.info("AuditEvent sent successfully. Status: %d", status)
            logger.debug("Response: %s", response.text)
        else:
            logger.error("FHIR server returned error. Status: %d, Body: %s", status, response.text)
        return status
