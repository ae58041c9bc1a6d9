"""Authenticated HTTPS transport for WebDAV methods (PROPFIND, REPORT, PUT)."""

from __future__ import annotations

import time
from dataclasses import dataclass

import httpx
import structlog

from cardbridge.clients.trust import load_bundle
from cardbridge.core.errors import TransportError


@dataclass(frozen=True)
class DAVResponse:
    """Status and raw body of one completed HTTP exchange.

    Any status is a completed exchange; interpreting 207/201 is the
    caller's job.
    """

    status_code: int
    content: bytes
    url: str

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class DAVTransport:
    """Thin httpx wrapper that always sends Basic auth and verifies TLS.

    Usage:
        transport = DAVTransport("user@icloud.com", "app-password", ca_bundle=path)
        resp = transport.request("PROPFIND", url, content=body, headers={"Depth": "0"})
    """

    def __init__(
        self,
        username: str,
        password: str,
        *,
        ca_bundle: str,
        timeout: float = 30.0,
        max_redirects: int = 10,
        user_agent: str = "cardbridge",
        log: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._log = log or structlog.get_logger(component="transport")
        # check_hostname and CERT_REQUIRED are the create_default_context defaults
        context = load_bundle(ca_bundle)
        self._http = httpx.Client(
            auth=httpx.BasicAuth(username, password),
            headers={"User-Agent": user_agent},
            verify=context,
            timeout=timeout,
            follow_redirects=True,
            max_redirects=max_redirects,
        )

    def request(
        self,
        method: str,
        url: str,
        *,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> DAVResponse:
        """Execute one request and return its status and body.

        Raises:
            TransportError: On connection, TLS, timeout, or redirect-limit
                failures. HTTP error statuses are returned, not raised.
        """
        started = time.monotonic()
        try:
            resp = self._http.request(method, url, content=content, headers=headers)
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            self._log.debug(
                "dav_request_failed",
                method=method,
                url=url,
                error=type(exc).__name__,
            )
            raise TransportError(method, url, str(exc) or type(exc).__name__) from exc

        self._log.debug(
            "dav_request",
            method=method,
            url=url,
            status=resp.status_code,
            elapsed_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return DAVResponse(status_code=resp.status_code, content=resp.content, url=str(resp.url))

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> DAVTransport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
