"""Address-book discovery: ordered PROPFIND strategies and the driver that tries them.

Each strategy either returns a DiscoveryResult or raises a CardBridgeError.
The driver logs each failure, moves on to the next strategy, and raises
DiscoveryFailed with every attempt once all of them are exhausted.

Hrefs in a multi-status body are resolved against the URL that actually
answered, so a redirect to another host (iCloud shards accounts across
``pNN-contacts.icloud.com``) carries through to the following steps.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urljoin

import structlog

from cardbridge.clients.multistatus import (
    CARDDAV,
    DAV,
    PROPFIND_AB_HOME,
    PROPFIND_PRINCIPAL,
    find_href,
    find_href_containing,
)
from cardbridge.clients.transport import DAVResponse, DAVTransport
from cardbridge.core.errors import CardBridgeError, DiscoveryAttempt, DiscoveryFailed, DiscoveryStepFailed

WELL_KNOWN_PATH = "/.well-known/carddav"
MULTI_STATUS = 207

PrincipalCallback = Callable[[str], None]


class DiscoveryState(enum.Enum):
    """Progress of a session's discovery procedure."""

    UNINITIALIZED = "uninitialized"
    PRINCIPAL_RESOLVED = "principal_resolved"
    ADDRESSBOOK_RESOLVED = "addressbook_resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class DiscoveryResult:
    """A resolved address-book collection.

    ``addressbook_path`` is the href exactly as the server returned it (a
    path, or an absolute URL on servers that shard accounts across hosts).
    ``addressbook_url`` is that href resolved against the responding URL;
    strategies that leave it unset are resolved against the service root.
    """

    strategy: str
    addressbook_path: str
    principal_path: str | None = None
    addressbook_url: str | None = None


class DiscoveryStrategy(Protocol):
    name: str

    def resolve(
        self,
        transport: DAVTransport,
        base_url: str,
        on_principal: PrincipalCallback | None = None,
    ) -> DiscoveryResult: ...


def resolve_url(base_url: str, href: str) -> str:
    """Resolve a server href (path or absolute URL) against the service root."""
    return urljoin(f"{base_url.rstrip('/')}/", href)


def _require_multistatus(resp: DAVResponse, url: str) -> None:
    if resp.status_code != MULTI_STATUS:
        raise DiscoveryStepFailed(
            f"PROPFIND {url} returned HTTP {resp.status_code}",
            status_code=resp.status_code,
            body=resp.text,
        )


def _absolute_href(resp: DAVResponse, href: str) -> str:
    """Resolve ``href`` against the URL that produced ``resp``."""
    try:
        return urljoin(resp.url, href)
    except ValueError as exc:
        raise DiscoveryStepFailed(
            f"PROPFIND {resp.url} returned an unusable href {href!r}: {exc}",
            status_code=resp.status_code,
            body=resp.text,
        ) from exc


class PrincipalDiscovery:
    """Two-step lookup: current-user-principal, then addressbook-home-set.

    Step 1 PROPFINDs ``entry_path`` (Depth 0) for the principal href. Step 2
    PROPFINDs the principal (Depth 1) for the address-book home href. Both
    steps require a 207 and a non-empty href.
    """

    def __init__(self, entry_path: str = "/", name: str = "principal") -> None:
        self.entry_path = entry_path
        self.name = name

    def resolve(
        self,
        transport: DAVTransport,
        base_url: str,
        on_principal: PrincipalCallback | None = None,
    ) -> DiscoveryResult:
        # Step 1: Find principal URL
        principal, principal_url = self._propfind_href(
            transport,
            resolve_url(base_url, self.entry_path),
            PROPFIND_PRINCIPAL,
            depth="0",
            prop=f"{DAV}current-user-principal",
        )
        if on_principal is not None:
            on_principal(principal)

        # Step 2: Find addressbook home URL
        home, home_url = self._find_addressbook(transport, principal_url)
        return DiscoveryResult(
            strategy=self.name,
            addressbook_path=home,
            principal_path=principal,
            addressbook_url=home_url,
        )

    def _find_addressbook(
        self, transport: DAVTransport, principal_url: str
    ) -> tuple[str, str]:
        return self._propfind_href(
            transport,
            principal_url,
            PROPFIND_AB_HOME,
            depth="1",
            prop=f"{CARDDAV}addressbook-home-set",
        )

    @staticmethod
    def _propfind_href(
        transport: DAVTransport,
        url: str,
        body: bytes,
        *,
        depth: str,
        prop: str,
    ) -> tuple[str, str]:
        """PROPFIND ``url`` for ``prop`` and return (href, absolute URL of href)."""
        resp = transport.request(
            "PROPFIND",
            url,
            content=body,
            headers={"Content-Type": "text/xml", "Depth": depth},
        )
        _require_multistatus(resp, url)
        href = find_href(resp.content, prop)
        if not href:
            local_name = prop.rsplit("}", 1)[-1]
            raise DiscoveryStepFailed(
                f"PROPFIND {url} returned no {local_name} href",
                status_code=resp.status_code,
                body=resp.text,
            )
        return href, _absolute_href(resp, href)


class PrincipalListingDiscovery(PrincipalDiscovery):
    """Principal lookup, then the first href under the principal that looks like a card collection.

    For servers that list the address book as a child of the principal but
    do not answer ``addressbook-home-set``.
    """

    def __init__(
        self, entry_path: str = "/", name: str = "principal-listing", marker: str = "/card/"
    ) -> None:
        super().__init__(entry_path, name=name)
        self.marker = marker

    def _find_addressbook(
        self, transport: DAVTransport, principal_url: str
    ) -> tuple[str, str]:
        resp = transport.request("PROPFIND", principal_url, headers={"Depth": "1"})
        _require_multistatus(resp, principal_url)
        href = find_href_containing(resp.content, self.marker)
        if not href:
            raise DiscoveryStepFailed(
                f"PROPFIND {principal_url} listed no href containing {self.marker!r}",
                status_code=resp.status_code,
                body=resp.text,
            )
        return href, _absolute_href(resp, href)


class FixedPathDiscovery:
    """Legacy lookup: a 207 on a well-known fixed path means that path is the address book."""

    def __init__(self, path: str = "/card/dav/", name: str = "legacy-path") -> None:
        self.path = path
        self.name = name

    def resolve(
        self,
        transport: DAVTransport,
        base_url: str,
        on_principal: PrincipalCallback | None = None,
    ) -> DiscoveryResult:
        url = resolve_url(base_url, self.path)
        resp = transport.request("PROPFIND", url, headers={"Depth": "1"})
        _require_multistatus(resp, url)
        return DiscoveryResult(
            strategy=self.name, addressbook_path=self.path, addressbook_url=resp.url
        )


def build_strategies(
    names: Sequence[str], legacy_path: str = "/card/dav/"
) -> list[DiscoveryStrategy]:
    """Instantiate strategies from their configured names, preserving order.

    Raises:
        ValueError: On an unknown strategy name.
    """
    factories: dict[str, Callable[[], DiscoveryStrategy]] = {
        "principal": lambda: PrincipalDiscovery("/", name="principal"),
        "well-known": lambda: PrincipalDiscovery(WELL_KNOWN_PATH, name="well-known"),
        "principal-listing": lambda: PrincipalListingDiscovery("/", name="principal-listing"),
        "legacy-path": lambda: FixedPathDiscovery(legacy_path, name="legacy-path"),
    }
    strategies: list[DiscoveryStrategy] = []
    for name in names:
        if name not in factories:
            raise ValueError(f"Unknown discovery strategy: '{name}'")
        strategies.append(factories[name]())
    return strategies


def discover(
    transport: DAVTransport,
    base_url: str,
    strategies: Sequence[DiscoveryStrategy],
    *,
    log: structlog.stdlib.BoundLogger | None = None,
    on_principal: PrincipalCallback | None = None,
) -> DiscoveryResult:
    """Try each strategy in order and return the first resolved address book.

    Raises:
        DiscoveryFailed: With every attempt, once all strategies failed.
    """
    log = log or structlog.get_logger(component="discovery")
    attempts: list[DiscoveryAttempt] = []

    for strategy in strategies:
        try:
            result = strategy.resolve(transport, base_url, on_principal)
        except CardBridgeError as exc:
            log.warning(
                "discovery_strategy_failed",
                strategy=strategy.name,
                error=str(exc),
                status=getattr(exc, "status_code", None),
            )
            attempts.append(DiscoveryAttempt(strategy=strategy.name, error=exc))
            continue

        log.info(
            "addressbook_discovered",
            strategy=strategy.name,
            addressbook_path=result.addressbook_path,
        )
        return result

    raise DiscoveryFailed(attempts)
