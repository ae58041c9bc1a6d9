"""CardDAV client: trust setup, address-book discovery, and contact fetch/create."""

from __future__ import annotations

import re
from urllib.parse import urljoin

import structlog

from cardbridge.clients.discovery import (
    DiscoveryResult,
    DiscoveryState,
    DiscoveryStrategy,
    build_strategies,
    discover,
    resolve_url,
)
from cardbridge.clients.multistatus import REPORT_ALL_VCARDS, parse_address_data
from cardbridge.clients.transport import DAVTransport
from cardbridge.clients.trust import resolve_trust_anchor
from cardbridge.core.config import CardDAVSettings, TrustSettings
from cardbridge.core.errors import CardBridgeError, CreateFailed, FetchFailed, TransportError

MULTI_STATUS = 207
CREATED = 201

# UIDs become resource filenames; keep them to one URL-safe path segment
_SAFE_UID = re.compile(r"^[A-Za-z0-9_@+-][A-Za-z0-9._@+-]*$")


class CardDAVClient:
    """Thin CardDAV client over httpx for pushing and reading vCards.

    Discovery runs lazily on the first fetch/create and the resolved
    address-book path is cached for the lifetime of the client. Not safe
    to share across threads; create one client per caller.

    Usage:
        client = CardDAVClient(username="user@icloud.com", password="app-password")
        client.create_contact(vcard_text, uid="abc-123")
        cards = client.fetch_contacts()
    """

    def __init__(
        self,
        username: str,
        password: str,
        settings: CardDAVSettings | None = None,
        trust: TrustSettings | None = None,
        *,
        strategies: list[DiscoveryStrategy] | None = None,
        log: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._settings = settings or CardDAVSettings()
        self._log = log or structlog.get_logger(component="carddav")
        self._username = username
        self._base_url = self._settings.base_url

        self._ca_bundle = resolve_trust_anchor(trust, log=self._log.bind(component="trust"))
        self._transport = DAVTransport(
            username,
            password,
            ca_bundle=self._ca_bundle,
            timeout=self._settings.timeout,
            max_redirects=self._settings.max_redirects,
            user_agent=self._settings.user_agent,
            log=self._log.bind(component="transport"),
        )
        self._strategies = (
            strategies
            if strategies is not None
            else build_strategies(self._settings.discovery, self._settings.legacy_path)
        )

        self._state = DiscoveryState.UNINITIALIZED
        self._principal_path: str | None = None
        self._addressbook_path: str | None = None
        self._addressbook_url: str | None = None

    @property
    def state(self) -> DiscoveryState:
        return self._state

    @property
    def principal_path(self) -> str | None:
        return self._principal_path

    @property
    def addressbook_path(self) -> str | None:
        """Resolved address-book href, or None before discovery succeeds."""
        return self._addressbook_path

    @property
    def ca_bundle(self) -> str:
        return self._ca_bundle

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> CardDAVClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- Discovery ----------------------------------------------------------

    def discover_addressbook(self) -> str:
        """Resolve the address-book collection and cache it on the session.

        Returns:
            The address-book href as the server returned it.

        Raises:
            DiscoveryFailed: If every configured strategy failed. A failure
                leaves any previously cached address-book path untouched.
        """
        try:
            result: DiscoveryResult = discover(
                self._transport,
                self._base_url,
                self._strategies,
                log=self._log.bind(component="discovery", username=self._username),
                on_principal=self._record_principal,
            )
        except CardBridgeError:
            if self._addressbook_path is None:
                self._state = DiscoveryState.FAILED
            raise

        self._principal_path = result.principal_path
        self._addressbook_path = result.addressbook_path
        self._addressbook_url = result.addressbook_url or resolve_url(
            self._base_url, result.addressbook_path
        )
        self._state = DiscoveryState.ADDRESSBOOK_RESOLVED
        return result.addressbook_path

    def _record_principal(self, principal: str) -> None:
        # A re-discovery never disturbs an already resolved session
        if self._state is DiscoveryState.ADDRESSBOOK_RESOLVED:
            return
        self._principal_path = principal
        self._state = DiscoveryState.PRINCIPAL_RESOLVED

    def _require_addressbook(self) -> str:
        """Return the absolute address-book URL, discovering it on first use."""
        if self._addressbook_url is None:
            self.discover_addressbook()
        assert self._addressbook_url is not None
        return self._addressbook_url

    def validate_credentials(self) -> bool:
        """Return True if discovery succeeds with the configured credentials."""
        try:
            self.discover_addressbook()
        except CardBridgeError:
            return False
        return True

    # -- Collection operations ---------------------------------------------

    def fetch_contacts(self) -> list[str]:
        """Fetch every vCard in the address book with one REPORT request.

        Returns:
            vCard texts in the order the server listed them.

        Raises:
            DiscoveryFailed: If the address book cannot be resolved.
            FetchFailed: On a non-207 status or a transport failure.
            MalformedResponse: If the 207 body is not well-formed XML.
        """
        url = self._require_addressbook()

        try:
            resp = self._transport.request(
                "REPORT",
                url,
                content=REPORT_ALL_VCARDS,
                headers={
                    "Content-Type": "application/xml; charset=UTF-8",
                    "Depth": "1",
                },
            )
        except TransportError as exc:
            raise FetchFailed(f"Fetch contacts failed: {exc}") from exc

        if resp.status_code != MULTI_STATUS:
            raise FetchFailed(
                f"Fetch contacts failed. HTTP Code: {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )

        cards = parse_address_data(resp.content)
        self._log.info("contacts_fetched", count=len(cards))
        return cards

    def contact_url(self, uid: str) -> str:
        """Build the absolute resource URL for a contact UID.

        Raises:
            ValueError: If the UID is empty or not a single URL-safe segment.
            DiscoveryFailed: If the address book cannot be resolved.
        """
        if not _SAFE_UID.match(uid):
            raise ValueError(
                f"Contact UID must be a non-empty URL-safe name, got {uid!r}"
            )
        collection = self._require_addressbook()
        if not collection.endswith("/"):
            collection += "/"
        resource = self._settings.resource_template.format(uid=uid)
        return urljoin(collection, resource)

    def create_contact(self, vcard: str, uid: str) -> bool:
        """PUT a vCard into the address book under ``uid``.

        No ETag precondition is sent: reusing a UID overwrites the existing
        resource (last writer wins).

        Returns:
            True when the server answered 201 Created.

        Raises:
            ValueError: If the UID is not URL-safe.
            DiscoveryFailed: If the address book cannot be resolved.
            CreateFailed: On any other status or a transport failure.
        """
        url = self.contact_url(uid)

        try:
            resp = self._transport.request(
                "PUT",
                url,
                content=vcard.encode("utf-8"),
                headers={"Content-Type": "text/vcard; charset=UTF-8"},
            )
        except TransportError as exc:
            raise CreateFailed(f"Failed to create contact: {exc}") from exc

        if resp.status_code != CREATED:
            raise CreateFailed(
                f"Failed to create contact. HTTP Code: {resp.status_code}, "
                f"Response: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        self._log.info("contact_created", uid=uid, url=url)
        return True
