"""CardDAV request bodies and multi-status (207) response parsing."""

from __future__ import annotations

import xml.etree.ElementTree as ET

from cardbridge.core.errors import MalformedResponse

# XML namespace constants (Clark notation for ElementTree)
DAV = "{DAV:}"
CARDDAV = "{urn:ietf:params:xml:ns:carddav}"

# PROPFIND request bodies
PROPFIND_PRINCIPAL = b"""<?xml version="1.0" encoding="UTF-8"?>
<D:propfind xmlns:D="DAV:">
  <D:prop>
    <D:current-user-principal/>
  </D:prop>
</D:propfind>"""

PROPFIND_AB_HOME = b"""<?xml version="1.0" encoding="UTF-8"?>
<D:propfind xmlns:D="DAV:" xmlns:C="urn:ietf:params:xml:ns:carddav">
  <D:prop>
    <C:addressbook-home-set/>
  </D:prop>
</D:propfind>"""

# REPORT body for fetching all vCards (addressbook-query with no filter)
REPORT_ALL_VCARDS = b"""<?xml version="1.0" encoding="UTF-8"?>
<C:addressbook-query xmlns:D="DAV:" xmlns:C="urn:ietf:params:xml:ns:carddav">
  <D:prop>
    <D:getetag/>
    <C:address-data/>
  </D:prop>
</C:addressbook-query>"""


def parse_xml(body: str | bytes) -> ET.Element:
    """Parse a multi-status body into an element tree.

    Raises:
        MalformedResponse: If the body is empty or not well-formed XML.
    """
    if not body or not body.strip():
        raise MalformedResponse("Empty multi-status body")
    if isinstance(body, str):
        body = body.encode("utf-8")
    try:
        return ET.fromstring(body)
    except ET.ParseError as exc:
        raise MalformedResponse(f"Failed to parse XML response: {exc}") from exc


def find_href(body: str | bytes, prop: str) -> str:
    """Return the first non-empty href nested under ``prop``, or "".

    Args:
        body: Multi-status XML.
        prop: Clark-notation property name, e.g. ``f"{DAV}current-user-principal"``.
    """
    root = parse_xml(body)
    for href in root.iterfind(f".//{prop}/{DAV}href"):
        if href.text and href.text.strip():
            return href.text.strip()
    return ""


def find_href_containing(body: str | bytes, marker: str) -> str:
    """Return the first href anywhere in the body whose text contains ``marker``, or ""."""
    root = parse_xml(body)
    for href in root.iter(f"{DAV}href"):
        text = (href.text or "").strip()
        if marker in text:
            return text
    return ""


def parse_address_data(body: str | bytes) -> list[str]:
    """Extract vCard texts from a REPORT multi-status body.

    Returns one entry per ``response`` element carrying non-empty
    ``address-data``, in document order. Responses without it (collection
    metadata, 404 propstats) are skipped. The text is not validated as a
    vCard.

    Raises:
        MalformedResponse: If the body is not well-formed XML.
    """
    root = parse_xml(body)
    cards: list[str] = []

    for response_el in root.iter(f"{DAV}response"):
        for address_data in response_el.iter(f"{CARDDAV}address-data"):
            text = (address_data.text or "").strip()
            if text:
                cards.append(text)
                break

    return cards
