"""Form-submission push: hand a vCard to CardDAV without ever breaking the caller."""

from __future__ import annotations

import structlog

from cardbridge.clients.carddav import CardDAVClient
from cardbridge.core.errors import CardBridgeError


def push_contact(
    client: CardDAVClient,
    vcard: str,
    uid: str,
    log: structlog.stdlib.BoundLogger | None = None,
) -> bool:
    """Create a contact and report the outcome as a boolean.

    Called from form-submission handlers, where a CardDAV failure must be
    logged and must not interrupt the rest of the submission processing.
    Errors outside the cardbridge hierarchy (programming errors) still
    propagate.

    Returns:
        True if the contact was created, False otherwise.
    """
    log = log or structlog.get_logger(component="submission")

    try:
        client.create_contact(vcard, uid)
    except (CardBridgeError, ValueError) as exc:
        log.error(
            "contact_push_failed",
            uid=uid,
            error_type=type(exc).__name__,
            error=str(exc),
            status=getattr(exc, "status_code", None),
        )
        return False

    log.info("contact_pushed", uid=uid)
    return True
