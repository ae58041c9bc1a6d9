"""Click CLI entry point for cardbridge.

Provides `check`, `fetch` and `push` subcommands. Credentials come from
CARDBRIDGE_USERNAME / CARDBRIDGE_PASSWORD, everything else from config.yaml.
"""

from __future__ import annotations

from pathlib import Path

import click
import vobject

from cardbridge.clients.carddav import CardDAVClient
from cardbridge.core.config import CardBridgeSettings
from cardbridge.core.errors import CardBridgeError
from cardbridge.core.logging import configure_logging


def _build_client(settings: CardBridgeSettings) -> CardDAVClient:
    if not settings.has_credentials:
        raise click.ClickException(
            "CARDBRIDGE_USERNAME and CARDBRIDGE_PASSWORD must be set."
        )
    try:
        return CardDAVClient(
            username=settings.username,
            password=settings.password,
            settings=settings.carddav,
            trust=settings.trust,
        )
    except CardBridgeError as exc:
        raise click.ClickException(str(exc)) from exc


def _card_label(vcard: str) -> str:
    """Return FN (or UID) of a vCard for summary output."""
    try:
        card = vobject.readOne(vcard)
    except Exception:  # vobject raises a zoo of parse errors
        return "<unparseable vCard>"
    fn = card.contents.get("fn")
    if fn and fn[0].value.strip():
        return fn[0].value
    uid = card.contents.get("uid")
    return uid[0].value if uid else "<unnamed>"


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """cardbridge: push web-form contacts into a CardDAV address book."""
    settings = CardBridgeSettings()
    configure_logging(settings.logging.level)
    ctx.obj = settings


@cli.command()
@click.pass_obj
def check(settings: CardBridgeSettings) -> None:
    """Discover the address book to verify credentials."""
    with _build_client(settings) as client:
        try:
            path = client.discover_addressbook()
        except CardBridgeError as exc:
            raise click.ClickException(str(exc)) from exc
    click.secho("Credentials OK", fg="green")
    click.echo(f"  Address book: {path}")


@cli.command()
@click.option("--summary", is_flag=True, default=False, help="Print one name per contact instead of raw vCards")
@click.pass_obj
def fetch(settings: CardBridgeSettings, summary: bool) -> None:
    """Print every contact in the address book."""
    with _build_client(settings) as client:
        try:
            cards = client.fetch_contacts()
        except CardBridgeError as exc:
            raise click.ClickException(str(exc)) from exc

    for vcard in cards:
        click.echo(_card_label(vcard) if summary else vcard)
    if summary:
        click.echo(f"{len(cards)} contacts")


@cli.command()
@click.argument("vcf_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--uid", default=None, help="Resource name (defaults to the vCard's UID)")
@click.pass_obj
def push(settings: CardBridgeSettings, vcf_file: Path, uid: str | None) -> None:
    """Create a contact from a .vcf file."""
    vcard = vcf_file.read_text(encoding="utf-8")
    if uid is None:
        try:
            card = vobject.readOne(vcard)
        except Exception as exc:  # vobject raises a zoo of parse errors
            raise click.UsageError(f"{vcf_file} is not a readable vCard: {exc}") from exc
        uids = card.contents.get("uid")
        if not uids or not uids[0].value.strip():
            raise click.UsageError(f"{vcf_file} has no UID; pass --uid")
        uid = uids[0].value.strip()

    with _build_client(settings) as client:
        try:
            client.create_contact(vcard, uid)
        except (CardBridgeError, ValueError) as exc:
            raise click.ClickException(str(exc)) from exc
    click.secho(f"Created {uid}", fg="green")
