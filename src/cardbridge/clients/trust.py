"""Trust-anchor resolution: locate a PEM CA bundle or download and cache one."""

from __future__ import annotations

import ssl
from pathlib import Path

import httpx
import structlog

from cardbridge.core.config import TrustSettings
from cardbridge.core.errors import TrustAnchorUnavailable


def load_bundle(path: str | Path) -> ssl.SSLContext:
    """Build a verifying SSL context from a CA bundle file.

    Raises:
        TrustAnchorUnavailable: If the file cannot be read or holds no
            usable certificate (an HTML error page, a truncated download).
    """
    try:
        return ssl.create_default_context(cafile=str(path))
    except (ssl.SSLError, OSError) as exc:
        raise TrustAnchorUnavailable(
            f"CA bundle {path} is not a usable PEM certificate bundle: {exc}"
        ) from exc


def resolve_trust_anchor(
    settings: TrustSettings | None = None,
    log: structlog.stdlib.BoundLogger | None = None,
) -> str:
    """Return the path of a usable CA bundle.

    Resolution order:
    1. ``settings.ca_bundle`` if pinned (must exist and load).
    2. The first path in ``settings.candidates`` that exists and loads.
    3. A previously downloaded bundle at ``settings.cache_path``.
    4. A fresh download from ``settings.download_url``, written to
       ``settings.cache_path`` only once it loads as a bundle.

    Unloadable candidates and a corrupt cache are skipped, so a bad cached
    file is replaced by the next download.

    Raises:
        TrustAnchorUnavailable: If a pinned bundle is missing or unusable,
            or the download fails or is not a PEM bundle. Verification is
            never disabled as a fallback.
    """
    settings = settings or TrustSettings()
    log = log or structlog.get_logger(component="trust")

    if settings.ca_bundle is not None:
        pinned = Path(settings.ca_bundle).expanduser()
        if not pinned.is_file():
            raise TrustAnchorUnavailable(f"Configured CA bundle not found: {pinned}")
        load_bundle(pinned)
        return str(pinned)

    cache_path = settings.resolved_cache_path
    for candidate in [*settings.candidates, str(cache_path)]:
        path = Path(candidate).expanduser()
        if not path.is_file():
            continue
        try:
            load_bundle(path)
        except TrustAnchorUnavailable as exc:
            log.warning("ca_bundle_unusable", path=str(path), error=str(exc))
            continue
        log.debug("ca_bundle_found", path=str(path))
        return str(path)

    return _download_bundle(settings.download_url, cache_path, settings.download_timeout, log)


def _download_bundle(
    url: str,
    cache_path: Path,
    timeout: float,
    log: structlog.stdlib.BoundLogger,
) -> str:
    """Fetch a CA bundle over verified HTTPS and persist it to cache_path."""
    log.info("ca_bundle_download", url=url, cache_path=str(cache_path))
    try:
        resp = httpx.get(url, timeout=timeout, follow_redirects=True)
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        raise TrustAnchorUnavailable(
            f"Could not download CA certificate bundle from {url}: {exc}"
        ) from exc

    if not resp.content.strip():
        raise TrustAnchorUnavailable(
            f"Downloaded CA certificate bundle from {url} is empty"
        )

    # Staged next to the cache so a rejected download never replaces it
    staging = cache_path.with_name(cache_path.name + ".download")
    try:
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        staging.write_bytes(resp.content)
    except OSError as exc:
        raise TrustAnchorUnavailable(
            f"Could not write CA certificate bundle to {cache_path}: {exc}"
        ) from exc

    try:
        load_bundle(staging)
    except TrustAnchorUnavailable as exc:
        staging.unlink(missing_ok=True)
        raise TrustAnchorUnavailable(
            f"Downloaded CA certificate bundle from {url} is not a PEM bundle"
        ) from exc

    try:
        staging.replace(cache_path)
    except OSError as exc:
        staging.unlink(missing_ok=True)
        raise TrustAnchorUnavailable(
            f"Could not write CA certificate bundle to {cache_path}: {exc}"
        ) from exc

    return str(cache_path)
