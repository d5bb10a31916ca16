"""HTTP client factory pinned to a single CA bundle."""

import logging
import ssl
from pathlib import Path
from typing import Optional

import httpx

from cert_sync.exceptions import NetworkTestError

logger = logging.getLogger(__name__)


def create_ssl_context(ca_bundle: Path) -> ssl.SSLContext:
    """
    Create a client SSL context that trusts only the given bundle.

    System default locations are not loaded, so verification exercises
    exactly the anchors in ``ca_bundle``.

    Raises:
        NetworkTestError: If the bundle is missing or unreadable
    """
    if not Path(ca_bundle).is_file():
        raise NetworkTestError(f"CA bundle not found: {ca_bundle}")
    try:
        context = ssl.create_default_context(cafile=str(ca_bundle))
    except (OSError, ssl.SSLError) as e:
        raise NetworkTestError(f"Could not load CA bundle {ca_bundle}: {e}") from e
    logger.debug(f"Using CA bundle: {ca_bundle}")
    return context


def create_http_client(
    ca_bundle: Path,
    timeout: float = 10.0,
    proxy: Optional[str] = None,
    follow_redirects: bool = False,
) -> httpx.Client:
    """
    Create an httpx client verifying against ``ca_bundle`` only.

    Args:
        ca_bundle: PEM bundle used as the sole trust anchor source
        timeout: Connect/read timeout in seconds
        proxy: Optional proxy URL
        follow_redirects: Follow HTTP redirects

    Returns:
        Configured httpx.Client
    """
    return httpx.Client(
        verify=create_ssl_context(ca_bundle),
        timeout=httpx.Timeout(timeout),
        proxy=proxy,
        follow_redirects=follow_redirects,
        headers={"User-Agent": "cert-sync"},
    )
