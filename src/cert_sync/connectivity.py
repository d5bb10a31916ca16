"""TLS connectivity test against the guest trust bundle."""

import logging
import re
import ssl
from typing import Optional

import httpx
from cryptography import x509

from cert_sync.config import SyncConfig
from cert_sync.exceptions import ConfigError, NetworkTestError
from cert_sync.http_client import create_http_client
from cert_sync.models import ConnectivityResult

logger = logging.getLogger(__name__)

INVALID_DOMAIN = "invalid domain format"

# label(.label)+ with an alphabetic TLD; labels are 1-63 characters
_DOMAIN_RE = re.compile(r"^(?:[A-Za-z0-9-]{1,63}\.)+[A-Za-z]{2,63}$")
_MAX_DOMAIN_LENGTH = 253
_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def strip_scheme(domain: str) -> str:
    """Remove an ``http://``/``https://`` prefix and any trailing path."""
    host = _SCHEME_RE.sub("", domain.strip())
    return host.split("/", 1)[0]


def validate_domain(domain: str) -> str:
    """
    Normalize and validate a domain given on the command line.

    Args:
        domain: Hostname or URL, e.g. ``https://example.com``

    Returns:
        Bare hostname

    Raises:
        ConfigError: If the hostname does not look like ``label.tld``
    """
    host = strip_scheme(domain)
    if len(host) > _MAX_DOMAIN_LENGTH or not _DOMAIN_RE.match(host):
        logger.error(f"Invalid domain format: {host}")
        raise ConfigError(INVALID_DOMAIN)
    return host


def _describe_ssl_error(error: BaseException) -> str:
    """Walk the cause chain for the underlying SSL error, if any."""
    current: Optional[BaseException] = error
    while current is not None:
        if isinstance(current, ssl.SSLCertVerificationError):
            reason = getattr(current, "verify_message", None) or current
            return f"certificate verification failed: {reason}"
        if isinstance(current, ssl.SSLError):
            return f"TLS handshake failed: {current}"
        current = current.__cause__ or current.__context__
    return f"Connection error: {error}"


def _peer_subject(ssl_object: ssl.SSLObject) -> Optional[str]:
    der = ssl_object.getpeercert(binary_form=True)
    if not der:
        return None
    try:
        return x509.load_der_x509_certificate(der).subject.rfc4514_string()
    except ValueError as e:
        logger.debug(f"Could not parse peer certificate: {e}")
        return None


def _perform_request(host: str, config: SyncConfig) -> ConnectivityResult:
    """
    Perform ``GET https://host`` and collect handshake details.

    Raises:
        NetworkTestError: If the connection or TLS handshake fails
    """
    url = f"https://{host}"
    try:
        with create_http_client(config.ca_bundle, timeout=config.timeout) as client:
            with client.stream("GET", url) as response:
                result = ConnectivityResult(
                    domain=host,
                    url=url,
                    success=True,
                    status_code=response.status_code,
                    http_version=response.http_version,
                    response_headers=dict(response.headers),
                )
                stream = response.extensions.get("network_stream")
                ssl_object = stream.get_extra_info("ssl_object") if stream is not None else None
                if ssl_object is not None:
                    result.tls_version = ssl_object.version()
                    cipher = ssl_object.cipher()
                    result.cipher = cipher[0] if cipher else None
                    result.peer_subject = _peer_subject(ssl_object)
                return result
    except httpx.TimeoutException as e:
        raise NetworkTestError(f"Connection timeout after {config.timeout}s") from e
    except httpx.HTTPError as e:
        raise NetworkTestError(_describe_ssl_error(e)) from e
    except UnicodeError as e:
        # IDNA encoding of the hostname during name resolution
        raise NetworkTestError(f"Connection error: {e}") from e


def check_connectivity(domain: str, config: SyncConfig) -> ConnectivityResult:
    """
    Test whether ``domain`` validates against the guest trust bundle.

    Success depends only on the TLS handshake and certificate
    verification; any HTTP status code counts as a pass.

    Args:
        domain: Hostname or URL
        config: Runtime configuration (bundle path, timeout)

    Returns:
        ConnectivityResult

    Raises:
        ConfigError: If the domain is malformed (before any network call)
    """
    host = validate_domain(domain)
    logger.info(f"Testing SSL connection to https://{host}...")
    try:
        return _perform_request(host, config)
    except NetworkTestError as e:
        logger.debug(f"Connectivity test failed: {e}")
        return ConnectivityResult(domain=host, url=f"https://{host}", success=False, error=str(e))
