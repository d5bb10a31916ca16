"""Certificate encoding helpers: detection, conversion, thumbprints."""

import base64
import binascii
import hashlib
import logging
import re
from datetime import datetime
from typing import List, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from cert_sync.exceptions import EncodingError
from cert_sync.models import Encoding

logger = logging.getLogger(__name__)

PEM_BEGIN = b"-----BEGIN CERTIFICATE-----"
PEM_END = b"-----END CERTIFICATE-----"

_PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN CERTIFICATE-----(.*?)-----END CERTIFICATE-----", re.DOTALL
)
_UTF8_BOM = b"\xef\xbb\xbf"


def strip_text_noise(data: bytes) -> bytes:
    """Drop a leading UTF-8 BOM and convert CRLF line endings to LF."""
    if data.startswith(_UTF8_BOM):
        data = data[len(_UTF8_BOM):]
    return data.replace(b"\r\n", b"\n")


def has_pem_armor(data: bytes) -> bool:
    return PEM_BEGIN in data and PEM_END in data


def split_pem_certificates(data: bytes) -> List[bytes]:
    """Split PEM data into individual certificate blocks."""
    matches = _PEM_BLOCK_RE.findall(strip_text_noise(data))
    return [PEM_BEGIN + match + PEM_END + b"\n" for match in matches]


def detect_encoding(data: bytes) -> Encoding:
    """
    Detect the encoding of raw certificate bytes.

    The text-armor markers are checked first; anything else is tried as
    binary DER. File extensions are never consulted.

    Args:
        data: Raw bytes as read from the host export

    Returns:
        Encoding.PEM, Encoding.DER or Encoding.UNKNOWN
    """
    if has_pem_armor(data):
        return Encoding.PEM
    try:
        x509.load_der_x509_certificate(data)
        return Encoding.DER
    except ValueError:
        return Encoding.UNKNOWN


def pem_body_to_der(pem_data: bytes) -> bytes:
    """
    Decode the base64 body of a single PEM certificate block.

    Raises:
        EncodingError: If no block is present or the body is not base64
    """
    match = _PEM_BLOCK_RE.search(strip_text_noise(pem_data))
    if not match:
        raise EncodingError("no PEM certificate block found")
    body = b"".join(match.group(1).split())
    try:
        der = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EncodingError(f"invalid base64 in PEM body: {e}") from e
    if not der:
        raise EncodingError("empty PEM body")
    return der


def der_to_pem(der_data: bytes) -> bytes:
    """
    Re-encode DER certificate bytes as PEM.

    Raises:
        EncodingError: If the bytes are not a DER certificate
    """
    try:
        cert = x509.load_der_x509_certificate(der_data)
    except ValueError as e:
        raise EncodingError(f"not a DER certificate: {e}") from e
    return cert.public_bytes(serialization.Encoding.PEM)


def compute_thumbprint(der_data: bytes) -> str:
    """SHA-1 thumbprint of DER bytes, upper-case hex as Windows reports it."""
    return hashlib.sha1(der_data).hexdigest().upper()


def load_pem_certificate(pem_data: bytes) -> x509.Certificate:
    """
    Parse a PEM certificate.

    Raises:
        ValueError: If the PEM does not hold a well-formed X.509 certificate
    """
    return x509.load_pem_x509_certificate(pem_data)


def describe_certificate(cert: x509.Certificate) -> Tuple[str, str, datetime]:
    """Return (subject, issuer, not_after) with RFC 4514 names and a UTC-aware expiry."""
    return (
        cert.subject.rfc4514_string(),
        cert.issuer.rfc4514_string(),
        cert.not_valid_after_utc,
    )


def try_describe(data: bytes) -> Optional[Tuple[str, str, datetime]]:
    """Best-effort metadata for raw bytes in either encoding; None if unparsable."""
    try:
        if has_pem_armor(data):
            cert = load_pem_certificate(strip_text_noise(data))
        else:
            cert = x509.load_der_x509_certificate(data)
    except ValueError as e:
        logger.debug(f"Could not parse certificate metadata: {e}")
        return None
    return describe_certificate(cert)
