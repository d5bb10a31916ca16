"""Normalization of certificate records to canonical PEM."""

import logging
from dataclasses import replace
from typing import Iterable, List, Set, Tuple

from cert_sync.certificate import (
    compute_thumbprint,
    der_to_pem,
    detect_encoding,
    pem_body_to_der,
    split_pem_certificates,
)
from cert_sync.exceptions import DuplicateError, EncodingError
from cert_sync.models import (
    REASON_DUPLICATE,
    REASON_MALFORMED_ENCODING,
    CertificateRecord,
    CertificateStatus,
    Encoding,
)

logger = logging.getLogger(__name__)


def _to_canonical_pem(raw: bytes) -> Tuple[bytes, str]:
    """
    Convert raw bytes to canonical PEM and compute the thumbprint.

    Returns:
        Tuple of (pem_bytes, thumbprint)

    Raises:
        EncodingError: If the bytes are neither PEM nor DER
    """
    encoding = detect_encoding(raw)
    if encoding == Encoding.PEM:
        blocks = split_pem_certificates(raw)
        if not blocks:
            raise EncodingError("PEM armor without a complete certificate block")
        if len(blocks) > 1:
            logger.warning(f"PEM data holds {len(blocks)} certificates, keeping the first")
        pem = blocks[0]
        return pem, compute_thumbprint(pem_body_to_der(pem))
    if encoding == Encoding.DER:
        return der_to_pem(raw), compute_thumbprint(raw)
    raise EncodingError("bytes are neither PEM nor DER")


def normalize(record: CertificateRecord) -> CertificateRecord:
    """
    Normalize one record to PEM encoding.

    Records that are already rejected or further along the pipeline are
    returned unchanged, so ``normalize(normalize(x)) == normalize(x)``.

    Args:
        record: Record in PENDING or NORMALIZED state

    Returns:
        New record with status NORMALIZED, or REJECTED with reason
        "malformed encoding". Never raises for bad input bytes.
    """
    if record.status not in (CertificateStatus.PENDING, CertificateStatus.NORMALIZED):
        return record

    try:
        pem, thumbprint = _to_canonical_pem(record.raw_bytes)
    except EncodingError as e:
        logger.warning(f"Rejecting {record.source or record.thumbprint}: {REASON_MALFORMED_ENCODING} ({e})")
        return record.reject(REASON_MALFORMED_ENCODING)

    if record.encoding != Encoding.PEM:
        logger.info(f"Converting {record.source or thumbprint} from {record.encoding.value} to PEM")
    elif pem != record.raw_bytes:
        logger.debug(f"Canonicalized PEM text of {record.source or thumbprint}")

    return replace(
        record,
        raw_bytes=pem,
        encoding=Encoding.PEM,
        thumbprint=thumbprint,
        status=CertificateStatus.NORMALIZED,
    )


def normalize_all(records: Iterable[CertificateRecord]) -> List[CertificateRecord]:
    return [normalize(record) for record in records]


def _claim(thumbprint: str, seen: Set[str]) -> None:
    if thumbprint in seen:
        raise DuplicateError(REASON_DUPLICATE)
    seen.add(thumbprint)


def deduplicate(records: Iterable[CertificateRecord]) -> List[CertificateRecord]:
    """
    Reject later records whose thumbprint was already seen.

    Rejected records are kept in place and never claim a thumbprint; the
    first surviving record with a given thumbprint wins.
    """
    seen: Set[str] = set()
    result: List[CertificateRecord] = []
    for record in records:
        if record.status == CertificateStatus.REJECTED:
            result.append(record)
            continue
        try:
            _claim(record.thumbprint, seen)
        except DuplicateError as e:
            logger.warning(f"Rejecting {record.source or record.thumbprint}: {e}")
            record = record.reject(str(e))
        result.append(record)
    return result
