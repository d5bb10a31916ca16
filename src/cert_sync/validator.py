"""Structural and expiry validation of normalized certificates."""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from cryptography import x509

from cert_sync.certificate import describe_certificate, load_pem_certificate
from cert_sync.exceptions import ValidationError
from cert_sync.models import (
    REASON_EXPIRED,
    REASON_MALFORMED_CERTIFICATE,
    CertificateRecord,
    CertificateStatus,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def check_certificate(pem_data: bytes, now: datetime) -> x509.Certificate:
    """
    Parse a PEM certificate and check that it has not expired.

    Args:
        pem_data: PEM bytes
        now: Reference time (timezone aware)

    Returns:
        Parsed certificate

    Raises:
        ValidationError: "malformed certificate" or "expired"
    """
    try:
        cert = load_pem_certificate(pem_data)
        # Force parsing of the validity field, which is decoded lazily
        not_after = cert.not_valid_after_utc
    except ValueError as e:
        raise ValidationError(REASON_MALFORMED_CERTIFICATE) from e

    if not_after <= now:
        raise ValidationError(REASON_EXPIRED)
    return cert


def validate(record: CertificateRecord, now: Optional[datetime] = None) -> CertificateRecord:
    """
    Validate one NORMALIZED record.

    Records in any other state are returned unchanged. ``raw_bytes`` is
    never modified; subject, issuer and expiry are refreshed from the
    parsed certificate on success.

    Args:
        record: Record to validate
        now: Reference time, defaults to the current UTC time

    Returns:
        Record with status VALIDATED or REJECTED
    """
    if record.status != CertificateStatus.NORMALIZED:
        return record
    now = _as_utc(now or _utcnow())

    # Host-reported expiry rejects even when the body would not parse
    if record.not_after is not None and _as_utc(record.not_after) <= now:
        logger.warning(f"Rejecting expired certificate {record.subject or record.thumbprint} (expired {record.not_after})")
        return record.reject(REASON_EXPIRED)

    try:
        cert = check_certificate(record.raw_bytes, now)
    except ValidationError as e:
        reason = str(e)
        if reason == REASON_EXPIRED:
            logger.warning(f"Rejecting expired certificate {record.subject or record.thumbprint}")
        else:
            logger.warning(f"Rejecting {record.source or record.thumbprint}: {reason} ({e.__cause__})")
        return record.reject(reason)

    subject, issuer, not_after = describe_certificate(cert)
    logger.debug(f"Validated: CN={subject} | Issuer: {issuer} | Expiry: {not_after}")
    return replace(
        record,
        subject=subject,
        issuer=issuer,
        not_after=not_after,
        status=CertificateStatus.VALIDATED,
    )


def validate_all(records: Iterable[CertificateRecord], now: Optional[datetime] = None) -> List[CertificateRecord]:
    now = now or _utcnow()
    return [validate(record, now) for record in records]
