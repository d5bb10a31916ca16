"""Tests for certificate validation."""

from datetime import datetime, timedelta, timezone

import pytest

from cert_sync.exceptions import ValidationError
from cert_sync.models import (
    REASON_EXPIRED,
    REASON_MALFORMED_CERTIFICATE,
    CertificateRecord,
    CertificateStatus,
    Encoding,
)
from cert_sync.validator import check_certificate, validate, validate_all

from conftest import to_pem

NOW = datetime.now(timezone.utc)

BAD_BODY_PEM = (
    b"-----BEGIN CERTIFICATE-----\n"
    b"aGVsbG8gd29ybGQ=\n"  # "hello world"
    b"-----END CERTIFICATE-----\n"
)


def normalized(pem: bytes, not_after=None) -> CertificateRecord:
    return CertificateRecord(
        thumbprint="AB" * 20,
        subject="",
        issuer="",
        not_after=not_after,
        raw_bytes=pem,
        encoding=Encoding.PEM,
        status=CertificateStatus.NORMALIZED,
    )


def test_valid_certificate(root_cert):
    record = normalized(to_pem(root_cert))

    result = validate(record, now=NOW)

    assert result.status == CertificateStatus.VALIDATED
    assert result.rejection_reason is None
    assert result.subject == "CN=Test Root CA"
    assert result.issuer == "CN=Test Root CA"
    assert result.not_after == root_cert.not_valid_after_utc
    assert result.raw_bytes == record.raw_bytes


def test_expired_certificate(expired_cert):
    result = validate(normalized(to_pem(expired_cert)), now=NOW)

    assert result.status == CertificateStatus.REJECTED
    assert result.rejection_reason == REASON_EXPIRED


def test_expiry_uses_injected_clock(root_cert):
    future = root_cert.not_valid_after_utc + timedelta(seconds=1)

    result = validate(normalized(to_pem(root_cert)), now=future)

    assert result.rejection_reason == REASON_EXPIRED


def test_naive_clock_treated_as_utc(root_cert):
    result = validate(normalized(to_pem(root_cert)), now=datetime.utcnow())

    assert result.status == CertificateStatus.VALIDATED


def test_malformed_certificate():
    result = validate(normalized(BAD_BODY_PEM), now=NOW)

    assert result.status == CertificateStatus.REJECTED
    assert result.rejection_reason == REASON_MALFORMED_CERTIFICATE


def test_expired_metadata_rejects_even_malformed_body():
    """Host-reported expiry in the past wins over structural problems."""
    result = validate(normalized(BAD_BODY_PEM, not_after=NOW - timedelta(days=1)), now=NOW)

    assert result.rejection_reason == REASON_EXPIRED


def test_raw_bytes_never_mutated(expired_cert):
    record = normalized(to_pem(expired_cert))

    result = validate(record, now=NOW)

    assert result.raw_bytes == record.raw_bytes


@pytest.mark.parametrize(
    "status",
    [CertificateStatus.PENDING, CertificateStatus.REJECTED, CertificateStatus.VALIDATED],
)
def test_only_normalized_records_are_validated(root_cert, status):
    record = normalized(to_pem(root_cert))
    record.status = status

    assert validate(record, now=NOW) is record


def test_check_certificate_raises_validation_error(expired_cert):
    with pytest.raises(ValidationError, match=REASON_EXPIRED):
        check_certificate(to_pem(expired_cert), NOW)


def test_validate_all_partial_failure(root_cert, expired_cert):
    results = validate_all([normalized(to_pem(expired_cert)), normalized(to_pem(root_cert))], now=NOW)

    assert [r.status for r in results] == [CertificateStatus.REJECTED, CertificateStatus.VALIDATED]
