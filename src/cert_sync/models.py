"""Data models for certificate synchronization."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional
from datetime import datetime


class Encoding(str, Enum):
    """Detected encoding of raw certificate bytes."""

    DER = "DER"
    PEM = "PEM"
    UNKNOWN = "UNKNOWN"


class CertificateStatus(str, Enum):
    """Lifecycle stage of a certificate within one sync run."""

    PENDING = "Pending"
    NORMALIZED = "Normalized"
    VALIDATED = "Validated"
    REJECTED = "Rejected"
    INSTALLED = "Installed"


class SyncState(str, Enum):
    """States of the sync orchestrator."""

    IDLE = "Idle"
    EXTRACTING = "Extracting"
    NORMALIZING = "Normalizing"
    VALIDATING = "Validating"
    STAGING = "Staging"
    INSTALLING = "Installing"
    DONE = "Done"
    DRY_RUN = "DryRun"
    ABORTED = "Aborted"


class Verbosity(str, Enum):
    """Output verbosity selected on the command line."""

    NORMAL = "normal"
    DEBUG = "debug"
    VERBOSE = "verbose"


# Rejection reasons recorded on CertificateRecord.rejection_reason
REASON_MALFORMED_ENCODING = "malformed encoding"
REASON_MALFORMED_CERTIFICATE = "malformed certificate"
REASON_EXPIRED = "expired"
REASON_DUPLICATE = "duplicate thumbprint"


@dataclass
class HostCertificate:
    """Raw certificate as returned by a host store reader."""

    raw_bytes: bytes
    encoding_hint: Encoding
    subject: str
    issuer: str
    not_after: Optional[datetime]
    source: str  # Export file path or store thumbprint


@dataclass
class CertificateRecord:
    """One certificate plus its provenance and validation status."""

    thumbprint: str  # SHA-1 of the DER encoding, upper-case hex
    subject: str
    issuer: str
    not_after: Optional[datetime]
    raw_bytes: bytes
    encoding: Encoding
    source: str = ""
    status: CertificateStatus = CertificateStatus.PENDING
    rejection_reason: Optional[str] = None

    @property
    def filename(self) -> str:
        """Name of the staged/installed file for this certificate."""
        return f"{self.thumbprint}.crt"

    def reject(self, reason: str) -> "CertificateRecord":
        """Return a copy of this record marked as rejected."""
        return replace(self, status=CertificateStatus.REJECTED, rejection_reason=reason)


@dataclass
class SyncBatch:
    """Ordered collection of certificate records for one run."""

    records: List[CertificateRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def with_status(self, status: CertificateStatus) -> List[CertificateRecord]:
        return [r for r in self.records if r.status == status]

    @property
    def pending(self) -> List[CertificateRecord]:
        return self.with_status(CertificateStatus.PENDING)

    @property
    def validated(self) -> List[CertificateRecord]:
        return self.with_status(CertificateStatus.VALIDATED)

    @property
    def rejected(self) -> List[CertificateRecord]:
        return self.with_status(CertificateStatus.REJECTED)

    @property
    def installed(self) -> List[CertificateRecord]:
        return self.with_status(CertificateStatus.INSTALLED)

    def status_counts(self) -> Dict[CertificateStatus, int]:
        counts = {status: 0 for status in CertificateStatus}
        for record in self.records:
            counts[record.status] += 1
        return counts


@dataclass
class InstallOutcome:
    """Result of copying staged files into the guest trust directory."""

    installed: List[str] = field(default_factory=list)  # File names copied
    failed: Dict[str, str] = field(default_factory=dict)  # File name -> error

    @property
    def count(self) -> int:
        return len(self.installed)


@dataclass
class SyncResult:
    """Overall result of an update or dry-run."""

    state: SyncState
    batch: SyncBatch
    timestamp: datetime
    copied_count: int = 0
    refreshed: bool = False
    error: Optional[str] = None
    failed_stage: Optional[SyncState] = None  # Set when state is ABORTED

    @property
    def succeeded(self) -> bool:
        return self.state in (SyncState.DONE, SyncState.DRY_RUN)


@dataclass
class ConnectivityResult:
    """Result of a TLS connectivity test against a domain."""

    domain: str
    url: str
    success: bool
    status_code: Optional[int] = None
    http_version: Optional[str] = None
    tls_version: Optional[str] = None
    cipher: Optional[str] = None
    peer_subject: Optional[str] = None  # Subject of the server certificate
    error: Optional[str] = None
    response_headers: Dict[str, str] = field(default_factory=dict)
