"""Exception hierarchy for cert_sync."""


class CertSyncError(Exception):
    """Base class for all cert_sync errors."""


class ConfigError(CertSyncError):
    """Bad or conflicting flags or configuration values."""


class ExtractionError(CertSyncError):
    """Host-side export is unreachable or empty. Fatal."""


class EncodingError(CertSyncError):
    """Bytes are neither valid DER nor valid PEM. Rejects one record."""


class ValidationError(CertSyncError):
    """Certificate is malformed or expired. Rejects one record."""


class DuplicateError(CertSyncError):
    """Thumbprint already seen in this batch. Rejects one record."""


class InstallError(CertSyncError):
    """Staged certificates could not be installed. Fatal."""


class ResetError(CertSyncError):
    """A reset sub-step failed. Fatal, never retried."""


class NetworkTestError(CertSyncError):
    """Connectivity test could not complete the TLS handshake."""
