"""Shared fixtures for cert_sync tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from cert_sync.config import SyncConfig
from cert_sync.exceptions import InstallError, ResetError
from cert_sync.host_store import HostStoreReader
from cert_sync.installer import DebianTrustStoreInstaller
from cert_sync.models import HostCertificate


def build_root_cert(common_name: str, expired: bool = False) -> x509.Certificate:
    """Create a self-signed root certificate."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    if expired:
        not_before, not_after = now - timedelta(days=400), now - timedelta(days=30)
    else:
        not_before, not_after = now - timedelta(days=1), now + timedelta(days=365)

    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(private_key, hashes.SHA256())
    )


def to_der(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.DER)


def to_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


@pytest.fixture
def root_cert():
    return build_root_cert("Test Root CA")


@pytest.fixture
def expired_cert():
    return build_root_cert("Expired Root CA", expired=True)


@pytest.fixture
def config(tmp_path) -> SyncConfig:
    """Configuration pointing every path into a temporary directory."""
    return SyncConfig(
        export_dir=tmp_path / "export",
        import_dir=tmp_path / "ca-certificates" / "windows",
        ca_bundle=tmp_path / "ca-certificates.crt",
        color=False,
    )


@pytest.fixture
def export_dir(config) -> Path:
    config.export_dir.mkdir(parents=True)
    return config.export_dir


class StaticReader(HostStoreReader):
    """Reader returning a fixed list of host certificates."""

    def __init__(self, certificates: List[HostCertificate]):
        self.certificates = certificates
        self.list_calls = 0
        self.preview_calls = 0

    def list_root_certificates(self):
        self.list_calls += 1
        return list(self.certificates)

    def preview_root_certificates(self):
        self.preview_calls += 1
        return list(self.certificates)


class RecordingInstaller(DebianTrustStoreInstaller):
    """Real file copying and purging; system commands are recorded instead of run."""

    def __init__(self, config, fail_refresh: bool = False, fail_reinstall: bool = False):
        super().__init__(config)
        self.calls: List[str] = []
        self.fail_refresh = fail_refresh
        self.fail_reinstall = fail_reinstall

    def purge_trust_anchors(self, directory=None):
        self.calls.append("purge")
        super().purge_trust_anchors(directory)

    def reinstall_base_package(self):
        self.calls.append("reinstall")
        if self.fail_reinstall:
            raise ResetError("Failed to reinstall ca-certificates: apt-get exited with 100")

    def refresh_trust_store(self):
        self.calls.append("refresh")
        if self.fail_refresh:
            raise InstallError("Failed to update CA certificates: exit 1")


@pytest.fixture
def installer(config):
    return RecordingInstaller(config)


def write_export(export_dir: Path, certs, pem: bool = False) -> List[Path]:
    """Write certificates into an export directory the way PowerShell does."""
    paths = []
    for cert in certs:
        der = to_der(cert)
        name = cert.fingerprint(hashes.SHA1()).hex().upper() + ".crt"
        path = export_dir / name
        path.write_bytes(to_pem(cert) if pem else der)
        paths.append(path)
    return paths
