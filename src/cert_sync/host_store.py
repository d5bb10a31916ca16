"""Readers for the host (Windows) root certificate store."""

import base64
import binascii
import json
import logging
import subprocess
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from cert_sync.certificate import detect_encoding, has_pem_armor, split_pem_certificates, try_describe
from cert_sync.config import SyncConfig
from cert_sync.exceptions import ExtractionError
from cert_sync.models import Encoding, HostCertificate

logger = logging.getLogger(__name__)

CERT_SUFFIXES = (".crt", ".cer", ".pem")
EXPORT_DIR_MISSING = "export directory missing"

# Windows PowerShell writes in the console code page unless told otherwise
_UTF8_OUTPUT = "[Console]::OutputEncoding = [System.Text.Encoding]::UTF8\n"

# Emits one JSON object per root certificate; nothing is written to disk.
_PREVIEW_SCRIPT = """
Get-ChildItem -Path Cert:\\LocalMachine\\Root | ForEach-Object {
    @{
        Subject = $_.Subject
        Issuer = $_.Issuer
        NotAfter = $_.NotAfter.ToUniversalTime().ToString("yyyy-MM-dd'T'HH:mm:ss'Z'")
        Thumbprint = $_.Thumbprint
        RawData = [System.Convert]::ToBase64String($_.RawData)
    } | ConvertTo-Json -Compress
}
"""


def _ps_literal(value: str) -> str:
    """Quote a string as a PowerShell single-quoted literal."""
    return "'" + value.replace("'", "''") + "'"


def _ps_bool(value: bool) -> str:
    return "$true" if value else "$false"


def build_export_script(windows_export_dir: str, show_progress: bool) -> str:
    """
    Build the PowerShell script that exports every root certificate as a DER file.

    The export directory is emptied first so stale files from earlier runs
    are never re-imported.
    """
    return f"""
$ExportDir = {_ps_literal(windows_export_dir)}
$ShowProgress = {_ps_bool(show_progress)}
if (Test-Path $ExportDir) {{
    Remove-Item -Path (Join-Path $ExportDir '*') -Force -ErrorAction SilentlyContinue
    if ($ShowProgress) {{ Write-Host "Cleared previous certificate files from $ExportDir" }}
}}
if (!(Test-Path $ExportDir)) {{
    New-Item -ItemType Directory -Path $ExportDir -Force | Out-Null
}}
Get-ChildItem -Path Cert:\\LocalMachine\\Root | ForEach-Object {{
    $certPath = Join-Path $ExportDir ($_.Thumbprint + '.crt')
    Export-Certificate -Cert $_.PSPath -FilePath $certPath -Type CERT -ErrorAction Continue | Out-Null
    if (Test-Path $certPath) {{
        if ($ShowProgress) {{
            Write-Host ('Exported: CN=' + $_.Subject + ' | Issuer: ' + $_.Issuer + ' | Expiry: ' + $_.NotAfter)
        }}
    }} else {{
        Write-Host ('Failed to export: ' + $certPath)
    }}
}}
"""


def _parse_not_after(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
    except ValueError:
        logger.debug(f"Unparsable NotAfter value: {value}")
        return None


class HostStoreReader(ABC):
    """Enumerates raw root certificates from the host trust store."""

    @abstractmethod
    def list_root_certificates(self) -> List[HostCertificate]:
        """
        Export and enumerate root certificates.

        Raises:
            ExtractionError: If the export location is unreachable
        """

    def preview_root_certificates(self) -> List[HostCertificate]:
        """Enumerate root certificates without writing anything."""
        return self.list_root_certificates()


class DirectoryStoreReader(HostStoreReader):
    """Reads certificate files from an existing export directory."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _read_file(self, path: Path) -> List[HostCertificate]:
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.warning(f"Skipping unreadable file {path}: {e}")
            return []

        # A PEM bundle becomes one entry per certificate
        blocks = split_pem_certificates(data) if has_pem_armor(data) else []
        chunks = blocks if len(blocks) > 1 else [data]

        certificates = []
        for index, chunk in enumerate(chunks):
            source = str(path) if len(chunks) == 1 else f"{path}#{index}"
            metadata = try_describe(chunk)
            subject, issuer, not_after = metadata if metadata else ("", "", None)
            certificates.append(
                HostCertificate(
                    raw_bytes=chunk,
                    encoding_hint=detect_encoding(chunk),
                    subject=subject,
                    issuer=issuer,
                    not_after=not_after,
                    source=source,
                )
            )
        return certificates

    def list_root_certificates(self) -> List[HostCertificate]:
        if not self.directory.is_dir():
            logger.error(f"Certificate export directory does not exist: {self.directory}")
            raise ExtractionError(EXPORT_DIR_MISSING)

        certificates: List[HostCertificate] = []
        for path in sorted(self.directory.iterdir()):
            if not path.is_file() or path.suffix.lower() not in CERT_SUFFIXES:
                continue
            certificates.extend(self._read_file(path))

        logger.debug(f"Read {len(certificates)} certificate(s) from {self.directory}")
        return certificates


class PowerShellStoreReader(HostStoreReader):
    """Exports ``Cert:\\LocalMachine\\Root`` through Windows PowerShell from inside WSL."""

    def __init__(self, config: SyncConfig):
        self.config = config

    def _run(self, script: str) -> subprocess.CompletedProcess:
        command = [
            str(self.config.powershell),
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-Command",
            _UTF8_OUTPUT + script,
        ]
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.config.export_timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise ExtractionError(f"PowerShell not found at {self.config.powershell}") from e
        except subprocess.TimeoutExpired as e:
            raise ExtractionError(f"PowerShell timed out after {self.config.export_timeout}s") from e
        except OSError as e:
            raise ExtractionError(f"Could not run PowerShell: {e}") from e

        for line in result.stdout.splitlines():
            if line.strip():
                logger.debug(f"powershell: {line.strip()}")
        if result.returncode != 0:
            logger.warning(f"PowerShell exited with code {result.returncode}: {result.stderr.strip()[:500]}")
        return result

    def export(self) -> Path:
        """
        Export all root certificates into the configured export directory.

        Returns:
            WSL-side path of the export directory

        Raises:
            ExtractionError: If PowerShell cannot run or the directory is missing afterwards
        """
        logger.info("Clearing existing Windows certificate export directory...")
        self._run(build_export_script(self.config.windows_export_dir, self.config.debug))
        if not self.config.export_dir.is_dir():
            logger.error("Windows certificate export directory does not exist. Extraction may have failed.")
            raise ExtractionError(EXPORT_DIR_MISSING)
        return self.config.export_dir

    def list_root_certificates(self) -> List[HostCertificate]:
        export_dir = self.export()
        return DirectoryStoreReader(export_dir).list_root_certificates()

    def preview_root_certificates(self) -> List[HostCertificate]:
        result = self._run(_PREVIEW_SCRIPT)
        if result.returncode != 0 and not result.stdout.strip():
            raise ExtractionError("could not enumerate the Windows root store")

        certificates: List[HostCertificate] = []
        for line in result.stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
                if not isinstance(entry, dict):
                    raise ValueError("expected a JSON object")
                raw = base64.b64decode(entry.get("RawData") or "", validate=True)
            except (json.JSONDecodeError, binascii.Error, ValueError) as e:
                logger.debug(f"Failed to parse certificate entry: {line[:100]} ({e})")
                continue
            certificates.append(
                HostCertificate(
                    raw_bytes=raw,
                    encoding_hint=Encoding.DER,
                    subject=entry.get("Subject", ""),
                    issuer=entry.get("Issuer", ""),
                    not_after=_parse_not_after(entry.get("NotAfter")),
                    source=entry.get("Thumbprint", ""),
                )
            )
        return certificates
