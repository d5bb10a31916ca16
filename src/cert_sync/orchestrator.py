"""Sync orchestrator: extract, normalize, validate, stage, install."""

import logging
import tempfile
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from cert_sync.certificate import compute_thumbprint
from cert_sync.config import SyncConfig
from cert_sync.exceptions import CertSyncError, ExtractionError, InstallError, ResetError
from cert_sync.host_store import EXPORT_DIR_MISSING, HostStoreReader
from cert_sync.installer import TrustStoreInstaller
from cert_sync.models import (
    CertificateRecord,
    CertificateStatus,
    HostCertificate,
    SyncBatch,
    SyncResult,
    SyncState,
)
from cert_sync.normalizer import deduplicate, normalize_all
from cert_sync.validator import validate_all

logger = logging.getLogger(__name__)

_TERMINAL_STATES = (SyncState.DONE, SyncState.DRY_RUN, SyncState.ABORTED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def record_from_host(cert: HostCertificate) -> CertificateRecord:
    """Create a PENDING record; the thumbprint is provisional until normalization."""
    return CertificateRecord(
        thumbprint=compute_thumbprint(cert.raw_bytes),
        subject=cert.subject,
        issuer=cert.issuer,
        not_after=cert.not_after,
        raw_bytes=cert.raw_bytes,
        encoding=cert.encoding_hint,
        source=cert.source,
    )


class SyncOrchestrator:
    """
    Drives one synchronization run.

    Per-record failures (bad encoding, malformed, expired, duplicate) are
    recorded on the record and never stop the run. Extraction, staging,
    install and reset failures are fatal: the orchestrator moves to
    ABORTED and re-raises.

    Runs are not safe to execute concurrently against the same import
    directory; callers must serialize invocations.
    """

    def __init__(
        self,
        config: SyncConfig,
        reader: HostStoreReader,
        installer: TrustStoreInstaller,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config
        self.reader = reader
        self.installer = installer
        self.clock = clock
        self.state = SyncState.IDLE
        self.failed_stage: Optional[SyncState] = None
        self.error: Optional[str] = None
        self.last_result: Optional[SyncResult] = None
        self.refreshed = False
        self.batch = SyncBatch()

    def _transition(self, new_state: SyncState) -> None:
        logger.debug(f"State: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _abort(self, error: Exception) -> None:
        if self.state not in _TERMINAL_STATES:
            self.failed_stage = self.state
        self._transition(SyncState.ABORTED)
        self.error = str(error)
        self._result(copied_count=len(self.batch.installed), refreshed=self.refreshed)
        logger.debug(f"Aborted during {self.failed_stage.value if self.failed_stage else 'n/a'}: {error}")

    def _result(self, copied_count: int = 0, refreshed: bool = False) -> SyncResult:
        self.last_result = SyncResult(
            state=self.state,
            batch=self.batch,
            timestamp=self.clock(),
            copied_count=copied_count,
            refreshed=refreshed,
            error=self.error,
            failed_stage=self.failed_stage,
        )
        return self.last_result

    # Update path

    def _extract(self) -> None:
        self._transition(SyncState.EXTRACTING)
        host_certs = self.reader.list_root_certificates()
        if not host_certs:
            logger.error("No certificates were exported from the host store.")
            raise ExtractionError(EXPORT_DIR_MISSING)
        self.batch = SyncBatch([record_from_host(cert) for cert in host_certs])
        logger.info(f"Extracted {len(self.batch)} certificate(s) from the host store")

    def _normalize(self) -> None:
        self._transition(SyncState.NORMALIZING)
        self.batch = SyncBatch(normalize_all(self.batch.records))

    def _validate(self) -> None:
        self._transition(SyncState.VALIDATING)
        self.batch = SyncBatch(validate_all(self.batch.records, now=self.clock()))

    def _stage(self, staging_dir: Path) -> List[CertificateRecord]:
        self._transition(SyncState.STAGING)
        self.batch = SyncBatch(deduplicate(self.batch.records))
        staged = self.batch.validated
        for record in staged:
            try:
                (staging_dir / record.filename).write_bytes(record.raw_bytes)
            except OSError as e:
                raise InstallError(f"Could not stage {record.filename}: {e}") from e
        logger.debug(f"Staged {len(staged)} certificate(s) in {staging_dir}")
        return staged

    def _install(self, staging_dir: Path) -> SyncResult:
        self._transition(SyncState.INSTALLING)
        logger.info("Syncing certificates from Windows to WSL...")
        outcome = self.installer.install_trust_anchors(staging_dir)

        installed_names = set(outcome.installed)
        self.batch = SyncBatch(
            [
                replace(record, status=CertificateStatus.INSTALLED)
                if record.status == CertificateStatus.VALIDATED and record.filename in installed_names
                else record
                for record in self.batch.records
            ]
        )
        logger.info(f"Copied: {outcome.count} certificates.")

        if outcome.count > 0:
            self.installer.refresh_trust_store()
            self.refreshed = True
            logger.info("Updated WSL certificate store.")
        else:
            logger.warning("No new certificates found.")

        if outcome.failed:
            raise InstallError(
                f"{len(outcome.failed)} certificate(s) could not be installed: "
                + ", ".join(sorted(outcome.failed))
            )

        self._transition(SyncState.DONE)
        return self._result(copied_count=outcome.count, refreshed=self.refreshed)

    def run_update(self) -> SyncResult:
        """
        Run the full extract -> install pipeline.

        Returns:
            SyncResult in state DONE

        Raises:
            ExtractionError: Export unreachable or empty
            InstallError: Staging, copy or refresh failed
        """
        try:
            self._extract()
            self._normalize()
            self._validate()
            with tempfile.TemporaryDirectory(prefix="cert-sync-") as tmp:
                staging_dir = Path(tmp)
                self._stage(staging_dir)
                return self._install(staging_dir)
        except CertSyncError as e:
            self._abort(e)
            raise

    # Dry-run path

    def run_dry_run(self) -> SyncResult:
        """
        List the host root certificates without touching either trust store.

        Returns:
            SyncResult in state DRY_RUN holding PENDING records
        """
        logger.info("Performing dry-run: Listing Windows certificates without exporting or modifying anything.")
        try:
            self._transition(SyncState.EXTRACTING)
            host_certs = self.reader.preview_root_certificates()
        except CertSyncError as e:
            self._abort(e)
            raise
        if not host_certs:
            logger.warning("The host store returned no root certificates.")
        self.batch = SyncBatch([record_from_host(cert) for cert in host_certs])
        self._transition(SyncState.DRY_RUN)
        return self._result()

    # Reset path

    def run_reset(self) -> None:
        """
        Purge imported anchors, reinstall the base package and refresh.

        Raises:
            ResetError: At the first failing step; nothing is retried
        """
        logger.info("Resetting WSL root certificates...")
        try:
            self.installer.purge_trust_anchors(self.config.import_dir)
            self.installer.reinstall_base_package()
            try:
                self.installer.refresh_trust_store()
            except InstallError as e:
                raise ResetError(str(e)) from e
        except ResetError as e:
            self._abort(e)
            logger.error(str(e))
            raise
        logger.info("WSL root certificates reset successfully.")
