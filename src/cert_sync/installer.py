"""Guest-side trust store installation (Debian/Ubuntu ``ca-certificates``)."""

import logging
import os
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from cert_sync.config import SyncConfig
from cert_sync.exceptions import InstallError, ResetError
from cert_sync.models import InstallOutcome

logger = logging.getLogger(__name__)

REINSTALL_COMMAND = ["apt-get", "install", "--reinstall", "-y", "ca-certificates"]
REFRESH_COMMAND = ["update-ca-certificates", "--fresh"]


class TrustStoreInstaller(ABC):
    """Applies staged certificates to the guest trust store."""

    @abstractmethod
    def install_trust_anchors(self, staging_dir: Path) -> InstallOutcome:
        """Copy every staged ``*.crt`` file into the guest import directory."""

    @abstractmethod
    def purge_trust_anchors(self, directory: Optional[Path] = None) -> None:
        """Remove the directory holding previously imported anchors."""

    @abstractmethod
    def reinstall_base_package(self) -> None:
        """Reinstall the distribution's default trust anchors."""

    @abstractmethod
    def refresh_trust_store(self) -> None:
        """Rebuild the system bundle from the anchor directories."""


class DebianTrustStoreInstaller(TrustStoreInstaller):
    """Installer backed by ``update-ca-certificates``."""

    def __init__(self, config: SyncConfig, command_timeout: float = 300.0):
        self.config = config
        self.command_timeout = command_timeout

    def _run(self, command: List[str]) -> subprocess.CompletedProcess:
        logger.debug(f"Running: {' '.join(command)}")
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=self.command_timeout,
            check=False,
        )
        if result.stdout.strip():
            logger.debug(result.stdout.strip())
        return result

    def install_trust_anchors(self, staging_dir: Path) -> InstallOutcome:
        import_dir = self.config.import_dir
        try:
            import_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallError(f"Cannot create {import_dir}: {e}") from e

        outcome = InstallOutcome()
        for staged in sorted(Path(staging_dir).glob("*.crt")):
            target = import_dir / staged.name
            try:
                # Copy next to the target and rename so readers never see a partial file
                fd, tmp_name = tempfile.mkstemp(dir=import_dir, prefix=".", suffix=".tmp")
                os.close(fd)
                try:
                    shutil.copyfile(staged, tmp_name)
                    os.chmod(tmp_name, 0o644)
                    os.replace(tmp_name, target)
                except OSError:
                    if os.path.exists(tmp_name):
                        os.unlink(tmp_name)
                    raise
            except OSError as e:
                logger.error(f"Failed to copy {staged.name} to {import_dir}: {e}")
                outcome.failed[staged.name] = str(e)
                continue
            outcome.installed.append(staged.name)
            logger.debug(f"Installed {target}")
        return outcome

    def purge_trust_anchors(self, directory: Optional[Path] = None) -> None:
        directory = Path(directory or self.config.import_dir)
        if directory == Path(directory.anchor) or len(directory.parts) < 3:
            raise ResetError(f"Refusing to remove {directory}")
        if not directory.exists():
            logger.debug(f"{directory} does not exist, nothing to purge")
            return
        try:
            shutil.rmtree(directory)
        except OSError as e:
            raise ResetError(f"Failed to remove existing certificates: {e}") from e
        logger.debug(f"Removed {directory}")

    def reinstall_base_package(self) -> None:
        try:
            result = self._run(REINSTALL_COMMAND)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ResetError(f"Failed to reinstall ca-certificates: {e}") from e
        if result.returncode != 0:
            raise ResetError(f"Failed to reinstall ca-certificates: {result.stderr.strip()}")

    def refresh_trust_store(self) -> None:
        try:
            result = self._run(REFRESH_COMMAND)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise InstallError(f"Failed to update CA certificates: {e}") from e
        if result.returncode != 0:
            raise InstallError(f"Failed to update CA certificates: {result.stderr.strip()}")
