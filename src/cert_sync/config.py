"""Runtime configuration passed to every component."""

import logging
import os
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from cert_sync.exceptions import ConfigError
from cert_sync.models import Verbosity

logger = logging.getLogger(__name__)

DEFAULT_POWERSHELL = "/mnt/c/WINDOWS/System32/WindowsPowerShell/v1.0/powershell.exe"
DEFAULT_WINDOWS_EXPORT_DIR = "C:\\Windows\\Temp\\WSL_Certs"
DEFAULT_IMPORT_DIR = "/usr/local/share/ca-certificates/windows"
DEFAULT_CA_BUNDLE = "/etc/ssl/certs/ca-certificates.crt"

ENV_PREFIX = "CERT_SYNC_"

_WINDOWS_DRIVE_RE = re.compile(r"^([A-Za-z]):[\\/]*(.*)$")


def windows_to_wsl_path(windows_path: str, mount_root: str = "/mnt") -> Path:
    """
    Translate a Windows path to the path WSL mounts it under.

    Args:
        windows_path: Absolute Windows path, e.g. ``C:\\Windows\\Temp\\WSL_Certs``
        mount_root: Directory WSL mounts drives under

    Returns:
        Path such as ``/mnt/c/Windows/Temp/WSL_Certs``

    Raises:
        ConfigError: If the path has no drive letter
    """
    match = _WINDOWS_DRIVE_RE.match(windows_path.strip())
    if not match:
        raise ConfigError(f"Not an absolute Windows path: {windows_path}")
    drive, rest = match.groups()
    parts = [p for p in re.split(r"[\\/]+", rest) if p]
    return Path(mount_root, drive.lower(), *parts)


@dataclass(frozen=True)
class SyncConfig:
    """Configuration for one invocation of the tool."""

    powershell: Path = Path(DEFAULT_POWERSHELL)
    windows_export_dir: str = DEFAULT_WINDOWS_EXPORT_DIR
    export_dir: Path = windows_to_wsl_path(DEFAULT_WINDOWS_EXPORT_DIR)
    import_dir: Path = Path(DEFAULT_IMPORT_DIR)
    ca_bundle: Path = Path(DEFAULT_CA_BUNDLE)
    timeout: float = 10.0  # Connectivity test timeout in seconds
    export_timeout: float = 120.0  # PowerShell export timeout in seconds
    verbosity: Verbosity = Verbosity.NORMAL
    color: bool = True

    @property
    def debug(self) -> bool:
        """True when debug or verbose output was requested."""
        return self.verbosity != Verbosity.NORMAL

    def with_verbosity(self, verbosity: Verbosity) -> "SyncConfig":
        return replace(self, verbosity=verbosity)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "SyncConfig":
        """
        Build a configuration from defaults and ``CERT_SYNC_*`` environment variables.

        Args:
            environ: Environment mapping (defaults to ``os.environ``)
            **overrides: Explicit values that win over the environment

        Returns:
            SyncConfig

        Raises:
            ConfigError: If a value cannot be parsed
        """
        env = os.environ if environ is None else environ
        values = {}

        def _get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            if value is not None and value.strip():
                logger.debug(f"Using {ENV_PREFIX}{name}={value}")
                return value.strip()
            return None

        windows_export_dir = _get("WINDOWS_EXPORT_DIR")
        if windows_export_dir:
            values["windows_export_dir"] = windows_export_dir
            values["export_dir"] = windows_to_wsl_path(windows_export_dir)

        # An explicit WSL-side export path wins over the translated one
        for name, attr in (
            ("POWERSHELL", "powershell"),
            ("EXPORT_DIR", "export_dir"),
            ("IMPORT_DIR", "import_dir"),
            ("CA_BUNDLE", "ca_bundle"),
        ):
            raw = _get(name)
            if raw is not None:
                values[attr] = Path(raw)

        for name, attr in (("TIMEOUT", "timeout"), ("EXPORT_TIMEOUT", "export_timeout")):
            raw = _get(name)
            if raw is None:
                continue
            try:
                seconds = float(raw)
            except ValueError as e:
                raise ConfigError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from e
            if seconds <= 0:
                raise ConfigError(f"{ENV_PREFIX}{name} must be positive, got {raw!r}")
            values[attr] = seconds

        values.update(overrides)
        return cls(**values)
