"""CLI entry point using Typer."""

import logging
import os
import sys
from typing import Optional

import typer

from cert_sync.config import SyncConfig
from cert_sync.connectivity import check_connectivity
from cert_sync.exceptions import CertSyncError, ConfigError
from cert_sync.host_store import HostStoreReader, PowerShellStoreReader
from cert_sync.installer import DebianTrustStoreInstaller, TrustStoreInstaller
from cert_sync.models import SyncState, Verbosity
from cert_sync.orchestrator import SyncOrchestrator
from cert_sync.reporter import (
    generate_connectivity_report,
    generate_dry_run_report,
    generate_sync_report,
)

EPILOG = """
Flag compatibility:

  - Cannot use both -u (update) and -t (test) together.

  - Cannot use both -d (debug) and -v (verbose) together.

  - Cannot use -n (dry-run) with -u (update), as it prevents changes.

  - -r (reset) runs alone or before -u.

Examples:

  sudo cert-sync -u            Update Windows certificates and sync them to WSL.

  sudo cert-sync -t example.com    Test if 'example.com' validates with the updated certificates.

  sudo cert-sync -n            List certificates that would be modified, without making changes.

  sudo cert-sync -u -d         Update certificates with debug logs enabled.
"""

app = typer.Typer(
    help="Sync Windows root certificates into the WSL trust store.",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
)

logger = logging.getLogger(__name__)


def resolve_verbosity(debug: bool, verbose: bool) -> Verbosity:
    if debug and verbose:
        raise ConfigError("Cannot use both -d (debug) and -v (verbose) together.")
    if verbose:
        return Verbosity.VERBOSE
    if debug:
        return Verbosity.DEBUG
    return Verbosity.NORMAL


def resolve_action(update: bool, reset: bool, test: Optional[str], dry_run: bool) -> str:
    """
    Validate flag combinations and return the selected action.

    Returns:
        One of "update", "reset", "test", "dry-run"

    Raises:
        ConfigError: On conflicting or missing flags
    """
    if update and test is not None:
        raise ConfigError("Cannot use both -u (update) and -t (test) together.")
    if update and dry_run:
        raise ConfigError("Cannot use -n (dry-run) with -u (update), as it prevents changes.")
    if test is not None and dry_run:
        raise ConfigError("Cannot use both -t (test) and -n (dry-run) together.")
    if reset and (test is not None or dry_run):
        raise ConfigError("-r (reset) can only be combined with -u (update).")
    if test is not None and not test.strip():
        raise ConfigError("You must specify a domain with -t.")

    if update:
        return "update"
    if test is not None:
        return "test"
    if dry_run:
        return "dry-run"
    if reset:
        return "reset"
    raise ConfigError("No action specified.")


def configure_logging(verbosity: Verbosity) -> None:
    if verbosity == Verbosity.NORMAL:
        return
    logging.getLogger("cert_sync").setLevel(logging.DEBUG)
    if verbosity == Verbosity.VERBOSE:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("httpx").setLevel(logging.DEBUG)
        logging.getLogger("httpcore").setLevel(logging.DEBUG)


def build_reader(config: SyncConfig) -> HostStoreReader:
    return PowerShellStoreReader(config)


def build_installer(config: SyncConfig) -> TrustStoreInstaller:
    return DebianTrustStoreInstaller(config)


def _warn_if_not_root() -> None:
    if hasattr(os, "geteuid") and os.geteuid() != 0:
        logger.warning("Not running as root; writing the trust store will likely fail. Re-run with sudo.")


@app.command(epilog=EPILOG)
def sync(
    ctx: typer.Context,
    update: bool = typer.Option(False, "-u", help="Update certificates from Windows to WSL"),
    reset: bool = typer.Option(False, "-r", help="Reset default WSL root certificates before importing new ones"),
    test: Optional[str] = typer.Option(None, "-t", metavar="URL", help="Test a domain against the updated certificates"),
    dry_run: bool = typer.Option(False, "-n", help="Dry-run (list affected certificates, no changes)"),
    debug: bool = typer.Option(False, "-d", help="Debug mode (detailed logs)"),
    verbose: bool = typer.Option(False, "-v", help="Verbose mode (even more detailed logs)"),
):
    """
    Sync Windows root certificates into the WSL trust store.
    """
    try:
        verbosity = resolve_verbosity(debug, verbose)
        action = resolve_action(update, reset, test, dry_run)
        config = SyncConfig.from_env(
            verbosity=verbosity,
            color=sys.stdout.isatty() and "NO_COLOR" not in os.environ,
        )
    except ConfigError as e:
        logger.error(str(e))
        typer.echo(ctx.get_help(), err=True)
        sys.exit(1)

    configure_logging(verbosity)
    logger.debug(f"Action: {action}, reset: {reset}, config: {config}")

    if action == "test":
        try:
            result = check_connectivity(test, config)
        except ConfigError as e:
            logger.error(str(e))
            sys.exit(1)
        print(generate_connectivity_report(result, verbosity, color=config.color))
        if not result.success:
            logger.error(result.error or "Certificate verification failed")
            sys.exit(1)
        sys.exit(0)

    orchestrator = SyncOrchestrator(config, build_reader(config), build_installer(config))

    try:
        if action == "dry-run":
            result = orchestrator.run_dry_run()
            print(generate_dry_run_report(result, color=config.color))
            sys.exit(0)

        _warn_if_not_root()
        if reset:
            orchestrator.run_reset()
        if action == "update":
            result = orchestrator.run_update()
            print(generate_sync_report(result, color=config.color, show_all=config.debug))
    except CertSyncError as e:
        logger.error(f"{type(e).__name__}: {e}")
        if orchestrator.state == SyncState.ABORTED and orchestrator.last_result is not None:
            print(generate_sync_report(orchestrator.last_result, color=config.color, show_all=config.debug))
        sys.exit(1)

    sys.exit(0)


def main() -> None:
    """Console script entry point; usage errors exit with status 1 instead of 2."""
    try:
        app()
    except SystemExit as e:
        sys.exit(1 if e.code == 2 else e.code)


if __name__ == "__main__":
    main()
