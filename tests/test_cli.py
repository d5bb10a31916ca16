"""Tests for the command line interface."""

import logging
import sys
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from cert_sync.cli import app, main, resolve_action, resolve_verbosity
from cert_sync.exceptions import ConfigError
from cert_sync.host_store import DirectoryStoreReader
from cert_sync.models import ConnectivityResult, Verbosity

from conftest import RecordingInstaller, build_root_cert, write_export

runner = CliRunner()


@pytest.fixture
def cli_env(monkeypatch, config):
    """Point the CLI's environment-driven configuration at temporary directories."""
    monkeypatch.setenv("CERT_SYNC_EXPORT_DIR", str(config.export_dir))
    monkeypatch.setenv("CERT_SYNC_IMPORT_DIR", str(config.import_dir))
    monkeypatch.setenv("CERT_SYNC_CA_BUNDLE", str(config.ca_bundle))
    installers = []

    def build_installer(cfg):
        installer = RecordingInstaller(cfg)
        installers.append(installer)
        return installer

    with patch("cert_sync.cli.build_reader", lambda cfg: DirectoryStoreReader(cfg.export_dir)), patch(
        "cert_sync.cli.build_installer", build_installer
    ):
        yield installers


class TestFlagValidation:
    """Flag combinations are rejected before anything runs."""

    @pytest.mark.parametrize(
        "args",
        [[], ["-d", "-v", "-u"], ["-u", "-t", "example.com"], ["-n", "-u"], ["-t", "example.com", "-n"], ["-r", "-n"]],
    )
    def test_invalid_combinations_exit_1(self, cli_env, args):
        result = runner.invoke(app, args)

        assert result.exit_code == 1
        assert cli_env == []

    def test_help(self):
        result = runner.invoke(app, ["-h"])

        assert result.exit_code == 0
        assert "-u" in result.output
        assert "Flag compatibility" in result.output

    def test_resolve_action(self):
        assert resolve_action(True, True, None, False) == "update"
        assert resolve_action(False, True, None, False) == "reset"
        assert resolve_action(False, False, "example.com", False) == "test"
        assert resolve_action(False, False, None, True) == "dry-run"

    def test_resolve_action_empty_domain(self):
        with pytest.raises(ConfigError, match="-t"):
            resolve_action(False, False, "  ", False)

    def test_resolve_verbosity(self):
        assert resolve_verbosity(False, False) == Verbosity.NORMAL
        assert resolve_verbosity(True, False) == Verbosity.DEBUG
        assert resolve_verbosity(False, True) == Verbosity.VERBOSE
        with pytest.raises(ConfigError):
            resolve_verbosity(True, True)


class TestUpdate:
    def test_update_installs_certificates(self, cli_env, config, export_dir):
        write_export(export_dir, [build_root_cert(f"Root {i}") for i in range(3)])

        result = runner.invoke(app, ["-u"])

        assert result.exit_code == 0
        assert "Copied: 3" in result.output
        assert len(list(config.import_dir.glob("*.crt"))) == 3
        assert cli_env[0].calls == ["refresh"]

    def test_update_with_empty_export_exits_1(self, cli_env, config, export_dir):
        result = runner.invoke(app, ["-u"])

        assert result.exit_code == 1
        assert not config.import_dir.exists()
        assert "State: Aborted" in result.output
        assert "Failed during: Extracting" in result.output
        assert "Error: export directory missing" in result.output

    def test_reset_then_update(self, cli_env, config, export_dir, root_cert):
        config.import_dir.mkdir(parents=True)
        (config.import_dir / "stale.crt").write_bytes(b"stale")
        write_export(export_dir, [root_cert])

        result = runner.invoke(app, ["-r", "-u"])

        assert result.exit_code == 0
        assert cli_env[0].calls == ["purge", "reinstall", "refresh", "refresh"]
        assert not (config.import_dir / "stale.crt").exists()
        assert len(list(config.import_dir.glob("*.crt"))) == 1

    def test_reset_alone(self, cli_env, config):
        result = runner.invoke(app, ["-r"])

        assert result.exit_code == 0
        assert cli_env[0].calls == ["purge", "reinstall", "refresh"]


class TestDryRun:
    def test_dry_run_lists_and_changes_nothing(self, cli_env, config, export_dir, expired_cert):
        write_export(export_dir, [build_root_cert("Listed Root"), expired_cert])

        result = runner.invoke(app, ["-n"])

        assert result.exit_code == 0
        assert "Subject: CN=Listed Root" in result.output
        assert "Dry-run completed: No files were modified." in result.output
        assert not config.import_dir.exists()
        assert cli_env[0].calls == []


class TestConnectivity:
    def test_invalid_domain_exits_1(self, cli_env, caplog):
        with patch("cert_sync.connectivity._perform_request") as mock_request:
            with caplog.at_level(logging.ERROR):
                result = runner.invoke(app, ["-t", "not a domain!!"])

        assert result.exit_code == 1
        mock_request.assert_not_called()
        assert "invalid domain format" in caplog.text

    def test_working_certificate_exits_0(self, cli_env):
        ok = ConnectivityResult(domain="example.com", url="https://example.com", success=True, status_code=200)

        with patch("cert_sync.cli.check_connectivity", return_value=ok) as mock_check:
            result = runner.invoke(app, ["-t", "https://example.com"])

        assert result.exit_code == 0
        assert "Certificate is working!" in result.output
        assert mock_check.call_args[0][0] == "https://example.com"

    def test_failed_verification_exits_1(self, cli_env):
        failed = ConnectivityResult(
            domain="example.com", url="https://example.com", success=False, error="certificate verification failed"
        )

        with patch("cert_sync.cli.check_connectivity", return_value=failed):
            result = runner.invoke(app, ["-t", "example.com", "-d"])

        assert result.exit_code == 1
        assert "Certificate verification failed!" in result.output


class TestMain:
    """main() maps usage errors to exit status 1."""

    def test_missing_option_value(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["cert-sync", "-t"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1

    def test_unknown_option(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["cert-sync", "--bogus"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "No such option" in err
        assert "Traceback" not in err

    def test_help_exits_0(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["cert-sync", "--help"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 0
