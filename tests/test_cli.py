"""
CLI interface tests for npm-license-report.
Tests the command-line interface and main entry points.
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from npm_license_report.error_handling import ManifestMissing, NoLicenseFoundStrict
from npm_license_report.fingerprint import Fingerprint
from npm_license_report.generator import ReportOutcome
from npm_license_report.main import cli


def outcome(skipped=False, missing=()):
    return ReportOutcome(
        skipped=skipped,
        out_path=Path("licenses.html"),
        fingerprint=Fingerprint(value="0123456789abcdef", corpus="a@1.0.0"),
        dependency_count=3,
        entry_count=2,
        missing=missing,
    )


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "npm-license-report" in result.output.lower()

    def test_cli_version(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "1.0.0" in result.output

    def test_info_command(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["info"])

        assert result.exit_code == 0
        assert "npm-license-report" in result.output.lower()

    def test_generate_help_lists_options(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["generate", "--help"])

        assert result.exit_code == 0
        for option in ("--package-lock", "--checksum-embed", "--only-spdx", "--error-missing"):
            assert option in result.output


class TestGenerateCommand:
    """Test the generate command and its exit codes."""

    @patch("npm_license_report.main.generate_license_report", new_callable=AsyncMock)
    def test_success(self, mock_generate, make_project):
        mock_generate.return_value = outcome()
        root = make_project({"name": "app"})

        runner = CliRunner()
        result = runner.invoke(cli, ["generate", str(root)])

        assert result.exit_code == 0
        assert "Wrote 2" in result.output
        mock_generate.assert_called_once()

    @patch("npm_license_report.main.generate_license_report", new_callable=AsyncMock)
    def test_options_reach_config(self, mock_generate, make_project):
        mock_generate.return_value = outcome()
        root = make_project({"name": "app"})

        runner = CliRunner()
        result = runner.invoke(
            cli,
            [
                "generate",
                str(root),
                "--only-prod",
                "--package-lock",
                "--title",
                "Acme",
                "--ignored",
                "a;b",
                "--max-concurrent",
                "4",
                "--log-level",
                "error",
            ],
        )

        assert result.exit_code == 0
        config = mock_generate.call_args[0][0]
        assert config.report.only_prod is True
        assert config.report.use_lock_file is True
        assert config.report.title == "Acme"
        assert config.report.ignored == ("a", "b")
        assert config.report.root_path == root.resolve()
        assert config.network.max_concurrent == 4
        assert config.logging.log_level == "error"

    @patch("npm_license_report.main.generate_license_report", new_callable=AsyncMock)
    def test_skipped_run(self, mock_generate, make_project):
        mock_generate.return_value = outcome(skipped=True)
        root = make_project({"name": "app"})

        runner = CliRunner()
        result = runner.invoke(cli, ["generate", str(root)])

        assert result.exit_code == 0
        assert "unchanged" in result.output

    @patch("npm_license_report.main.generate_license_report", new_callable=AsyncMock)
    def test_quiet_prints_nothing(self, mock_generate, make_project):
        mock_generate.return_value = outcome(missing=("a",))
        root = make_project({"name": "app"})

        runner = CliRunner()
        result = runner.invoke(cli, ["generate", str(root), "--quiet"])

        assert result.exit_code == 0
        assert "Wrote" not in result.output

    @patch("npm_license_report.main.generate_license_report", new_callable=AsyncMock)
    def test_strict_missing_license_exits_2(self, mock_generate, make_project):
        mock_generate.side_effect = NoLicenseFoundStrict("left-pad")
        root = make_project({"name": "app"})

        runner = CliRunner()
        result = runner.invoke(cli, ["generate", str(root), "--error-missing"])

        assert result.exit_code == 2

    @patch("npm_license_report.main.generate_license_report", new_callable=AsyncMock)
    def test_fatal_error_exits_1(self, mock_generate, make_project):
        mock_generate.side_effect = ManifestMissing("No package.json found")
        root = make_project({"name": "app"})

        runner = CliRunner()
        result = runner.invoke(cli, ["generate", str(root)])

        assert result.exit_code == 1

    @patch("npm_license_report.main.generate_license_report", new_callable=AsyncMock)
    def test_interrupt_exits_130(self, mock_generate, make_project):
        mock_generate.side_effect = KeyboardInterrupt()
        root = make_project({"name": "app"})

        runner = CliRunner()
        result = runner.invoke(cli, ["generate", str(root)])

        assert result.exit_code == 130

    @patch("npm_license_report.main.generate_license_report", new_callable=AsyncMock)
    def test_wrongly_typed_config_value_exits_1(self, mock_generate, make_project):
        root = make_project({"name": "app"})
        config_path = root / "settings.yaml"
        config_path.write_text("network:\n  read_timeout: fast\n")

        runner = CliRunner()
        result = runner.invoke(cli, ["generate", str(root), "--config", str(config_path)])

        assert result.exit_code == 1
        assert not isinstance(result.exception, TypeError)
        mock_generate.assert_not_called()

    def test_missing_manifest_exits_1(self, temp_dir):
        runner = CliRunner()
        result = runner.invoke(cli, ["generate", str(temp_dir)])

        assert result.exit_code == 1

    def test_conflicting_options_exit_1(self, temp_dir):
        runner = CliRunner()
        result = runner.invoke(cli, ["generate", str(temp_dir), "--only-spdx", "--no-spdx"])

        assert result.exit_code == 1

    def test_invalid_log_level(self, temp_dir):
        runner = CliRunner()
        result = runner.invoke(cli, ["generate", str(temp_dir), "--log-level", "loud"])

        assert result.exit_code != 0


class TestConfigCommands:
    """Test config management commands."""

    def test_config_init(self, temp_dir):
        path = temp_dir / "config.json"

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "init", "--path", str(path)])

        assert result.exit_code == 0
        assert "report" in json.loads(path.read_text())

    def test_config_init_keeps_existing_file(self, temp_dir):
        path = temp_dir / "config.json"
        path.write_text("{}")

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "init", "--path", str(path)])

        assert result.exit_code == 0
        assert path.read_text() == "{}"

    def test_config_init_force(self, temp_dir):
        path = temp_dir / "config.json"
        path.write_text("{}")

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "init", "--path", str(path), "--force"])

        assert result.exit_code == 0
        assert "report" in json.loads(path.read_text())

    def test_config_show(self, temp_dir):
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "show", str(temp_dir)])

        assert result.exit_code == 0
        assert "Registry" in result.output

    def test_config_validate_valid(self, temp_dir):
        path = temp_dir / "config.json"
        path.write_text(json.dumps({"network": {"max_concurrent": 8}}))

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "validate", str(path)])

        assert result.exit_code == 0

    def test_config_validate_invalid_values(self, temp_dir):
        path = temp_dir / "config.json"
        path.write_text(json.dumps({"network": {"max_concurrent": 0}}))

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "validate", str(path)])

        assert result.exit_code == 1

    def test_config_validate_unreadable(self, temp_dir):
        path = temp_dir / "config.json"
        path.write_text("{ not json")

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "validate", str(path)])

        assert result.exit_code == 1

    def test_config_validate_wrong_value_type(self, temp_dir):
        path = temp_dir / "config.json"
        path.write_text(json.dumps({"network": {"max_concurrent": "8"}}))

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "validate", str(path)])

        assert result.exit_code == 1
        assert "network.max_concurrent must be an integer" in result.output
