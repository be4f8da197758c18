"""Tests for CLI commands.

These tests verify that all CLI commands are properly registered and callable.
"""

import json

import pytest

from brokerage_import.runner.main import create_cli, main


@pytest.fixture
def config_file(tmp_path):
    """Config file with the state database inside tmp_path."""
    path = tmp_path / "config.yaml"
    path.write_text(f'state_db_path: "{tmp_path / "state.db"}"\n')
    return path


@pytest.fixture
def emails_file(tmp_path, sample_email_dict):
    path = tmp_path / "emails.json"
    path.write_text(json.dumps([sample_email_dict, sample_email_dict]))
    return path


class TestCLICommandRegistry:
    """Tests for CLI command registration."""

    def test_all_commands_registered(self):
        """Verify all expected commands are registered."""
        parser = create_cli()

        subparsers_action = None
        for action in parser._actions:
            if action.dest == "command":
                subparsers_action = action
                break

        assert subparsers_action is not None

        commands = list(subparsers_action.choices.keys())
        assert "init-config" in commands
        assert "detect" in commands
        assert "ingest" in commands
        assert "status" in commands

    def test_detect_options(self):
        parser = create_cli()

        args = parser.parse_args(["detect", "emails.json", "--scope", "acct-1", "--json"])

        assert args.command == "detect"
        assert args.scope == "acct-1"
        assert args.json is True

    def test_default_scope(self):
        args = create_cli().parse_args(["ingest", "emails.json"])

        assert args.scope == "default"
        assert args.output is None

    def test_no_command(self):
        assert main([]) == 1


class TestInitConfig:
    """Tests for the init-config command."""

    def test_writes_config(self, tmp_path):
        path = tmp_path / "config.yaml"

        assert main(["-c", str(path), "init-config"]) == 0
        assert "reject_threshold: 0.90" in path.read_text()

    def test_refuses_to_overwrite(self, config_file, capsys):
        original = config_file.read_text()

        assert main(["-c", str(config_file), "init-config"]) == 1
        assert config_file.read_text() == original
        assert "already exists" in capsys.readouterr().out

    def test_force_overwrites(self, config_file):
        assert main(["-c", str(config_file), "init-config", "--force"]) == 0
        assert "review_queue:" in config_file.read_text()


class TestCommands:
    """Tests for status, detect and ingest."""

    def test_invalid_config(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"
        path.write_text("detection:\n  reject_threshold: 0.5\n  review_threshold: 0.7\n")

        assert main(["-c", str(path), "status"]) == 1
        assert "Failed to load config" in capsys.readouterr().out

    def test_status(self, config_file, capsys):
        assert main(["-c", str(config_file), "status"]) == 0

        out = capsys.readouterr().out
        assert "Identifications stored: 0" in out
        assert "Reject at:" in out
        assert "90%" in out

    def test_ingest_then_status(self, config_file, emails_file, tmp_path, capsys):
        """Two copies of the same email: one accepted, one rejected."""
        output = tmp_path / "out" / "result.json"

        code = main(
            ["-c", str(config_file), "ingest", str(emails_file), "--output", str(output)]
        )

        assert code == 0
        payload = json.loads(output.read_text())
        assert payload["batch"]["processed"] == 2
        assert payload["batch"]["accepted"] >= 1
        assert payload["batch"]["accepted"] + payload["batch"]["rejected"] == 2
        assert payload["queue"]["stats"]["max_queue_size"] == 1000

        capsys.readouterr()
        main(["-c", str(config_file), "status"])
        assert "Transactions recorded:" in capsys.readouterr().out

    def test_detect_json(self, config_file, tmp_path, sample_email_dict, capsys):
        path = tmp_path / "email.json"
        path.write_text(json.dumps(sample_email_dict))

        assert main(["-c", str(config_file), "detect", str(path), "--json"]) == 0

        results = json.loads(capsys.readouterr().out)
        assert len(results) == 1
        assert results[0]["recommendation"] == "accept"

    def test_detect_unreadable_input(self, config_file, tmp_path, capsys):
        missing = tmp_path / "missing.json"

        assert main(["-c", str(config_file), "detect", str(missing)]) == 1
        assert "Failed to read" in capsys.readouterr().out
