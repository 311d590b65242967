"""Tests for the uptime-core command line."""

import json
import textwrap

import pytest

from uptime_core import cli


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "uptime.yaml"
    path.write_text(textwrap.dedent("""
        monitor:
          base_url: http://127.0.0.1:1
          backoff_base_seconds: 0
        checks:
          - id: api-health
            name: API Health Endpoint
            url: /api/health
            timeout: 1
            retries: 0
            critical: true
    """))
    return path


class TestCommands:

    def test_version(self, capsys):
        assert cli.main(["--version"]) == 0
        assert "Uptime Core v" in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 0
        assert "uptime-core" in capsys.readouterr().out

    def test_validate_ok(self, config_file):
        assert cli.main(["validate", str(config_file)]) == 0

    def test_validate_rejects_bad_config(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("checks:\n  - {id: a, url: /a, interval: -1}\n")
        assert cli.main(["validate", str(path)]) == 2

    def test_validate_missing_file(self, tmp_path):
        assert cli.main(["validate", str(tmp_path / "absent.yaml")]) == 2

    def test_check_reports_unreachable_target(self, config_file, capsys):
        assert cli.main(["check", "--config", str(config_file), "--json"]) == 1

        results = json.loads(capsys.readouterr().out)
        assert results[0]["check_id"] == "api-health"
        assert results[0]["success"] is False
        assert results[0]["details"]["error_category"] == "network"

    def test_parser_options(self):
        args = cli.build_parser().parse_args(["run", "--serve", "--port", "9000", "--duration", "5"])
        assert args.serve is True
        assert args.port == 9000
        assert args.duration == 5.0
