"""Tests for YAML configuration loading and environment overrides."""

import textwrap
from typing import List, Optional

import pytest

from uptime_core.config import MonitorConfig, default_checks, load_config
from uptime_core.config.base_config import _coerce_type, _interpolate_env_vars
from uptime_core.core.error_handling import CheckValidationError, ConfigurationError


@pytest.fixture
def write_config(tmp_path):
    def write(body: str):
        path = tmp_path / "uptime.yaml"
        path.write_text(textwrap.dedent(body))
        return path
    return write


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("UPTIME_INCIDENT_THRESHOLD", "UPTIME_BASE_URL", "UPTIME_LOCATIONS", "SITE_URL"):
        monkeypatch.delenv(name, raising=False)


class TestInterpolation:
    """${VAR} expansion inside config values."""

    def test_default_used_when_unset(self):
        assert _interpolate_env_vars("${SITE_URL:-http://localhost:4321}") == "http://localhost:4321"

    def test_environment_value_wins(self, monkeypatch):
        monkeypatch.setenv("SITE_URL", "https://example.com")
        assert _interpolate_env_vars({"url": "${SITE_URL:-x}/api"}) == {"url": "https://example.com/api"}

    def test_required_variable_missing(self):
        with pytest.raises(ConfigurationError, match="SITE_URL"):
            _interpolate_env_vars("${SITE_URL}")

    def test_custom_error_message(self):
        with pytest.raises(ConfigurationError, match="set the site"):
            _interpolate_env_vars(["${SITE_URL:?set the site}"])


class TestCoercion:

    def test_bool_strings(self):
        assert _coerce_type("false", bool) is False
        assert _coerce_type("Yes", bool) is True

    def test_numbers(self):
        assert _coerce_type("3", int) == 3
        assert _coerce_type("2.5", float) == 2.5

    def test_list_from_comma_separated(self):
        assert _coerce_type("local, eu-west", List[str]) == ["local", "eu-west"]

    def test_optional(self):
        assert _coerce_type("7", Optional[int]) == 7
        assert _coerce_type(None, Optional[int]) is None

    def test_bad_number(self):
        with pytest.raises(ConfigurationError):
            _coerce_type("lots", int)


class TestMonitorConfig:

    def test_defaults(self):
        config = MonitorConfig()
        config.validate()
        assert config.base_url == "http://localhost:4321"
        assert config.incident_threshold == 3
        assert config.recovery_threshold == 2
        assert config.result_capacity == 1000
        assert config.metrics_window_seconds == 86400
        assert config.locations == ["local"]

    def test_from_dict_coerces_and_ignores_unknown_keys(self):
        config = MonitorConfig.from_dict({"incident_threshold": "5", "enabled": "off", "colour": "red"})
        assert config.incident_threshold == 5
        assert config.enabled is False

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("UPTIME_INCIDENT_THRESHOLD", "4")
        monkeypatch.setenv("UPTIME_LOCATIONS", "local,eu-west")
        config = MonitorConfig.from_env()
        assert config.incident_threshold == 4
        assert config.locations == ["local", "eu-west"]

    def test_merge(self):
        config = MonitorConfig().merge({"recovery_threshold": 4})
        assert config.recovery_threshold == 4
        assert config.incident_threshold == 3

    def test_validate_reports_problems(self):
        config = MonitorConfig(incident_threshold=0, degraded_uptime_threshold=120)
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()
        assert "incident_threshold" in str(exc_info.value)
        assert "degraded_uptime_threshold" in str(exc_info.value)


class TestLoadConfig:
    """Full settings files."""

    def test_load_full_file(self, write_config, monkeypatch):
        monkeypatch.setenv("SITE_URL", "https://example.com")
        path = write_config("""
            monitor:
              base_url: ${SITE_URL}
              default_interval: 120
              recovery_threshold: 3
            checks:
              - id: api-health
                name: API Health Endpoint
                url: /api/health
                interval: 30
                timeout: 5
                retries: 1
                critical: true
                tags: [api, health]
              - id: blog-api
                url: /api/blog
                expected_status: 200
            maintenance:
              - name: Database upgrade
                start_time: 1767225600
                end_time: 1767226200
                affected_services: [database-health]
        """)

        settings = load_config(path)

        assert settings.monitor.base_url == "https://example.com"
        assert settings.monitor.recovery_threshold == 3
        api, blog = settings.checks
        assert api.critical is True
        assert api.interval == 30.0
        assert api.tags == ["api", "health"]
        assert blog.interval == 120.0
        assert blog.retries == 3
        assert blog.expected_status == [200]
        assert settings.maintenance[0].affected_services == ["database-health"]

    def test_environment_overrides_file(self, write_config, monkeypatch):
        monkeypatch.setenv("UPTIME_INCIDENT_THRESHOLD", "6")
        path = write_config("""
            monitor:
              incident_threshold: 2
        """)
        assert load_config(path).monitor.incident_threshold == 6

    def test_no_path_gives_defaults(self):
        settings = load_config()
        assert settings.checks == []
        assert settings.monitor.enabled is True

    def test_default_checks_when_requested(self, write_config):
        path = write_config("""
            monitor:
              register_default_checks: true
        """)
        ids = [c.id for c in load_config(path).checks]
        assert ids == ["main-site", "api-health", "database-health", "portfolio-api", "blog-api"]

    def test_quoted_and_interpolated_false_flags(self, write_config, monkeypatch):
        monkeypatch.delenv("MAIN_ENABLED", raising=False)
        path = write_config("""
            checks:
              - id: main-site
                url: /
                enabled: ${MAIN_ENABLED:-false}
                critical: 'false'
              - id: database-health
                url: /api/db/health
                metadata: {critical: "no"}
              - id: api-health
                url: /api/health
                critical: "yes"
            maintenance:
              - name: Database upgrade
                start_time: 1767225600
                end_time: 1767226200
                notifications: "off"
        """)

        settings = load_config(path)

        main, database, api = settings.checks
        assert main.enabled is False
        assert main.critical is False
        assert database.critical is False
        assert api.critical is True
        assert settings.maintenance[0].notifications is False

    def test_duplicate_check_ids(self, write_config):
        path = write_config("""
            checks:
              - {id: a, url: /a}
              - {id: a, url: /b}
        """)
        with pytest.raises(ConfigurationError, match="Duplicate"):
            load_config(path)

    def test_invalid_check(self, write_config):
        path = write_config("""
            checks:
              - {id: a, url: /a, method: PATCH}
        """)
        with pytest.raises(CheckValidationError):
            load_config(path)

    def test_invalid_maintenance(self, write_config):
        path = write_config("""
            maintenance:
              - {name: oops}
        """)
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_non_mapping_file(self, write_config):
        with pytest.raises(ConfigurationError):
            load_config(write_config("- just\n- a list\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")


class TestDefaultChecks:

    def test_stock_checks(self):
        checks = {c.id: c for c in default_checks()}
        assert len(checks) == 5
        assert checks["api-health"].critical is True
        assert checks["api-health"].interval == 30.0
        assert checks["portfolio-api"].critical is False
        assert checks["portfolio-api"].interval == 300.0
        for check in checks.values():
            check.validate()
