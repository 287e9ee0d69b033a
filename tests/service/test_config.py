"""
Tests for service configuration.

============================================================
TEST PRINCIPLES
============================================================
- Environment changes go through monkeypatch
- Invalid values fail at load time with ConfigurationError

============================================================
"""

import pytest

from core.exceptions import ConfigurationError
from service.config import ServiceConfig


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clean_env(monkeypatch):
    """Ensure variables written by .env loading are removed afterwards."""
    for name in ("DAASR_BASE_RATE_LIMIT", "DAASR_STATS_INTERVAL", "WEBHOOK_URL"):
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)
    return monkeypatch


# ============================================================
# TESTS
# ============================================================

class TestServiceConfigFromEnv:
    """Tests for environment loading."""

    def test_defaults(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("")

        config = ServiceConfig.from_env(env_file=str(env_file))

        assert config.stats_interval_seconds == 60.0
        assert config.alert_interval_seconds == 30.0
        assert config.limiter.base_limit == 100

    def test_env_file_values(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "DAASR_BASE_RATE_LIMIT=250\n"
            "DAASR_STATS_INTERVAL=30000\n"
            "WEBHOOK_URL=https://hooks.example.com/daasr\n"
        )

        config = ServiceConfig.from_env(env_file=str(env_file))

        assert config.limiter.base_limit == 250
        assert config.stats_interval_seconds == 30.0
        assert config.notifications.webhook_enabled

    def test_missing_env_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ServiceConfig.from_env(env_file=str(tmp_path / "absent.env"))

    def test_bad_number(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("")
        clean_env.setenv("DAASR_STATS_INTERVAL", "often")

        with pytest.raises(ConfigurationError):
            ServiceConfig.from_env(env_file=str(env_file))


class TestServiceConfigFromYaml:
    """Tests for YAML overlays."""

    def test_sections_are_applied(self, tmp_path):
        path = tmp_path / "daasr.yaml"
        path.write_text(
            "limiter:\n"
            "  base_limit: 50\n"
            "traffic:\n"
            "  thresholds:\n"
            "    high_traffic_rps: 200\n"
            "alerting:\n"
            "  check_interval_seconds: 10\n"
            "service:\n"
            "  metrics_interval_seconds: 1\n"
            "rules:\n"
            "  - id: busy\n"
            "    metric: application.requests_per_second\n"
            "    condition: '>'\n"
            "    threshold: 100\n"
        )

        config = ServiceConfig.from_yaml(path)

        assert config.limiter.base_limit == 50
        assert config.traffic.thresholds.high_traffic_rps == 200
        assert config.traffic.thresholds.medium_traffic_rps == 50
        assert config.alert_interval_seconds == 10
        assert config.metrics_interval_seconds == 1
        assert config.rules_file == str(path)

    def test_base_is_kept(self, tmp_path):
        path = tmp_path / "daasr.yaml"
        path.write_text("service:\n  stats_interval_seconds: 15\n")
        base = ServiceConfig(broadcast_interval_seconds=9)

        config = ServiceConfig.from_yaml(path, base=base)

        assert config.stats_interval_seconds == 15
        assert config.broadcast_interval_seconds == 9
        assert config.rules_file is None

    @pytest.mark.parametrize("content", [
        "service:\n  warp_speed: 9\n",
        "limiter:\n  base_limit: 0\n",
        "traffic:\n  thresholds:\n    bogus: 1\n",
        "alerting:\n  max_alerts: 0\n",
        "- just\n- a list\n",
    ])
    def test_invalid_files(self, tmp_path, content):
        path = tmp_path / "daasr.yaml"
        path.write_text(content)

        with pytest.raises(ConfigurationError):
            ServiceConfig.from_yaml(path)

    @pytest.mark.parametrize("key", ["stats_interval_seconds", "metrics_interval_seconds"])
    def test_invalid_interval(self, key):
        with pytest.raises(ConfigurationError):
            ServiceConfig(**{key: 0})
