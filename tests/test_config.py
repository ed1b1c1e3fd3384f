"""Tests for environment-driven configuration."""

from response_governance.config import GovernanceConfig, clamp_percentage


class TestClampPercentage:
    def test_bounds(self):
        assert clamp_percentage(50) == 50.0
        assert clamp_percentage(-1) == 0.0
        assert clamp_percentage(101) == 100.0
        assert clamp_percentage("25") == 25.0

    def test_bad_values_use_default(self):
        assert clamp_percentage(None) == 100.0
        assert clamp_percentage("abc", default=0) == 0.0
        assert clamp_percentage(float("nan"), default=7) == 7.0


class TestFromEnv:
    def test_defaults(self, monkeypatch):
        for name in (
            "SCHEMA_ENFORCEMENT",
            "SCHEMA_ENFORCEMENT_PCT",
            "SCHEMA_METRICS_LOG",
            "SCHEMA_REWRITE_TIMEOUT",
            "SCHEMA_REWRITE_MODEL",
        ):
            monkeypatch.delenv(name, raising=False)
        config = GovernanceConfig.from_env()
        assert config.enforcement_enabled is True
        assert config.enforcement_pct == 100
        assert config.metrics_log is True
        assert config.rewrite_timeout == 15.0
        assert config.rewrite_model is None

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("SCHEMA_ENFORCEMENT", "0")
        monkeypatch.setenv("SCHEMA_ENFORCEMENT_PCT", "250")
        monkeypatch.setenv("SCHEMA_METRICS_LOG", "false")
        monkeypatch.setenv("SCHEMA_REWRITE_TIMEOUT", "2.5")
        monkeypatch.setenv("SCHEMA_REWRITE_MODEL", "gpt-4o-mini")
        config = GovernanceConfig.from_env()
        assert config.enforcement_enabled is False
        assert config.enforcement_pct == 100.0
        assert config.metrics_log is False
        assert config.rewrite_timeout == 2.5
        assert config.rewrite_model == "gpt-4o-mini"

    def test_bad_timeout_falls_back(self, monkeypatch):
        monkeypatch.setenv("SCHEMA_REWRITE_TIMEOUT", "soon")
        assert GovernanceConfig.from_env().rewrite_timeout == 15.0
