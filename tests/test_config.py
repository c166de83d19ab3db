"""Tests for CarbonCalculationConfig and its singleton accessors."""

import pytest

from ecotrace.carbon_calculation.config import (
    CarbonCalculationConfig,
    get_config,
    reset_config,
    set_config,
)


class TestDefaults:
    """Tests for default values."""

    def test_calculation_defaults(self):
        config = CarbonCalculationConfig()

        assert config.conservative_bias == pytest.approx(1.15)
        assert config.result_validity_hours == 24
        assert config.fallback_validity_hours == 1
        assert config.default_zone == "WORLD"

    def test_reconciliation_thresholds_are_ordered(self):
        config = CarbonCalculationConfig()
        assert 0 < config.match_threshold < config.close_threshold < config.divergent_threshold

    def test_ledger_defaults(self):
        config = CarbonCalculationConfig()
        assert config.retention_days == 365
        assert config.max_audit_records == 100000


class TestFromEnv:
    """Tests for environment overrides."""

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("ECOTRACE_CARBON_CONSERVATIVE_BIAS", "1.2")
        monkeypatch.setenv("ECOTRACE_CARBON_RETENTION_DAYS", "30")
        monkeypatch.setenv("ECOTRACE_CARBON_SCI_USE_MARGINAL", "no")
        monkeypatch.setenv("ECOTRACE_CARBON_DEFAULT_ZONE", "US")

        config = CarbonCalculationConfig.from_env()

        assert config.conservative_bias == pytest.approx(1.2)
        assert config.retention_days == 30
        assert config.sci_use_marginal is False
        assert config.default_zone == "US"

    def test_boolean_spellings(self, monkeypatch):
        for value in ("true", "1", "YES"):
            monkeypatch.setenv("ECOTRACE_CARBON_SCI_INCLUDE_EMBODIED", value)
            assert CarbonCalculationConfig.from_env().sci_include_embodied is True

    def test_invalid_numbers_fall_back(self, monkeypatch):
        """Unparseable numbers keep the default."""
        monkeypatch.setenv("ECOTRACE_CARBON_MAX_AUDIT_RECORDS", "lots")
        monkeypatch.setenv("ECOTRACE_CARBON_MATCH_THRESHOLD", "tight")

        config = CarbonCalculationConfig.from_env()

        assert config.max_audit_records == 100000
        assert config.match_threshold == pytest.approx(0.05)


class TestSingleton:
    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_set_and_reset(self):
        custom = CarbonCalculationConfig(conservative_bias=1.3)
        set_config(custom)
        assert get_config() is custom

        reset_config()
        assert get_config() is not custom
