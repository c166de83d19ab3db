# -*- coding: utf-8 -*-
"""
Carbon Calculation Configuration - EcoTrace Carbon Calculation Pipeline

Centralized configuration for the carbon calculation SDK covering:
- Conservative bias and result validity windows
- Source reconciliation thresholds and reliability bands
- Source fan-out timeouts and circuit breaker tuning
- SCI scoring options and hardware lifespan
- Audit ledger retention, capacity and cache TTL
- Live grid-intensity API endpoint and credentials

All settings can be overridden via environment variables with the
``ECOTRACE_CARBON_`` prefix (e.g. ``ECOTRACE_CARBON_CONSERVATIVE_BIAS``).

Example:
    >>> from ecotrace.carbon_calculation.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.conservative_bias, cfg.match_threshold)

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment variable prefix
# ---------------------------------------------------------------------------

_ENV_PREFIX = "ECOTRACE_CARBON_"


# ---------------------------------------------------------------------------
# CarbonCalculationConfig
# ---------------------------------------------------------------------------


@dataclass
class CarbonCalculationConfig:
    """Complete configuration for the EcoTrace carbon calculation SDK.

    Attributes are grouped by concern: calculation, reconciliation,
    source fan-out, circuit breaking, SCI, ledger and live grid API.

    Attributes:
        conservative_bias: Multiplier applied to every final carbon figure.
        result_validity_hours: Longest validity of a result built from live sources.
        fallback_validity_hours: Validity of a result built from the static table.
        performance_target_ms: Calculations slower than this are logged.
        default_zone: Zone used when a location cannot be resolved.
        match_threshold: Relative deviation below which two sources match.
        close_threshold: Relative deviation below which two sources are close.
        divergent_threshold: Relative deviation below which two sources are
            divergent; at or above it the pair has failed.
        very_high_reliability: Average reliability band for the top grades.
        high_reliability: Average reliability band for the middle grades.
        stale_reliability_penalty: Reliability multiplier for stale sources.
        source_timeout_seconds: Per-adapter timeout.
        calculation_deadline_seconds: Overall deadline for the source fan-out.
        breaker_failure_threshold: Consecutive failures that trip a breaker.
        breaker_cooldown_seconds: Initial open-state cooldown.
        breaker_backoff_multiplier: Cooldown growth after a failed trial call.
        breaker_max_cooldown_seconds: Upper bound for the cooldown.
        sci_include_embodied: Whether SCI includes embodied emissions.
        sci_use_marginal: Whether SCI uses marginal emission factors.
        sci_temporal_resolution: ``hourly`` (real time) or ``daily``/``annual``.
        hardware_lifespan_years: Amortization period for embodied carbon.
        min_cross_validation_agreement: Agreement ratio below which the
            confidence grade is lowered one step.
        retention_days: Audit record retention window.
        max_audit_records: Hard cap on retained audit records.
        store_ttl_seconds: TTL of keyed entries in the audit store.
        store_max_entries: Capacity of the in-memory audit store.
        cleanup_interval_seconds: Period of the retention sweep.
        methodology_name: Name recorded in every methodology snapshot.
        live_grid_base_url: Base URL of the live grid-intensity API.
        live_grid_api_key: API token for the live grid-intensity API.
    """

    # -- Calculation ---------------------------------------------------------
    conservative_bias: float = 1.15
    result_validity_hours: int = 24
    fallback_validity_hours: int = 1
    performance_target_ms: float = 100.0
    default_zone: str = "WORLD"

    # -- Reconciliation ------------------------------------------------------
    match_threshold: float = 0.05
    close_threshold: float = 0.15
    divergent_threshold: float = 0.40
    very_high_reliability: float = 0.9
    high_reliability: float = 0.7
    stale_reliability_penalty: float = 0.5

    # -- Source fan-out ------------------------------------------------------
    source_timeout_seconds: float = 5.0
    calculation_deadline_seconds: float = 10.0

    # -- Circuit breaker -----------------------------------------------------
    breaker_failure_threshold: int = 5
    breaker_cooldown_seconds: float = 60.0
    breaker_backoff_multiplier: float = 2.0
    breaker_max_cooldown_seconds: float = 900.0

    # -- SCI -----------------------------------------------------------------
    sci_include_embodied: bool = True
    sci_use_marginal: bool = True
    sci_temporal_resolution: str = "hourly"
    hardware_lifespan_years: int = 4

    # -- Cross-validation ----------------------------------------------------
    min_cross_validation_agreement: float = 0.5

    # -- Ledger --------------------------------------------------------------
    retention_days: int = 365
    max_audit_records: int = 100000
    store_ttl_seconds: int = 7 * 24 * 3600
    store_max_entries: int = 200000
    cleanup_interval_seconds: int = 24 * 3600
    methodology_name: str = "EcoTrace Scientific Carbon Calculation"

    # -- Live grid API -------------------------------------------------------
    live_grid_base_url: str = "https://api.electricitymap.org/v3"
    live_grid_api_key: str = ""

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> CarbonCalculationConfig:
        """Build a CarbonCalculationConfig from environment variables.

        Every field can be overridden via ``ECOTRACE_CARBON_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes`` (case-insensitive).
        Integer values are parsed via ``int()``.
        Float values are parsed via ``float()``.

        Returns:
            Populated CarbonCalculationConfig instance.
        """
        prefix = _ENV_PREFIX

        def _env(name: str, default: Any = None) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}", default)

        def _bool(name: str, default: bool) -> bool:
            val = _env(name)
            if val is None:
                return default
            return val.lower() in ("true", "1", "yes")

        def _int(name: str, default: int) -> int:
            val = _env(name)
            if val is None:
                return default
            try:
                return int(val)
            except ValueError:
                logger.warning(
                    "Invalid integer for %s%s=%s, using default %d",
                    prefix, name, val, default,
                )
                return default

        def _float(name: str, default: float) -> float:
            val = _env(name)
            if val is None:
                return default
            try:
                return float(val)
            except ValueError:
                logger.warning(
                    "Invalid float for %s%s=%s, using default %.2f",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None:
                return default
            return val

        config = cls(
            conservative_bias=_float("CONSERVATIVE_BIAS", cls.conservative_bias),
            result_validity_hours=_int(
                "RESULT_VALIDITY_HOURS", cls.result_validity_hours,
            ),
            fallback_validity_hours=_int(
                "FALLBACK_VALIDITY_HOURS", cls.fallback_validity_hours,
            ),
            performance_target_ms=_float(
                "PERFORMANCE_TARGET_MS", cls.performance_target_ms,
            ),
            default_zone=_str("DEFAULT_ZONE", cls.default_zone),
            match_threshold=_float("MATCH_THRESHOLD", cls.match_threshold),
            close_threshold=_float("CLOSE_THRESHOLD", cls.close_threshold),
            divergent_threshold=_float(
                "DIVERGENT_THRESHOLD", cls.divergent_threshold,
            ),
            very_high_reliability=_float(
                "VERY_HIGH_RELIABILITY", cls.very_high_reliability,
            ),
            high_reliability=_float("HIGH_RELIABILITY", cls.high_reliability),
            stale_reliability_penalty=_float(
                "STALE_RELIABILITY_PENALTY", cls.stale_reliability_penalty,
            ),
            source_timeout_seconds=_float(
                "SOURCE_TIMEOUT_SECONDS", cls.source_timeout_seconds,
            ),
            calculation_deadline_seconds=_float(
                "CALCULATION_DEADLINE_SECONDS", cls.calculation_deadline_seconds,
            ),
            breaker_failure_threshold=_int(
                "BREAKER_FAILURE_THRESHOLD", cls.breaker_failure_threshold,
            ),
            breaker_cooldown_seconds=_float(
                "BREAKER_COOLDOWN_SECONDS", cls.breaker_cooldown_seconds,
            ),
            breaker_backoff_multiplier=_float(
                "BREAKER_BACKOFF_MULTIPLIER", cls.breaker_backoff_multiplier,
            ),
            breaker_max_cooldown_seconds=_float(
                "BREAKER_MAX_COOLDOWN_SECONDS", cls.breaker_max_cooldown_seconds,
            ),
            sci_include_embodied=_bool(
                "SCI_INCLUDE_EMBODIED", cls.sci_include_embodied,
            ),
            sci_use_marginal=_bool("SCI_USE_MARGINAL", cls.sci_use_marginal),
            sci_temporal_resolution=_str(
                "SCI_TEMPORAL_RESOLUTION", cls.sci_temporal_resolution,
            ),
            hardware_lifespan_years=_int(
                "HARDWARE_LIFESPAN_YEARS", cls.hardware_lifespan_years,
            ),
            min_cross_validation_agreement=_float(
                "MIN_CROSS_VALIDATION_AGREEMENT",
                cls.min_cross_validation_agreement,
            ),
            retention_days=_int("RETENTION_DAYS", cls.retention_days),
            max_audit_records=_int("MAX_AUDIT_RECORDS", cls.max_audit_records),
            store_ttl_seconds=_int("STORE_TTL_SECONDS", cls.store_ttl_seconds),
            store_max_entries=_int("STORE_MAX_ENTRIES", cls.store_max_entries),
            cleanup_interval_seconds=_int(
                "CLEANUP_INTERVAL_SECONDS", cls.cleanup_interval_seconds,
            ),
            methodology_name=_str("METHODOLOGY_NAME", cls.methodology_name),
            live_grid_base_url=_str("LIVE_GRID_BASE_URL", cls.live_grid_base_url),
            live_grid_api_key=_str("LIVE_GRID_API_KEY", cls.live_grid_api_key),
        )

        logger.info(
            "CarbonCalculationConfig loaded: bias=%.2f, thresholds=%.2f/%.2f/%.2f, "
            "breaker=%d/%.0fs, retention=%dd, max_records=%d, live_grid=%s",
            config.conservative_bias,
            config.match_threshold,
            config.close_threshold,
            config.divergent_threshold,
            config.breaker_failure_threshold,
            config.breaker_cooldown_seconds,
            config.retention_days,
            config.max_audit_records,
            "enabled" if config.live_grid_api_key else "disabled",
        )
        return config


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[CarbonCalculationConfig] = None
_config_lock = threading.Lock()


def get_config() -> CarbonCalculationConfig:
    """Return the singleton CarbonCalculationConfig, creating from env if needed.

    Returns:
        CarbonCalculationConfig singleton instance.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = CarbonCalculationConfig.from_env()
    return _config_instance


def set_config(config: CarbonCalculationConfig) -> None:
    """Replace the singleton CarbonCalculationConfig (useful for testing).

    Args:
        config: New configuration to install.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info("CarbonCalculationConfig replaced programmatically")


def reset_config() -> None:
    """Reset the singleton (primarily for test teardown)."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "CarbonCalculationConfig",
    "get_config",
    "set_config",
    "reset_config",
]
