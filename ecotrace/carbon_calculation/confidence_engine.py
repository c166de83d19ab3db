# -*- coding: utf-8 -*-
"""
Data Validation & Confidence Engine - EcoTrace Carbon Calculation Pipeline

Reconciles emission factors from 1..N sources into one fused intensity
with a confidence grade:

1. Normalize each factor to gCO2e/kWh and drop unusable values.
2. Check freshness against the source's publication cadence; stale
   sources keep contributing with a reduced effective reliability.
3. Classify every pair of values by relative deviation
   (match < close < divergent < failed, thresholds from configuration).
4. Fuse with a reliability-weighted average.
5. Grade from source count, worst pair and average reliability::

       worst pair   avg >= 0.9   avg >= 0.7   below
       match        very_high    high         medium
       close        high         medium       medium
       divergent    medium       low          low
       failed       low          low          low

   A single source grades medium at best (>= 0.9) and low otherwise.

With no usable source the engine falls back to the static regional
average table (walking ``US-CA`` -> ``US`` -> default zone) and forces
the grade to low. Only an empty table raises ``CalculationUnavailable``.

Example:
    >>> engine = ConfidenceEngine()
    >>> engine.classify(ConfidenceEngine.relative_deviation(120, 122))
    <PairClassification.MATCH: 'match'>

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Tuple

from ecotrace.carbon_calculation.config import CarbonCalculationConfig, get_config
from ecotrace.carbon_calculation.metrics import record_fallback, record_pair_classification
from ecotrace.carbon_calculation.models import (
    FRESHNESS_MAX_AGE_HOURS,
    ConfidenceAssessment,
    ConfidenceLevel,
    CrossReference,
    EmissionFactor,
    FactorReading,
    PairClassification,
    ReconciliationResult,
)
from ecotrace.exceptions import CalculationUnavailable

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Static regional averages, gCO2e/kWh
# ---------------------------------------------------------------------------

REGIONAL_AVERAGE_INTENSITY: Dict[str, float] = {
    "US": 415.755,
    "CA": 130.45,
    "GB": 233.67,
    "FR": 77.23,
    "DE": 338.45,
    "JP": 491.23,
    "AU": 765.33,
    "CN": 555.12,
    "IN": 708.45,
    "BR": 82.44,
    "IE": 296.00,
    "NL": 328.00,
    "BE": 160.00,
    "SE": 41.00,
    "NO": 29.00,
    "FI": 131.00,
    "ES": 170.00,
    "IT": 330.00,
    "KR": 436.00,
    "SG": 408.00,
    "ZA": 709.00,
    "MX": 423.00,
    "WORLD": 475.00,
}

# Multipliers converting supported units to gCO2e/kWh
_UNIT_TO_G_PER_KWH: Dict[str, float] = {
    "gco2e/kwh": 1.0,
    "gco2/kwh": 1.0,
    "kgco2e/mwh": 1.0,
    "kg_co2_per_mwh": 1.0,
    "kgco2e/kwh": 1000.0,
    "lbco2e/mwh": 0.453592,
    "lb_co2_per_mwh": 0.453592,
}

_SINGLE_SOURCE_SCORE = 0.8
_FALLBACK_SCORE = 0.3
_AGREEMENT_SCORE = {
    PairClassification.MATCH: 1.0,
    PairClassification.CLOSE: 0.9,
    PairClassification.DIVERGENT: 0.7,
    PairClassification.FAILED: 0.4,
}

# Rows: worst pair; columns: reliability band (>= very_high, >= high, below)
_GRADE_TABLE: Dict[PairClassification, Tuple[ConfidenceLevel, ConfidenceLevel, ConfidenceLevel]] = {
    PairClassification.MATCH: (
        ConfidenceLevel.VERY_HIGH, ConfidenceLevel.HIGH, ConfidenceLevel.MEDIUM,
    ),
    PairClassification.CLOSE: (
        ConfidenceLevel.HIGH, ConfidenceLevel.MEDIUM, ConfidenceLevel.MEDIUM,
    ),
    PairClassification.DIVERGENT: (
        ConfidenceLevel.MEDIUM, ConfidenceLevel.LOW, ConfidenceLevel.LOW,
    ),
    PairClassification.FAILED: (
        ConfidenceLevel.LOW, ConfidenceLevel.LOW, ConfidenceLevel.LOW,
    ),
}


def to_g_per_kwh(value: float, unit: str) -> Optional[float]:
    """Convert an intensity to gCO2e/kWh, or None for unknown units."""
    multiplier = _UNIT_TO_G_PER_KWH.get(unit.strip().lower().replace(" ", ""))
    if multiplier is None:
        return None
    return value * multiplier


class ConfidenceEngine:
    """Reconciles disagreeing sources into a fused value and grade.

    Stateless apart from configuration; every call recomputes its
    assessment from the readings it is given.

    Attributes:
        config: Thresholds and reliability bands.
        regional_averages: Static fallback table, gCO2e/kWh by zone.
    """

    def __init__(
        self,
        config: Optional[CarbonCalculationConfig] = None,
        regional_averages: Optional[Dict[str, float]] = None,
    ) -> None:
        self.config = config or get_config()
        self.regional_averages = dict(
            REGIONAL_AVERAGE_INTENSITY if regional_averages is None else regional_averages
        )

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    @staticmethod
    def relative_deviation(a: float, b: float) -> float:
        """Relative deviation of two values against the smaller magnitude.

        ``120`` vs ``122`` is ~0.017; ``120`` vs ``200`` is ~0.667.
        """
        if a == b:
            return 0.0
        base = min(abs(a), abs(b))
        if base == 0:
            return float("inf")
        return abs(a - b) / base

    def classify(self, deviation: float) -> PairClassification:
        """Classify a relative deviation using the configured thresholds."""
        if deviation < self.config.match_threshold:
            return PairClassification.MATCH
        if deviation < self.config.close_threshold:
            return PairClassification.CLOSE
        if deviation < self.config.divergent_threshold:
            return PairClassification.DIVERGENT
        return PairClassification.FAILED

    def grade(
        self,
        source_count: int,
        worst: Optional[PairClassification],
        average_reliability: float,
    ) -> ConfidenceLevel:
        """Look up the confidence grade (see module docstring table)."""
        if source_count <= 0:
            return ConfidenceLevel.LOW
        if source_count == 1 or worst is None:
            if average_reliability >= self.config.very_high_reliability:
                return ConfidenceLevel.MEDIUM
            return ConfidenceLevel.LOW
        if average_reliability >= self.config.very_high_reliability:
            column = 0
        elif average_reliability >= self.config.high_reliability:
            column = 1
        else:
            column = 2
        return _GRADE_TABLE[worst][column]

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(
        self,
        readings: Sequence[FactorReading],
        zone: str,
        as_of: Optional[datetime] = None,
    ) -> ReconciliationResult:
        """Fuse the readings for ``zone`` into one intensity.

        Args:
            readings: Factors with their source descriptors.
            zone: Zone the readings were fetched for (used for fallback).
            as_of: Time the factors must apply to; defaults to now.

        Returns:
            ReconciliationResult with fused value, grade and assessment.

        Raises:
            CalculationUnavailable: No usable reading and no static
                fallback for the zone, its parents or the default zone.
        """
        as_of = as_of or datetime.now(timezone.utc)
        errors: List[str] = []
        warnings: List[str] = []

        usable: List[Tuple[str, float, float, EmissionFactor]] = []
        for reading in readings:
            factor, descriptor = reading.factor, reading.descriptor
            value = to_g_per_kwh(factor.value, factor.unit)
            if value is None:
                errors.append(f"UNSUPPORTED_UNIT: {descriptor.name} reported '{factor.unit}'")
                continue
            if value <= 0:
                errors.append(f"INVALID_FACTOR: {descriptor.name} reported {value:.3f}")
                continue

            reliability = descriptor.reliability
            stale_reason = self._stale_reason(reading, as_of)
            if stale_reason:
                reliability *= self.config.stale_reliability_penalty
                warnings.append(f"STALE_DATA_SOURCE: {descriptor.name} {stale_reason}")
                logger.warning("Stale source %s for %s: %s", descriptor.name, zone, stale_reason)
            usable.append((descriptor.name, value, reliability, factor))

        if not usable:
            return self.fallback(zone, errors=errors, warnings=warnings)

        cross_refs: List[CrossReference] = []
        worst: Optional[PairClassification] = None
        max_deviation = 0.0
        for (name_a, value_a, _, _), (name_b, value_b, _, _) in combinations(usable, 2):
            deviation = self.relative_deviation(value_a, value_b)
            status = self.classify(deviation)
            record_pair_classification(status.value)
            max_deviation = max(max_deviation, deviation)
            if worst is None or status.severity > worst.severity:
                worst = status
            cross_refs.append(
                CrossReference(
                    source=f"{name_a}~{name_b}",
                    expected_value=value_a,
                    actual_value=value_b,
                    variance_pct=round(deviation * 100, 4),
                    status=status,
                )
            )
            if status in (PairClassification.DIVERGENT, PairClassification.FAILED):
                warnings.append(
                    f"{status.value.upper()}_SOURCES: {name_a}={value_a:.2f} vs "
                    f"{name_b}={value_b:.2f} deviate {deviation * 100:.1f}%"
                )

        weights = [max(reliability, 0.01) for _, _, reliability, _ in usable]
        fused = sum(value * w for (_, value, _, _), w in zip(usable, weights)) / sum(weights)
        average_reliability = sum(r for _, _, r, _ in usable) / len(usable)

        grade = self.grade(len(usable), worst, average_reliability)
        if worst is None:
            score = average_reliability * _SINGLE_SOURCE_SCORE
        else:
            score = average_reliability * _AGREEMENT_SCORE[worst]

        if worst == PairClassification.FAILED:
            logger.warning(
                "Sources for %s disagree by %.1f%%; confidence forced to %s",
                zone, max_deviation * 100, grade.value,
            )

        return ReconciliationResult(
            fused_value=fused,
            grade=grade,
            assessment=ConfidenceAssessment(
                is_valid=worst != PairClassification.FAILED,
                errors=errors,
                warnings=warnings,
                confidence=round(min(1.0, score), 4),
                cross_references=cross_refs,
            ),
            max_deviation=max_deviation,
            worst_classification=worst,
            contributing_sources=[name for name, _, _, _ in usable],
            factors=[factor for _, _, _, factor in usable],
            fallback_used=False,
        )

    def fallback(
        self,
        zone: str,
        errors: Optional[List[str]] = None,
        warnings: Optional[List[str]] = None,
    ) -> ReconciliationResult:
        """Build a low-confidence result from the static regional table."""
        resolved = self.regional_average(zone)
        if resolved is None:
            raise CalculationUnavailable(
                f"No emission factor obtainable for zone {zone}",
                component="ConfidenceEngine",
                context={"zone": zone, "errors": list(errors or [])},
            )
        table_zone, value = resolved
        record_fallback()
        logger.warning(
            "No live source for %s; using static regional average %s=%.2f gCO2e/kWh",
            zone, table_zone, value,
        )
        warnings = list(warnings or [])
        warnings.append(f"FALLBACK_REGIONAL_AVERAGE: {table_zone}")
        return ReconciliationResult(
            fused_value=value,
            grade=ConfidenceLevel.LOW,
            assessment=ConfidenceAssessment(
                is_valid=True,
                errors=list(errors or []),
                warnings=warnings,
                confidence=_FALLBACK_SCORE,
            ),
            max_deviation=0.0,
            worst_classification=None,
            contributing_sources=[f"regional_average:{table_zone}"],
            factors=[],
            fallback_used=True,
        )

    def regional_average(self, zone: str) -> Optional[Tuple[str, float]]:
        """Look up ``zone``, then its parent, then the default zone."""
        candidates = [zone]
        if "-" in zone:
            candidates.append(zone.split("-", 1)[0])
        candidates.append(self.config.default_zone)
        for candidate in candidates:
            if candidate in self.regional_averages:
                return candidate, self.regional_averages[candidate]
        return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _stale_reason(reading: FactorReading, as_of: datetime) -> Optional[str]:
        factor = reading.factor
        if factor.valid_until is not None and as_of > factor.valid_until:
            return f"expired at {factor.valid_until.isoformat()}"
        max_age_hours = FRESHNESS_MAX_AGE_HOURS[reading.descriptor.freshness]
        age_hours = abs((as_of - factor.valid_from).total_seconds()) / 3600
        if age_hours > max_age_hours:
            return (
                f"is {age_hours:.1f}h from the requested time "
                f"(max {max_age_hours:.0f}h for {reading.descriptor.freshness.value})"
            )
        return None


__all__ = [
    "ConfidenceEngine",
    "REGIONAL_AVERAGE_INTENSITY",
    "to_g_per_kwh",
]
