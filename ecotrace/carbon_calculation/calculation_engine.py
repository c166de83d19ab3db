# -*- coding: utf-8 -*-
"""
Calculation Engine - EcoTrace Carbon Calculation Pipeline

Orchestrates one carbon calculation:

    1. Validate the activity (``InvalidActivity`` before any I/O).
    2. Resolve the grid zone (cloud region table, then location).
    3. Fan out to the source adapters and reconcile their factors.
    4. Estimate energy with the per-type model and convert to kgCO2e.
    5. Apply the conservative bias and derive the uncertainty band,
       widened by the confidence in the energy model itself.
    6. Assemble a ``CalculationResult`` with methodology, warnings,
       source audit entry and a deterministic provenance hash.

Per-type energy models (kWh):

    cloud_compute  (vCPU-h x 2.12 W + GB-h x 0.38 W) / 1000 x PUE
    data_transfer  GB x network factor (internet 0.015, cdn 0.01, internal 0.0025)
    storage        GB x hours x medium factor (ssd 1.2e-6, hdd 0.65e-6, ...)
    electricity    metered kWh; intensity scaled by time of day and supply mix
    commit         0.0002 + lines x 1e-6 + CI hours x 0.1
    deployment     0.01 + hours x 0.2 x instances
    transport      no energy; distance x per-mode kg/km factor

Zero-emission edge cases (zero duration, zero bytes) produce a zero result
with the usual confidence and warnings rather than an error.

Example:
    >>> engine = CalculationEngine(resolver, hub, ConfidenceEngine())
    >>> result = await engine.calculate({
    ...     "activity_type": "electricity",
    ...     "timestamp": "2026-10-01T12:00:00Z",
    ...     "location": {"country": "FR"},
    ...     "metadata": {"kwh_consumed": 12.5},
    ... })
    >>> result.uncertainty_range.lower <= result.carbon_kg <= result.uncertainty_range.upper
    True

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from ecotrace.carbon_calculation.config import CarbonCalculationConfig, get_config
from ecotrace.carbon_calculation.confidence_engine import ConfidenceEngine
from ecotrace.carbon_calculation.geographic_resolver import GeographicResolver
from ecotrace.carbon_calculation.metrics import record_calculation
from ecotrace.carbon_calculation.models import (
    ActivityRecord,
    ActivityType,
    AuditAction,
    AuditEntry,
    CalculationMethodology,
    CalculationResult,
    CloudComputeActivity,
    CommitActivity,
    ConfidenceLevel,
    DataTransferActivity,
    DeploymentActivity,
    ElectricityActivity,
    ReconciliationResult,
    StorageActivity,
    TransportActivity,
    UncertaintyRange,
    parse_activity,
)
from ecotrace.carbon_calculation.provenance import hash_payload
from ecotrace.carbon_calculation.source_adapters import SourceHub

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Energy model constants
# ---------------------------------------------------------------------------

VCPU_WATTS = 2.12
MEMORY_WATTS_PER_GB = 0.38
DEFAULT_MEMORY_GB = 4.0

PUE: Dict[str, float] = {
    "aws": 1.135,
    "gcp": 1.1,
    "azure": 1.185,
    "other": 1.2,
}

# Memory by instance size suffix (m5.large -> large)
INSTANCE_MEMORY_GB: Dict[str, float] = {
    "small": 2.0,
    "medium": 4.0,
    "large": 8.0,
    "xlarge": 16.0,
    "2xlarge": 32.0,
    "4xlarge": 64.0,
}

# kWh per GB
NETWORK_KWH_PER_GB: Dict[str, float] = {
    "internet": 0.015,
    "cdn": 0.01,
    "internal": 0.0025,
}

# kWh per GB-hour
_HDD_KWH_PER_GB_HOUR = 0.65e-6
STORAGE_KWH_PER_GB_HOUR: Dict[str, float] = {
    "ssd": 1.2e-6,
    "hdd": _HDD_KWH_PER_GB_HOUR,
    "object": _HDD_KWH_PER_GB_HOUR * 3,
    "archive": _HDD_KWH_PER_GB_HOUR * 0.5,
}

TIME_OF_DAY_MULTIPLIERS: Dict[str, float] = {
    "peak": 1.2,
    "off_peak": 0.8,
    "shoulder": 1.0,
}

SUPPLY_MIX_MULTIPLIERS: Dict[str, float] = {
    "renewable": 0.05,
    "mixed": 0.7,
    "grid": 1.0,
}

COMMIT_BASE_KWH = 0.0002
COMMIT_KWH_PER_LINE = 1e-6
CI_KWH_PER_HOUR = 0.1
DEPLOYMENT_BASE_KWH = 0.01
DEPLOYMENT_KWH_PER_INSTANCE_HOUR = 0.2

# kgCO2e per km (per vehicle for car, per passenger otherwise)
TRANSPORT_KG_PER_KM: Dict[str, float] = {
    "car": 0.171,
    "bus": 0.097,
    "rail": 0.035,
    "short_haul_flight": 0.151,
    "long_haul_flight": 0.148,
}

# Largest plausible result per activity type (kgCO2e)
MAX_REASONABLE_KG: Dict[ActivityType, float] = {
    ActivityType.CLOUD_COMPUTE: 10.0,
    ActivityType.DATA_TRANSFER: 1.0,
    ActivityType.STORAGE: 0.1,
    ActivityType.ELECTRICITY: 100.0,
    ActivityType.TRANSPORT: 50.0,
    ActivityType.COMMIT: 0.001,
    ActivityType.DEPLOYMENT: 0.1,
}

# Minimum relative uncertainty per grade
GRADE_UNCERTAINTY_FLOOR: Dict[ConfidenceLevel, float] = {
    ConfidenceLevel.VERY_HIGH: 0.05,
    ConfidenceLevel.HIGH: 0.10,
    ConfidenceLevel.MEDIUM: 0.20,
    ConfidenceLevel.LOW: 0.35,
}

# Confidence in the energy model itself; (1 - score) widens the uncertainty band
_METHOD_CONFIDENCE_BY_TYPE: Dict[ActivityType, float] = {
    ActivityType.CLOUD_COMPUTE: 0.90,
    ActivityType.ELECTRICITY: 0.90,
    ActivityType.COMMIT: 0.70,
    ActivityType.DEPLOYMENT: 0.75,
    ActivityType.TRANSPORT: 0.80,
}
_METHOD_CONFIDENCE_BY_NETWORK: Dict[str, float] = {
    "internet": 0.75,
    "cdn": 0.80,
    "internal": 0.85,
}
_METHOD_CONFIDENCE_BY_STORAGE: Dict[str, float] = {
    "ssd": 0.85,
    "hdd": 0.85,
    "object": 0.80,
    "archive": 0.75,
}

STALE_ACTIVITY_DAYS = 30

DEFAULT_ASSUMPTIONS = [
    "Conservative estimation bias applied (+15%)",
    "Temporal variations accounted for",
    "Geographic sensitivity included",
    "Uncertainty quantification provided",
]
DEFAULT_STANDARDS = ["IPCC_AR6", "GHG_Protocol", "SCI_Spec"]


def build_methodology(
    config: Optional[CarbonCalculationConfig] = None,
    version: str = "1.0.0",
) -> CalculationMethodology:
    """Build the default methodology snapshot for ``version``."""
    config = config or get_config()
    bias_pct = round((config.conservative_bias - 1) * 100)
    assumptions = list(DEFAULT_ASSUMPTIONS)
    assumptions[0] = f"Conservative estimation bias applied ({bias_pct:+d}%)"
    return CalculationMethodology(
        name=config.methodology_name,
        version=version,
        conversion_factors={
            "kwh_to_mwh": 0.001,
            "g_to_kg": 0.001,
            "bytes_to_gb": 1e-9,
            "lb_to_kg": 0.453592,
            "conservative_bias": config.conservative_bias,
            "vcpu_watts": VCPU_WATTS,
            "memory_watts_per_gb": MEMORY_WATTS_PER_GB,
        },
        assumptions=assumptions,
        standards=list(DEFAULT_STANDARDS),
    )


# ---------------------------------------------------------------------------
# CalculationEngine
# ---------------------------------------------------------------------------


class CalculationEngine:
    """Turns an activity record into a CalculationResult.

    Collaborators are injected so tests can substitute adapters and run
    several engines with isolated breaker state.

    Attributes:
        resolver: Location and cloud-region to zone lookup.
        hub: Source fan-out with circuit breakers.
        confidence_engine: Reconciliation of the fetched factors.
        methodology: Snapshot used when the caller does not supply one.
    """

    def __init__(
        self,
        resolver: GeographicResolver,
        hub: SourceHub,
        confidence_engine: ConfidenceEngine,
        config: Optional[CarbonCalculationConfig] = None,
        methodology: Optional[CalculationMethodology] = None,
    ) -> None:
        self.config = config or get_config()
        self.resolver = resolver
        self.hub = hub
        self.confidence_engine = confidence_engine
        self.methodology = methodology or build_methodology(self.config)
        logger.info(
            "CalculationEngine initialized: bias=%.2f, sources=%d",
            self.config.conservative_bias, len(hub.adapters),
        )

    async def calculate(
        self,
        activity: Any,
        *,
        request_id: Optional[str] = None,
        methodology: Optional[CalculationMethodology] = None,
    ) -> CalculationResult:
        """Calculate the carbon footprint of one activity.

        Args:
            activity: Activity model or raw mapping.
            request_id: Correlation id; generated when omitted.
            methodology: Methodology snapshot to stamp on the result.

        Returns:
            CalculationResult with ``lower <= carbon_kg <= upper``.

        Raises:
            InvalidActivity: Payload failed validation.
            CalculationUnavailable: No factor obtainable at all.
        """
        started = time.perf_counter()
        activity = parse_activity(activity)
        request_id = request_id or str(uuid.uuid4())
        activity_type = ActivityType(activity.activity_type)
        now = datetime.now(timezone.utc)
        warnings: List[str] = []

        zone, zone_from_cloud = self.resolve_zone(activity)
        if activity.location is None and not zone_from_cloud:
            warnings.append(
                f"MISSING_LOCATION: no location supplied, default zone {zone} used"
            )
        age = now - activity.timestamp
        if age > timedelta(days=STALE_ACTIVITY_DAYS):
            warnings.append(
                f"STALE_ACTIVITY: activity is {age.days} days old; "
                "current factors may not reflect conditions at the time"
            )

        fetch_ms = 0.0
        reconciliation: Optional[ReconciliationResult] = None
        if isinstance(activity, TransportActivity):
            base_kg = self.transport_kg(activity)
            energy_kwh: Optional[float] = None
            intensity: Optional[float] = None
            # Static per-mode table, no live sources
            grade = ConfidenceLevel.LOW
            sources = ["transport_emission_factors"]
            max_deviation = 0.0
            factor_uncertainty = 0.0
            valid_until = now + timedelta(hours=self.config.result_validity_hours)
        else:
            fetch = await self.hub.fetch(
                zone, activity.timestamp,
                deadline_seconds=self.config.calculation_deadline_seconds,
            )
            fetch_ms = fetch.elapsed_ms
            for name in fetch.unavailable:
                warnings.append(f"SOURCE_UNAVAILABLE: {name}")

            reconciliation = self.confidence_engine.reconcile(
                fetch.readings, zone, as_of=activity.timestamp,
            )
            warnings.extend(reconciliation.assessment.warnings)

            energy_kwh = self.estimate_energy(activity)
            intensity = self.effective_intensity(activity, reconciliation.fused_value)
            base_kg = energy_kwh * intensity / 1000.0
            grade = reconciliation.grade
            sources = list(reconciliation.contributing_sources)
            max_deviation = reconciliation.max_deviation
            factor_uncertainty = max(
                (f.uncertainty or 0.0 for f in reconciliation.factors), default=0.0,
            )
            valid_until = self._valid_until(reconciliation, now)

        bias = self.config.conservative_bias
        carbon_kg = base_kg * bias
        uncertainty = max(
            GRADE_UNCERTAINTY_FLOOR[grade], max_deviation / 2, factor_uncertainty,
        ) + (1 - self.method_confidence(activity))
        uncertainty_range = UncertaintyRange(
            lower=max(0.0, min(base_kg * (1 - uncertainty), carbon_kg)),
            upper=max(carbon_kg * (1 + uncertainty), carbon_kg),
        )

        ceiling = MAX_REASONABLE_KG[activity_type]
        if carbon_kg > ceiling:
            warnings.append(
                f"RESULT_OUT_OF_RANGE: {carbon_kg:.4f} kgCO2e exceeds the "
                f"expected maximum of {ceiling} for {activity_type.value}"
            )

        methodology = (methodology or self.methodology).model_copy(deep=True)
        if reconciliation is not None:
            methodology.emission_factors = list(reconciliation.factors)

        provenance_hash = hash_payload({
            "activity": activity.model_dump(mode="json"),
            "zone": zone,
            "factors": [
                (f.source, f.value, f.unit)
                for f in (reconciliation.factors if reconciliation else [])
            ],
            "fused_intensity": reconciliation.fused_value if reconciliation else None,
            "bias": bias,
            "carbon_kg": carbon_kg,
        })

        calculation_ms = (time.perf_counter() - started) * 1000
        result = CalculationResult(
            request_id=request_id,
            activity_type=activity_type,
            carbon_kg=carbon_kg,
            base_carbon_kg=base_kg,
            conservative_bias=bias,
            confidence=grade,
            methodology=methodology,
            sources=sources,
            uncertainty_range=uncertainty_range,
            calculated_at=now,
            valid_until=valid_until,
            audit_trail=[
                AuditEntry(
                    action=AuditAction.UPDATE_SOURCES,
                    details={
                        "zone": zone,
                        "sources": sources,
                        "fallback_used": bool(reconciliation and reconciliation.fallback_used),
                        "carbon_kg": carbon_kg,
                    },
                    system_info={"methodology_version": methodology.version},
                )
            ],
            zone=zone,
            energy_kwh=energy_kwh,
            carbon_intensity=intensity,
            assessment=reconciliation.assessment if reconciliation else None,
            warnings=warnings,
            provenance_hash=provenance_hash,
            timings={
                "calculation_time_ms": round(calculation_ms, 3),
                "data_fetch_time_ms": round(fetch_ms, 3),
            },
        )

        record_calculation(activity_type.value, grade.value, calculation_ms / 1000)
        if calculation_ms > self.config.performance_target_ms:
            logger.warning(
                "Calculation %s took %.1fms (target %.0fms)",
                request_id, calculation_ms, self.config.performance_target_ms,
            )
        logger.info(
            "Calculated %s %s: %.6f kgCO2e (%s) zone=%s sources=%s",
            activity_type.value, request_id, carbon_kg, grade.value, zone, sources,
        )
        return result

    # ------------------------------------------------------------------
    # Zone and energy
    # ------------------------------------------------------------------

    def resolve_zone(self, activity: ActivityRecord) -> Tuple[str, bool]:
        """Return ``(zone, from_cloud_region)`` for an activity."""
        provider, region = "other", None
        if isinstance(activity, CloudComputeActivity):
            provider, region = activity.metadata.provider, activity.metadata.region
        elif isinstance(activity, StorageActivity):
            region = activity.metadata.region
        elif isinstance(activity, DataTransferActivity):
            region = activity.metadata.source_region

        if region:
            zone = self.resolver.resolve_cloud_region(provider, region)
            if zone is not None:
                return zone, True
        return self.resolver.resolve(activity.location), False

    @staticmethod
    def estimate_energy(activity: ActivityRecord) -> float:
        """Energy in kWh for every non-transport activity type."""
        if isinstance(activity, CloudComputeActivity):
            meta = activity.metadata
            hours = meta.duration / 3600
            memory_gb = CalculationEngine.memory_gb(meta.memory_gb, meta.instance_type)
            watt_hours = meta.vcpu_count * hours * VCPU_WATTS + memory_gb * hours * MEMORY_WATTS_PER_GB
            return watt_hours / 1000 * PUE.get(meta.provider, PUE["other"])

        if isinstance(activity, DataTransferActivity):
            meta = activity.metadata
            return meta.bytes_transferred / 1e9 * NETWORK_KWH_PER_GB[meta.network_type]

        if isinstance(activity, StorageActivity):
            meta = activity.metadata
            return meta.size_gb * (meta.duration / 3600) * STORAGE_KWH_PER_GB_HOUR[meta.storage_type]

        if isinstance(activity, ElectricityActivity):
            return activity.metadata.kwh_consumed

        if isinstance(activity, CommitActivity):
            meta = activity.metadata
            return (
                COMMIT_BASE_KWH
                + meta.lines_changed * COMMIT_KWH_PER_LINE
                + meta.ci_duration_seconds / 3600 * CI_KWH_PER_HOUR
            )

        if isinstance(activity, DeploymentActivity):
            meta = activity.metadata
            return (
                DEPLOYMENT_BASE_KWH
                + meta.duration_seconds / 3600
                * DEPLOYMENT_KWH_PER_INSTANCE_HOUR * meta.instance_count
            )

        raise TypeError(f"No energy model for {type(activity).__name__}")

    @staticmethod
    def memory_gb(memory_gb: Optional[float], instance_type: Optional[str]) -> float:
        """Explicit memory, else the instance size default, else 4 GB."""
        if memory_gb is not None:
            return memory_gb
        if instance_type:
            size = instance_type.rsplit(".", 1)[-1].lower()
            if size in INSTANCE_MEMORY_GB:
                return INSTANCE_MEMORY_GB[size]
        return DEFAULT_MEMORY_GB

    @staticmethod
    def effective_intensity(activity: ActivityRecord, fused_intensity: float) -> float:
        """Fused intensity adjusted for tariff bucket and supply mix."""
        if not isinstance(activity, ElectricityActivity):
            return fused_intensity
        meta = activity.metadata
        intensity = fused_intensity
        if meta.time_of_day:
            intensity *= TIME_OF_DAY_MULTIPLIERS[meta.time_of_day]
        if meta.source:
            intensity *= SUPPLY_MIX_MULTIPLIERS[meta.source]
        return intensity

    @staticmethod
    def transport_kg(activity: TransportActivity) -> float:
        meta = activity.metadata
        per_km = TRANSPORT_KG_PER_KM[meta.mode]
        travellers = 1 if meta.mode == "car" else meta.passengers
        return meta.distance_km * per_km * travellers

    @staticmethod
    def method_confidence(activity: ActivityRecord) -> float:
        """Confidence in the energy model for ``activity`` (0..1)."""
        if isinstance(activity, DataTransferActivity):
            score = _METHOD_CONFIDENCE_BY_NETWORK[activity.metadata.network_type]
        elif isinstance(activity, StorageActivity):
            score = _METHOD_CONFIDENCE_BY_STORAGE[activity.metadata.storage_type]
        else:
            score = _METHOD_CONFIDENCE_BY_TYPE[ActivityType(activity.activity_type)]
        return score

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _valid_until(self, reconciliation: ReconciliationResult, now: datetime) -> datetime:
        if reconciliation.fallback_used:
            return now + timedelta(hours=self.config.fallback_validity_hours)
        horizon = now + timedelta(hours=self.config.result_validity_hours)
        expiries = [f.valid_until for f in reconciliation.factors if f.valid_until is not None]
        return max(now, min(expiries + [horizon]))


__all__ = [
    "CalculationEngine",
    "build_methodology",
    "PUE",
    "INSTANCE_MEMORY_GB",
    "NETWORK_KWH_PER_GB",
    "STORAGE_KWH_PER_GB_HOUR",
    "TRANSPORT_KG_PER_KM",
    "MAX_REASONABLE_KG",
]
