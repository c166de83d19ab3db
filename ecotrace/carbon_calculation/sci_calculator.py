# -*- coding: utf-8 -*-
"""
SCI Compliance Calculator - EcoTrace Carbon Calculation Pipeline

Computes the Software Carbon Intensity of one activity::

    SCI = (O + M) / R

    O  operational  energy (kWh) x intensity (gCO2e/kWh), marginal-adjusted
    M  embodied     hardware budgets amortized over lifespan hours and
                    utilization, scaled by activity magnitude, plus fixed
                    software and infrastructure overheads, times the share
                    of the lifespan-hour consumed
    R  functional unit chosen by activity type (vCPU-hours, MB, GB-hours,
       one operation); recorded alongside the score

All emissions are grams of CO2e. The letter rating comes from per-type
threshold tables in gCO2e per functional unit. ``validate_sci_compliance``
is a pure rule check over a finished calculation.

Example:
    >>> calculator = SCICalculator()
    >>> sci = calculator.calculate_sci(activity, energy_kwh=0.01135, carbon_intensity=400.0)
    >>> sci.functional_unit
    4.0

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Optional, Tuple

from ecotrace.carbon_calculation.config import CarbonCalculationConfig, get_config
from ecotrace.carbon_calculation.metrics import record_sci_rating
from ecotrace.carbon_calculation.models import (
    ActivityRecord,
    ActivityType,
    CalculationResult,
    CloudComputeActivity,
    DataTransferActivity,
    EmbodiedBreakdown,
    FunctionalUnitSpec,
    SCICalculation,
    SCIComplianceReport,
    SCIComponents,
    SCIMethodology,
    SCIRating,
    StorageActivity,
    TransportActivity,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

# Marginal-to-average intensity ratio per country
MARGINAL_MULTIPLIERS: Dict[str, float] = {
    "US": 1.15,
    "CA": 1.05,
    "GB": 1.10,
    "FR": 1.20,
    "DE": 1.25,
    "JP": 1.30,
    "AU": 1.20,
    "CN": 1.40,
    "IN": 1.45,
    "BR": 1.10,
}
DEFAULT_MARGINAL_MULTIPLIER = 1.15

# Manufacturing budgets, kgCO2e per unit of hardware
SERVER_EMBODIED_KG = 300.0
NETWORK_EMBODIED_KG = 150.0
STORAGE_EMBODIED_KG = 200.0
HOURS_PER_YEAR = 365 * 24

UTILIZATION_RATES: Dict[ActivityType, float] = {
    ActivityType.CLOUD_COMPUTE: 0.70,
    ActivityType.STORAGE: 0.85,
    ActivityType.DATA_TRANSFER: 0.60,
}
DEFAULT_UTILIZATION_RATE = 0.65

# Development, deployment and maintenance overhead, kgCO2e
SOFTWARE_OVERHEAD_KG = (0.001, 0.0001, 0.00001)
SOFTWARE_COMPLEXITY: Dict[ActivityType, float] = {
    ActivityType.CLOUD_COMPUTE: 1.5,
    ActivityType.DATA_TRANSFER: 0.8,
    ActivityType.STORAGE: 0.6,
}

# Datacenter, cooling and power infrastructure overhead, kgCO2e
INFRASTRUCTURE_OVERHEAD_KG = (0.005, 0.002, 0.001)

# Upper bounds (gCO2e per functional unit) for ratings A..D; above D is E
SCI_THRESHOLDS: Dict[str, Tuple[float, float, float, float]] = {
    ActivityType.CLOUD_COMPUTE.value: (5.0, 10.0, 20.0, 40.0),
    ActivityType.DATA_TRANSFER.value: (0.01, 0.05, 0.1, 0.5),
    ActivityType.STORAGE.value: (0.005, 0.02, 0.05, 0.2),
    "generic": (10.0, 50.0, 100.0, 500.0),
}

_BYTES_PER_GIB = 1024 ** 3
_BYTES_PER_MIB = 1024 ** 2


class SCICalculator:
    """Software Carbon Intensity scoring.

    Attributes:
        include_embodied: Add embodied emissions to the score.
        use_marginal: Scale intensity by the country's marginal multiplier.
        temporal_resolution: ``hourly`` is reported as real time.
        lifespan_years: Hardware amortization period.
    """

    def __init__(self, config: Optional[CarbonCalculationConfig] = None) -> None:
        self.config = config or get_config()
        self.include_embodied = self.config.sci_include_embodied
        self.use_marginal = self.config.sci_use_marginal
        self.temporal_resolution = self.config.sci_temporal_resolution
        self.lifespan_years = self.config.hardware_lifespan_years

    def calculate_sci(
        self,
        activity: ActivityRecord,
        energy_kwh: float,
        carbon_intensity: float,
        zone: Optional[str] = None,
    ) -> SCICalculation:
        """Score one activity.

        Args:
            activity: Parsed activity record (not transport).
            energy_kwh: Energy estimate from the calculation engine.
            carbon_intensity: Fused intensity in gCO2e/kWh.
            zone: Grid zone; its country selects the marginal multiplier.

        Returns:
            SCICalculation with components, functional unit and rating.
        """
        activity_type = ActivityType(activity.activity_type)
        if self.use_marginal:
            intensity = carbon_intensity * self.marginal_multiplier(zone)
        else:
            intensity = carbon_intensity

        operational = energy_kwh * intensity
        breakdown = self.embodied_emissions(activity)
        embodied = breakdown.total if self.include_embodied else 0.0
        unit = self.functional_unit(activity)
        sci_value = (operational + embodied) / unit.value
        rating = self.rate(sci_value, activity_type.value)

        record_sci_rating(activity_type.value, rating.value)
        logger.info(
            "SCI %s: %.6f g/%s (rating %s, operational=%.6f g, embodied=%.6f g)",
            activity_type.value, sci_value, unit.unit, rating.value, operational, embodied,
        )
        return SCICalculation(
            carbon_intensity=intensity,
            energy_consumption=energy_kwh,
            embodied_emissions=embodied,
            functional_unit=unit.value,
            functional_unit_spec=unit,
            sci_value=sci_value,
            sci_rating=rating,
            methodology=SCIMethodology(
                temporal="real_time" if self.temporal_resolution == "hourly" else "time_averaged",
                marginal=self.use_marginal,
                location_based=True,
            ),
            components=SCIComponents(operational=operational, embodied=embodied),
            embodied_breakdown=breakdown,
        )

    def calculate_for_result(
        self,
        activity: ActivityRecord,
        result: CalculationResult,
    ) -> Optional[SCICalculation]:
        """Score an activity from an engine result; None when not applicable."""
        if isinstance(activity, TransportActivity) or result.energy_kwh is None:
            return None
        return self.calculate_sci(
            activity,
            energy_kwh=result.energy_kwh,
            carbon_intensity=result.carbon_intensity or 0.0,
            zone=result.zone,
        )

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @staticmethod
    def marginal_multiplier(zone: Optional[str]) -> float:
        if not zone:
            return DEFAULT_MARGINAL_MULTIPLIER
        country = zone.split("-", 1)[0]
        return MARGINAL_MULTIPLIERS.get(country, DEFAULT_MARGINAL_MULTIPLIER)

    def embodied_emissions(self, activity: ActivityRecord) -> EmbodiedBreakdown:
        """Embodied emissions in grams, broken down by origin."""
        activity_type = ActivityType(activity.activity_type)
        lifespan_hours = self.lifespan_years * HOURS_PER_YEAR

        servers, network_factor, storage_factor = 1.0, 1.0, 1.0
        infra_scale = 1.0
        if isinstance(activity, CloudComputeActivity):
            vcpus = activity.metadata.vcpu_count
            servers = float(max(1, math.ceil(vcpus / 4)))
            network_factor = vcpus / 4
            infra_scale = max(1.0, vcpus / 2)
        elif isinstance(activity, StorageActivity):
            storage_factor = max(1.0, activity.metadata.size_gb / 100)
        elif isinstance(activity, DataTransferActivity):
            network_factor = max(1.0, activity.metadata.bytes_transferred / _BYTES_PER_GIB)

        utilization = UTILIZATION_RATES.get(activity_type, DEFAULT_UTILIZATION_RATE)
        per_hour = 1000.0 / lifespan_hours / utilization
        server_g = SERVER_EMBODIED_KG * per_hour * servers
        network_g = NETWORK_EMBODIED_KG * per_hour * network_factor
        storage_g = STORAGE_EMBODIED_KG * per_hour * storage_factor

        software_g = sum(SOFTWARE_OVERHEAD_KG) * SOFTWARE_COMPLEXITY.get(activity_type, 1.0) * 1000
        infrastructure_g = sum(INFRASTRUCTURE_OVERHEAD_KG) * infra_scale * 1000

        time_share = self.time_share(activity)
        total = (server_g + network_g + storage_g + software_g + infrastructure_g) * time_share
        return EmbodiedBreakdown(
            servers=server_g,
            networking=network_g,
            storage=storage_g,
            software=software_g,
            infrastructure=infrastructure_g,
            lifespan_years=self.lifespan_years,
            utilization_rate=utilization,
            time_share=time_share,
            total=total,
        )

    @staticmethod
    def time_share(activity: ActivityRecord) -> float:
        """Fraction of the lifespan-hour consumed, ``min(1, hours)``."""
        if isinstance(activity, (CloudComputeActivity, StorageActivity)):
            return min(1.0, activity.metadata.duration / 3600)
        return 1.0

    @staticmethod
    def functional_unit(activity: ActivityRecord) -> FunctionalUnitSpec:
        if isinstance(activity, CloudComputeActivity):
            meta = activity.metadata
            return FunctionalUnitSpec(
                type="vcpu_hours",
                value=max(1.0, meta.vcpu_count * meta.duration / 3600),
                unit="vCPU-hours",
                description="Virtual CPU hours of computation",
            )
        if isinstance(activity, DataTransferActivity):
            return FunctionalUnitSpec(
                type="megabytes",
                value=max(1.0, activity.metadata.bytes_transferred / _BYTES_PER_MIB),
                unit="MB transferred",
                description="Megabytes of data transferred",
            )
        if isinstance(activity, StorageActivity):
            meta = activity.metadata
            return FunctionalUnitSpec(
                type="gb_hours",
                value=max(1.0, meta.size_gb * meta.duration / 3600),
                unit="GB-hours",
                description="Gigabyte-hours of storage",
            )
        return FunctionalUnitSpec(
            type="operation",
            value=1.0,
            unit="operation",
            description="Single operation or request",
        )

    @staticmethod
    def rate(sci_value: float, activity_type: str) -> SCIRating:
        """Letter grade for a score; a value on a bound gets the better grade."""
        a, b, c, d = SCI_THRESHOLDS.get(activity_type, SCI_THRESHOLDS["generic"])
        if sci_value <= a:
            return SCIRating.A
        if sci_value <= b:
            return SCIRating.B
        if sci_value <= c:
            return SCIRating.C
        if sci_value <= d:
            return SCIRating.D
        return SCIRating.E

    # ------------------------------------------------------------------
    # Compliance
    # ------------------------------------------------------------------

    @staticmethod
    def validate_sci_compliance(calculation: SCICalculation) -> SCIComplianceReport:
        """Flag methodology gaps; each issue costs 0.2 of the score."""
        issues = []
        recommendations = []

        if not calculation.methodology.marginal:
            issues.append("Marginal emission factors were not used")
            recommendations.append("Enable marginal emission factors (ECOTRACE_CARBON_SCI_USE_MARGINAL)")
        if calculation.methodology.temporal != "real_time":
            issues.append("Temporal resolution is not real time")
            recommendations.append("Use hourly temporal resolution for grid intensity")
        if calculation.components.embodied == 0:
            issues.append("Embodied emissions are excluded")
            recommendations.append("Include embodied hardware emissions for a complete SCI score")
        if calculation.sci_rating == SCIRating.E:
            issues.append("SCI rating is E, significant optimization needed")
            recommendations.append(
                "Improve energy efficiency and move the workload to a cleaner grid region"
            )
        elif calculation.sci_rating == SCIRating.D:
            issues.append("SCI rating is D, optimization recommended")
            recommendations.append("Right-size resources and prefer lower-carbon regions")

        return SCIComplianceReport(
            is_compliant=not issues,
            issues=issues,
            recommendations=recommendations,
            compliance_score=max(0.0, 1.0 - 0.2 * len(issues)),
        )


__all__ = [
    "SCICalculator",
    "MARGINAL_MULTIPLIERS",
    "SCI_THRESHOLDS",
    "UTILIZATION_RATES",
]
