# -*- coding: utf-8 -*-
"""
Cross-Validation Engine - EcoTrace Carbon Calculation Pipeline

Re-derives a finished calculation with independent public methodologies
and reports how well they agree with the primary (unbiased) figure.
Validators run concurrently; one that raises is reported as unavailable
and never fails the run. Each comparison uses the same
match/close/divergent/failed thresholds as source reconciliation.

Validators:
    regional_grid_average   primary energy x static regional intensity
                            (with the electricity tariff and mix adjustments)
    cloud_carbon_footprint  Cloud Carbon Footprint coefficients (compute,
                            storage) x fused intensity
    marginal_grid           primary energy x marginal-adjusted intensity
                            (advisory: reported, not counted in agreement)
    transport_alternative   DEFRA passenger-km factors (transport only)

The report never changes the figure. The pipeline lowers the confidence grade one step
when agreement falls below the configured minimum.

Example:
    >>> validator = CrossValidator(ConfidenceEngine())
    >>> report = await validator.cross_validate(activity, result)
    >>> report.agreement
    1.0

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from ecotrace.carbon_calculation.calculation_engine import CalculationEngine
from ecotrace.carbon_calculation.config import CarbonCalculationConfig, get_config
from ecotrace.carbon_calculation.confidence_engine import ConfidenceEngine
from ecotrace.carbon_calculation.metrics import record_cross_validation
from ecotrace.carbon_calculation.models import (
    ActivityRecord,
    CalculationResult,
    CloudComputeActivity,
    ConfidenceAssessment,
    ConsensusRange,
    CrossReference,
    CrossValidationReport,
    PairClassification,
    StorageActivity,
    TransportActivity,
    ValidatorResult,
)
from ecotrace.carbon_calculation.sci_calculator import SCICalculator

logger = logging.getLogger(__name__)

# Deviations are reported up to this value (a zero reference is unbounded)
_MAX_REPORTED_DEVIATION = 1000.0

# Cloud Carbon Footprint coefficients: per-vCPU (min W, max W) and PUE
CCF_VCPU_WATTS: Dict[str, tuple] = {
    "aws": (0.74, 3.5),
    "gcp": (0.71, 4.26),
    "azure": (0.78, 3.76),
    "other": (0.74, 3.5),
}
CCF_PUE: Dict[str, float] = {
    "aws": 1.135,
    "gcp": 1.1,
    "azure": 1.185,
    "other": 1.2,
}
CCF_AVERAGE_UTILIZATION = 0.5
CCF_MEMORY_WATTS_PER_GB = 0.392
# Wh per TB-hour at the wall (no PUE, as in the primary storage model)
CCF_STORAGE_WH_PER_TB_HOUR: Dict[str, float] = {
    "ssd": 1.2,
    "hdd": 0.65,
    "object": 0.65 * 3,
    "archive": 0.65 * 0.5,
}

# DEFRA 2023 kgCO2e per vehicle-km (car) or passenger-km
DEFRA_TRANSPORT_KG_PER_KM: Dict[str, float] = {
    "car": 0.166,
    "bus": 0.102,
    "rail": 0.035,
    "short_haul_flight": 0.156,
    "long_haul_flight": 0.151,
}


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


class Validator(ABC):
    """One independent derivation of an activity's unbiased kgCO2e."""

    name: str = ""
    methodology: str = ""
    # Advisory validators measure a different quantity and are excluded
    # from the agreement ratio
    advisory: bool = False

    @abstractmethod
    def applies(self, activity: ActivityRecord, result: CalculationResult) -> bool:
        """Whether this validator can re-derive the activity."""

    @abstractmethod
    async def derive(self, activity: ActivityRecord, result: CalculationResult) -> float:
        """Return the alternative kgCO2e figure."""


class RegionalGridAverageValidator(Validator):
    name = "regional_grid_average"
    methodology = "Primary energy model with static regional average intensity"

    def __init__(self, confidence_engine: ConfidenceEngine) -> None:
        self.confidence_engine = confidence_engine

    def applies(self, activity: ActivityRecord, result: CalculationResult) -> bool:
        return result.energy_kwh is not None

    async def derive(self, activity: ActivityRecord, result: CalculationResult) -> float:
        resolved = self.confidence_engine.regional_average(result.zone)
        if resolved is None:
            raise LookupError(f"No regional average for {result.zone}")
        intensity = CalculationEngine.effective_intensity(activity, resolved[1])
        return result.energy_kwh * intensity / 1000


class CloudCarbonFootprintValidator(Validator):
    """Cloud Carbon Footprint energy coefficients with the fused intensity."""

    name = "cloud_carbon_footprint"
    methodology = "Cloud Carbon Footprint min/max vCPU watts at average utilization"

    def applies(self, activity: ActivityRecord, result: CalculationResult) -> bool:
        return (
            isinstance(activity, (CloudComputeActivity, StorageActivity))
            and result.carbon_intensity is not None
        )

    async def derive(self, activity: ActivityRecord, result: CalculationResult) -> float:
        if isinstance(activity, CloudComputeActivity):
            meta = activity.metadata
            hours = meta.duration / 3600
            min_w, max_w = CCF_VCPU_WATTS.get(meta.provider, CCF_VCPU_WATTS["other"])
            vcpu_w = min_w + CCF_AVERAGE_UTILIZATION * (max_w - min_w)
            memory_gb = meta.memory_gb if meta.memory_gb is not None else 4.0
            watt_hours = meta.vcpu_count * hours * vcpu_w + memory_gb * hours * CCF_MEMORY_WATTS_PER_GB
            energy_kwh = watt_hours / 1000 * CCF_PUE.get(meta.provider, CCF_PUE["other"])
        else:
            meta = activity.metadata
            tb_hours = meta.size_gb / 1000 * meta.duration / 3600
            energy_kwh = tb_hours * CCF_STORAGE_WH_PER_TB_HOUR[meta.storage_type] / 1000
        return energy_kwh * result.carbon_intensity / 1000


class MarginalGridValidator(Validator):
    name = "marginal_grid"
    methodology = "Primary energy model with marginal emission factors"
    advisory = True

    def applies(self, activity: ActivityRecord, result: CalculationResult) -> bool:
        return result.energy_kwh is not None and result.carbon_intensity is not None

    async def derive(self, activity: ActivityRecord, result: CalculationResult) -> float:
        multiplier = SCICalculator.marginal_multiplier(result.zone)
        return result.energy_kwh * result.carbon_intensity * multiplier / 1000


class TransportAlternativeValidator(Validator):
    name = "transport_alternative"
    methodology = "DEFRA 2023 passenger-km conversion factors"

    def applies(self, activity: ActivityRecord, result: CalculationResult) -> bool:
        return isinstance(activity, TransportActivity)

    async def derive(self, activity: ActivityRecord, result: CalculationResult) -> float:
        meta = activity.metadata
        travellers = 1 if meta.mode == "car" else meta.passengers
        return meta.distance_km * DEFRA_TRANSPORT_KG_PER_KM[meta.mode] * travellers


def default_validators(confidence_engine: ConfidenceEngine) -> List[Validator]:
    return [
        RegionalGridAverageValidator(confidence_engine),
        CloudCarbonFootprintValidator(),
        MarginalGridValidator(),
        TransportAlternativeValidator(),
    ]


# ---------------------------------------------------------------------------
# CrossValidator
# ---------------------------------------------------------------------------


class CrossValidator:
    """Runs the validators and summarizes their agreement.

    Attributes:
        confidence_engine: Supplies the pair classifier.
        validators: Injected validators; defaults to the built-in set.
    """

    def __init__(
        self,
        confidence_engine: ConfidenceEngine,
        validators: Optional[Sequence[Validator]] = None,
        config: Optional[CarbonCalculationConfig] = None,
    ) -> None:
        self.config = config or get_config()
        self.confidence_engine = confidence_engine
        self.validators: List[Validator] = (
            list(validators) if validators is not None
            else default_validators(confidence_engine)
        )

    async def cross_validate(
        self,
        activity: ActivityRecord,
        result: CalculationResult,
    ) -> CrossValidationReport:
        """Compare every applicable validator with ``result.base_carbon_kg``.

        Returns:
            Report with agreement and consensus range over the scored
            (non-advisory) validators, None when none applies, plus every
            per-validator result.
        """
        applicable = [v for v in self.validators if v.applies(activity, result)]
        outcomes = await asyncio.gather(
            *(v.derive(activity, result) for v in applicable),
            return_exceptions=True,
        )

        reference = result.base_carbon_kg
        per_validator: List[ValidatorResult] = []
        unavailable: List[str] = []
        for validator, outcome in zip(applicable, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "Validator %s failed for %s: %s",
                    validator.name, result.request_id, outcome,
                )
                unavailable.append(validator.name)
                continue
            value = max(0.0, float(outcome))
            deviation = min(
                self.confidence_engine.relative_deviation(value, reference),
                _MAX_REPORTED_DEVIATION,
            )
            per_validator.append(
                ValidatorResult(
                    validator=validator.name,
                    methodology=validator.methodology,
                    value_kg=value,
                    reference_kg=reference,
                    deviation=deviation,
                    classification=self.confidence_engine.classify(deviation),
                    advisory=validator.advisory,
                )
            )

        agreement: Optional[float] = None
        consensus: Optional[ConsensusRange] = None
        scored = [r for r in per_validator if not r.advisory]
        if scored:
            agreeing = sum(
                1 for r in scored
                if r.classification in (PairClassification.MATCH, PairClassification.CLOSE)
            )
            agreement = agreeing / len(scored)
            values = [r.value_kg for r in scored]
            consensus = ConsensusRange(lower=min(values), upper=max(values))
            record_cross_validation(agreement)
            if agreement < self.config.min_cross_validation_agreement:
                logger.warning(
                    "Low cross-validation agreement %.2f for %s (%s)",
                    agreement, result.request_id, result.activity_type.value,
                )

        return CrossValidationReport(
            request_id=result.request_id,
            agreement=agreement,
            consensus_range=consensus,
            per_validator_results=per_validator,
            unavailable=unavailable,
        )

    @staticmethod
    def to_assessment(report: CrossValidationReport) -> ConfidenceAssessment:
        """Express a report as a ConfidenceAssessment for the audit ledger."""
        warnings = []
        cross_refs = []
        for r in report.per_validator_results:
            cross_refs.append(
                CrossReference(
                    source=r.validator,
                    expected_value=r.value_kg,
                    actual_value=r.reference_kg,
                    variance_pct=round(r.deviation * 100, 4),
                    status=r.classification,
                )
            )
            if r.advisory:
                continue
            if r.classification in (PairClassification.DIVERGENT, PairClassification.FAILED):
                warnings.append(
                    f"{r.validator} is {r.classification.value} "
                    f"({r.deviation * 100:.1f}% from the primary result)"
                )
        warnings.extend(f"{name} unavailable" for name in report.unavailable)
        return ConfidenceAssessment(
            is_valid=all(
                r.classification != PairClassification.FAILED
                for r in report.per_validator_results if not r.advisory
            ),
            warnings=warnings,
            confidence=report.agreement if report.agreement is not None else 0.0,
            cross_references=cross_refs,
        )


__all__ = [
    "CrossValidator",
    "Validator",
    "RegionalGridAverageValidator",
    "CloudCarbonFootprintValidator",
    "MarginalGridValidator",
    "TransportAlternativeValidator",
    "default_validators",
]
