# -*- coding: utf-8 -*-
"""
Carbon Calculation Pipeline - EcoTrace Carbon Calculation Pipeline

Composes the engines into one request flow:

    1. CALCULATE  -- CalculationEngine with the ledger's current methodology
    2. SCORE      -- SCI score and compliance report      } concurrently
    3. VALIDATE   -- cross-validation against alternatives }
    4. ADJUST     -- lower the grade one step on low agreement
    5. RECORD     -- audit record plus attached validation assessment

Only ``InvalidActivity`` and ``CalculationUnavailable`` propagate. SCI and
cross-validation are advisory: a failure there is logged and the outcome
carries ``None`` for that part. Ledger failures are reported through
``CalculationOutcome.audit.error``.

Example:
    >>> pipeline = CarbonPipeline(engine, sci, cross_validator, ledger)
    >>> outcome = await pipeline.run({
    ...     "activity_type": "cloud_compute",
    ...     "timestamp": "2026-10-01T12:00:00Z",
    ...     "metadata": {"provider": "aws", "region": "us-east-1",
    ...                  "vcpu_count": 4, "duration": 3600},
    ... })
    >>> outcome.sci.functional_unit
    4.0

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, Optional, Tuple

from ecotrace.carbon_calculation.audit_ledger import AuditLedger
from ecotrace.carbon_calculation.calculation_engine import CalculationEngine
from ecotrace.carbon_calculation.config import CarbonCalculationConfig, get_config
from ecotrace.carbon_calculation.cross_validation import CrossValidator
from ecotrace.carbon_calculation.models import (
    ActivityRecord,
    CalculationOutcome,
    CalculationResult,
    CrossValidationReport,
    LedgerWriteResult,
    PerformanceMetrics,
    SCICalculation,
    SCIComplianceReport,
    parse_activity,
)
from ecotrace.carbon_calculation.sci_calculator import SCICalculator

logger = logging.getLogger(__name__)


class CarbonPipeline:
    """End-to-end calculation, scoring, validation and audit.

    Attributes:
        engine: Base calculation.
        sci_calculator: SCI scoring.
        cross_validator: Alternative derivations.
        ledger: Audit and methodology ledger.
    """

    def __init__(
        self,
        engine: CalculationEngine,
        sci_calculator: SCICalculator,
        cross_validator: CrossValidator,
        ledger: AuditLedger,
        config: Optional[CarbonCalculationConfig] = None,
    ) -> None:
        self.config = config or get_config()
        self.engine = engine
        self.sci_calculator = sci_calculator
        self.cross_validator = cross_validator
        self.ledger = ledger
        self._runs = 0
        self._downgrades = 0
        self._ledger_errors = 0

    async def run(
        self,
        activity: Any,
        *,
        request_id: Optional[str] = None,
        user_context: Optional[Dict[str, Any]] = None,
    ) -> CalculationOutcome:
        """Run one activity through the full pipeline.

        Args:
            activity: Activity model or raw mapping.
            request_id: Correlation id; generated when omitted.
            user_context: Caller details stored on the audit record.

        Returns:
            CalculationOutcome with result, SCI, cross-validation and the
            ledger write outcome.

        Raises:
            InvalidActivity: Payload failed validation.
            CalculationUnavailable: No factor obtainable at all.
        """
        started = time.perf_counter()
        activity = parse_activity(activity)
        request_id = request_id or str(uuid.uuid4())
        methodology = self.ledger.get_current_methodology_version().methodology

        result = await self.engine.calculate(
            activity, request_id=request_id, methodology=methodology,
        )

        validation_started = time.perf_counter()
        scored, report = await asyncio.gather(
            self._score(activity, result),
            self._cross_validate(activity, result),
        )
        validation_ms = (time.perf_counter() - validation_started) * 1000
        sci, compliance = scored

        if report is not None:
            self._apply_agreement(result, report)

        total_ms = (time.perf_counter() - started) * 1000
        metrics = PerformanceMetrics(
            calculation_time_ms=result.timings.get("calculation_time_ms", 0.0),
            data_fetch_time_ms=result.timings.get("data_fetch_time_ms", 0.0),
            validation_time_ms=validation_ms,
            total_time_ms=total_ms,
        )
        audit = await self.ledger.record_calculation(
            request_id, activity, result, metrics, user_context,
        )
        if report is not None and report.per_validator_results and audit.audit_id:
            validation_write = await self.ledger.record_validation(
                request_id, self.cross_validator.to_assessment(report),
            )
            if validation_write.error and audit.error is None:
                audit = LedgerWriteResult(audit_id=audit.audit_id, error=validation_write.error)

        self._runs += 1
        if audit.error:
            self._ledger_errors += 1
        logger.info(
            "Pipeline %s finished in %.1fms: %.6f kgCO2e (%s), sci=%s, agreement=%s",
            request_id, total_ms, result.carbon_kg, result.confidence.value,
            sci.sci_rating.value if sci else "n/a",
            f"{report.agreement:.2f}" if report and report.agreement is not None else "n/a",
        )
        return CalculationOutcome(
            result=result,
            sci=sci,
            sci_compliance=compliance,
            cross_validation=report,
            audit=audit,
        )

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "runs": self._runs,
            "confidence_downgrades": self._downgrades,
            "ledger_errors": self._ledger_errors,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _score(
        self,
        activity: ActivityRecord,
        result: CalculationResult,
    ) -> Tuple[Optional[SCICalculation], Optional[SCIComplianceReport]]:
        try:
            sci = self.sci_calculator.calculate_for_result(activity, result)
        except Exception:
            logger.error("SCI scoring failed for %s", result.request_id, exc_info=True)
            return None, None
        if sci is None:
            return None, None
        return sci, self.sci_calculator.validate_sci_compliance(sci)

    async def _cross_validate(
        self,
        activity: ActivityRecord,
        result: CalculationResult,
    ) -> Optional[CrossValidationReport]:
        try:
            return await self.cross_validator.cross_validate(activity, result)
        except Exception:
            logger.error("Cross-validation failed for %s", result.request_id, exc_info=True)
            return None

    def _apply_agreement(self, result: CalculationResult, report: CrossValidationReport) -> None:
        if report.agreement is None:
            return
        threshold = self.config.min_cross_validation_agreement
        if report.agreement >= threshold:
            return
        previous = result.confidence
        result.confidence = previous.downgrade()
        result.warnings.append(
            f"LOW_CROSS_VALIDATION_AGREEMENT: {report.agreement:.2f} below {threshold:.2f}; "
            f"confidence lowered from {previous.value} to {result.confidence.value}"
        )
        self._downgrades += 1


__all__ = [
    "CarbonPipeline",
]
