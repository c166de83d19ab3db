# -*- coding: utf-8 -*-
"""
Prometheus Metrics - EcoTrace Carbon Calculation Pipeline

12 Prometheus metrics for carbon calculation monitoring.

Metrics:
    1.  ecotrace_carbon_calculations_total (Counter)
    2.  ecotrace_carbon_calculation_duration_seconds (Histogram)
    3.  ecotrace_carbon_source_requests_total (Counter)
    4.  ecotrace_carbon_breaker_state (Gauge)
    5.  ecotrace_carbon_pair_classifications_total (Counter)
    6.  ecotrace_carbon_fallbacks_total (Counter)
    7.  ecotrace_carbon_sci_ratings_total (Counter)
    8.  ecotrace_carbon_cross_validation_agreement (Histogram)
    9.  ecotrace_carbon_ledger_records_total (Counter)
    10. ecotrace_carbon_ledger_write_failures_total (Counter)
    11. ecotrace_carbon_audit_records (Gauge)
    12. ecotrace_carbon_methodology_versions_total (Counter)

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

from ecotrace.carbon_calculation.models import CircuitState


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

# 1. Calculations count
carbon_calculations_total = Counter(
    "ecotrace_carbon_calculations_total",
    "Total carbon calculations performed",
    labelnames=["activity_type", "confidence"],
)

# 2. Calculation duration
carbon_calculation_duration_seconds = Histogram(
    "ecotrace_carbon_calculation_duration_seconds",
    "Carbon calculation duration in seconds",
    labelnames=["activity_type"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0),
)

# 3. Source requests by outcome
carbon_source_requests_total = Counter(
    "ecotrace_carbon_source_requests_total",
    "Emission-factor source requests by outcome",
    labelnames=["source", "outcome"],
)

# 4. Breaker state (0 closed, 1 half-open, 2 open)
carbon_breaker_state = Gauge(
    "ecotrace_carbon_breaker_state",
    "Circuit breaker state per source (0 closed, 1 half-open, 2 open)",
    labelnames=["source"],
)

# 5. Pairwise classifications
carbon_pair_classifications_total = Counter(
    "ecotrace_carbon_pair_classifications_total",
    "Pairwise source comparisons by classification",
    labelnames=["classification"],
)

# 6. Static table fallbacks
carbon_fallbacks_total = Counter(
    "ecotrace_carbon_fallbacks_total",
    "Calculations that fell back to the static regional table",
)

# 7. SCI ratings
carbon_sci_ratings_total = Counter(
    "ecotrace_carbon_sci_ratings_total",
    "SCI scores by rating",
    labelnames=["activity_type", "rating"],
)

# 8. Cross-validation agreement
carbon_cross_validation_agreement = Histogram(
    "ecotrace_carbon_cross_validation_agreement",
    "Cross-validation agreement ratio",
    buckets=(0.0, 0.25, 0.5, 0.75, 1.0),
)

# 9. Ledger records
carbon_ledger_records_total = Counter(
    "ecotrace_carbon_ledger_records_total",
    "Audit ledger writes by kind",
    labelnames=["kind"],
)

# 10. Ledger write failures
carbon_ledger_write_failures_total = Counter(
    "ecotrace_carbon_ledger_write_failures_total",
    "Audit ledger writes that failed and were absorbed",
)

# 11. Retained audit records
carbon_audit_records = Gauge(
    "ecotrace_carbon_audit_records",
    "Current number of retained audit records",
)

# 12. Methodology versions
carbon_methodology_versions_total = Counter(
    "ecotrace_carbon_methodology_versions_total",
    "Methodology versions created",
)


_BREAKER_STATE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def record_calculation(activity_type: str, confidence: str, duration_seconds: float) -> None:
    """Record a completed calculation.

    Args:
        activity_type: Activity type that was costed.
        confidence: Confidence grade of the result.
        duration_seconds: Calculation duration in seconds.
    """
    carbon_calculations_total.labels(
        activity_type=activity_type, confidence=confidence,
    ).inc()
    carbon_calculation_duration_seconds.labels(
        activity_type=activity_type,
    ).observe(duration_seconds)


def record_source_request(source: str, outcome: str) -> None:
    """Record one adapter call.

    Args:
        source: Source name.
        outcome: success, not_covered, failure, timeout or short_circuit.
    """
    carbon_source_requests_total.labels(source=source, outcome=outcome).inc()


def record_breaker_state(source: str, state: CircuitState) -> None:
    """Set the breaker state gauge for a source."""
    carbon_breaker_state.labels(source=source).set(_BREAKER_STATE_VALUES[state])


def record_pair_classification(classification: str) -> None:
    """Record one pairwise comparison result."""
    carbon_pair_classifications_total.labels(classification=classification).inc()


def record_fallback() -> None:
    """Record a fallback to the static regional table."""
    carbon_fallbacks_total.inc()


def record_sci_rating(activity_type: str, rating: str) -> None:
    """Record an SCI rating."""
    carbon_sci_ratings_total.labels(activity_type=activity_type, rating=rating).inc()


def record_cross_validation(agreement: float) -> None:
    """Record a cross-validation agreement ratio."""
    carbon_cross_validation_agreement.observe(agreement)


def record_ledger_write(kind: str) -> None:
    """Record a successful ledger write.

    Args:
        kind: calculation, validation or methodology.
    """
    carbon_ledger_records_total.labels(kind=kind).inc()


def record_ledger_failure() -> None:
    """Record an absorbed ledger write failure."""
    carbon_ledger_write_failures_total.inc()


def update_audit_record_count(count: int) -> None:
    """Set the retained audit records gauge."""
    carbon_audit_records.set(count)


def record_methodology_version() -> None:
    """Record a new methodology version."""
    carbon_methodology_versions_total.inc()


__all__ = [
    # Metric objects
    "carbon_calculations_total",
    "carbon_calculation_duration_seconds",
    "carbon_source_requests_total",
    "carbon_breaker_state",
    "carbon_pair_classifications_total",
    "carbon_fallbacks_total",
    "carbon_sci_ratings_total",
    "carbon_cross_validation_agreement",
    "carbon_ledger_records_total",
    "carbon_ledger_write_failures_total",
    "carbon_audit_records",
    "carbon_methodology_versions_total",
    # Helper functions
    "record_calculation",
    "record_source_request",
    "record_breaker_state",
    "record_pair_classification",
    "record_fallback",
    "record_sci_rating",
    "record_cross_validation",
    "record_ledger_write",
    "record_ledger_failure",
    "update_audit_record_count",
    "record_methodology_version",
]
