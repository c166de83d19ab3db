# -*- coding: utf-8 -*-
"""
EcoTrace Carbon Calculation Pipeline
====================================

Turns a software-engineering activity into a defensible kgCO2e estimate.
It supports:

- Concurrent emission-factor fan-out with per-source circuit breakers
- Multi-source reconciliation with a four-level confidence grade
- Conservative-bias reporting with an uncertainty range
- Green Software Foundation SCI scoring and compliance checks
- Cross-validation against independent published methodologies
- Append-only audit ledger with versioned methodologies
- SHA-256 provenance chain over every ledger write
- Prometheus metrics for observability
- FastAPI REST API
- Thread-safe configuration with ECOTRACE_CARBON_ env prefix

Key Components:
    - geographic_resolver: GeographicResolver for location -> grid zone
    - source_adapters: SourceAdapter implementations and SourceHub
    - circuit_breaker: CircuitBreaker per source
    - confidence_engine: ConfidenceEngine for reconciliation and grading
    - calculation_engine: CalculationEngine for kgCO2e estimates
    - sci_calculator: SCICalculator for Software Carbon Intensity
    - cross_validation: CrossValidator for alternative derivations
    - audit_ledger: AuditLedger for audit records and methodology versions
    - pipeline: CarbonPipeline composing the above
    - setup: CarbonCalculationService facade

Example:
    >>> from ecotrace.carbon_calculation import CarbonCalculationService
    >>> service = CarbonCalculationService()
    >>> outcome = await service.calculate({
    ...     "activity_type": "cloud_compute",
    ...     "timestamp": "2026-10-01T12:00:00Z",
    ...     "metadata": {"provider": "aws", "region": "us-east-1",
    ...                  "vcpu_count": 4, "duration": 3600},
    ... })
    >>> print(outcome.sci.sci_rating)  # SCIRating.C
"""

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from ecotrace.carbon_calculation.config import (
    CarbonCalculationConfig,
    get_config,
    set_config,
    reset_config,
)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
from ecotrace.carbon_calculation.models import (
    # Enumerations
    ActivityType,
    FreshnessClass,
    PairClassification,
    ConfidenceLevel,
    SCIRating,
    AuditAction,
    CircuitState,
    # Activities
    Location,
    ActivityRecord,
    parse_activity,
    # Factors and results
    EmissionFactor,
    DataSourceDescriptor,
    FactorReading,
    ConfidenceAssessment,
    ReconciliationResult,
    CalculationMethodology,
    CalculationResult,
    SCICalculation,
    SCIComplianceReport,
    CrossValidationReport,
    # Ledger
    MethodologyChange,
    MethodologyVersion,
    AuditRecord,
    AuditQuery,
    AuditQueryResult,
    AuditStatistics,
    LedgerWriteResult,
    CalculationOutcome,
)

# ---------------------------------------------------------------------------
# Core engines
# ---------------------------------------------------------------------------
from ecotrace.carbon_calculation.geographic_resolver import GeographicResolver
from ecotrace.carbon_calculation.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry
from ecotrace.carbon_calculation.source_adapters import (
    SourceAdapter,
    EPAGridAdapter,
    LiveGridAdapter,
    CloudProviderAdapter,
    SourceHub,
)
from ecotrace.carbon_calculation.confidence_engine import ConfidenceEngine
from ecotrace.carbon_calculation.calculation_engine import CalculationEngine
from ecotrace.carbon_calculation.sci_calculator import SCICalculator
from ecotrace.carbon_calculation.cross_validation import CrossValidator, Validator
from ecotrace.carbon_calculation.audit_store import AuditStore, InMemoryTTLStore
from ecotrace.carbon_calculation.audit_ledger import AuditLedger
from ecotrace.carbon_calculation.pipeline import CarbonPipeline
from ecotrace.carbon_calculation.provenance import ProvenanceTracker

# ---------------------------------------------------------------------------
# Service setup facade
# ---------------------------------------------------------------------------
from ecotrace.carbon_calculation.setup import (
    CarbonCalculationService,
    configure_carbon_service,
    get_carbon_service,
    get_router,
    get_service,
)

__all__ = [
    "__version__",
    # Configuration
    "CarbonCalculationConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Models
    "ActivityType",
    "FreshnessClass",
    "PairClassification",
    "ConfidenceLevel",
    "SCIRating",
    "AuditAction",
    "CircuitState",
    "Location",
    "ActivityRecord",
    "parse_activity",
    "EmissionFactor",
    "DataSourceDescriptor",
    "FactorReading",
    "ConfidenceAssessment",
    "ReconciliationResult",
    "CalculationMethodology",
    "CalculationResult",
    "SCICalculation",
    "SCIComplianceReport",
    "CrossValidationReport",
    "MethodologyChange",
    "MethodologyVersion",
    "AuditRecord",
    "AuditQuery",
    "AuditQueryResult",
    "AuditStatistics",
    "LedgerWriteResult",
    "CalculationOutcome",
    # Engines
    "GeographicResolver",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "SourceAdapter",
    "EPAGridAdapter",
    "LiveGridAdapter",
    "CloudProviderAdapter",
    "SourceHub",
    "ConfidenceEngine",
    "CalculationEngine",
    "SCICalculator",
    "CrossValidator",
    "Validator",
    "AuditStore",
    "InMemoryTTLStore",
    "AuditLedger",
    "CarbonPipeline",
    "ProvenanceTracker",
    # Service
    "CarbonCalculationService",
    "configure_carbon_service",
    "get_carbon_service",
    "get_router",
    "get_service",
]
