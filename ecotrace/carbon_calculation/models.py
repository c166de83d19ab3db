# -*- coding: utf-8 -*-
"""
Carbon Calculation Data Models - EcoTrace Carbon Calculation Pipeline

Pydantic v2 data models for the carbon calculation SDK.

Models:
    - Enums: ActivityType, FreshnessClass, PairClassification,
             ConfidenceLevel, SCIRating, AuditAction, CircuitState
    - Activities: Location, per-type metadata models, per-type activity
                  models and the ``ActivityRecord`` discriminated union
    - Factors: EmissionFactor, DataSourceDescriptor, FactorReading,
               SourceFetchResult, SourceHealth
    - Reconciliation: CrossReference, ConfidenceAssessment,
                      ReconciliationResult
    - Results: CalculationMethodology, AuditEntry, UncertaintyRange,
               CalculationResult
    - SCI: FunctionalUnitSpec, SCIMethodology, SCIComponents,
           EmbodiedBreakdown, SCICalculation, SCIComplianceReport
    - Cross-validation: ValidatorResult, CrossValidationReport
    - Ledger: MethodologyChange, MethodologyVersion, PerformanceMetrics,
              AuditRecord, AuditQuery, AuditQueryResult, AuditStatistics,
              LedgerWriteResult
    - Pipeline: CalculationOutcome

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from ecotrace.exceptions import InvalidActivity


# =============================================================================
# Enumerations
# =============================================================================


class ActivityType(str, Enum):
    """Kinds of software-engineering activity that can be costed."""
    CLOUD_COMPUTE = "cloud_compute"
    DATA_TRANSFER = "data_transfer"
    STORAGE = "storage"
    ELECTRICITY = "electricity"
    TRANSPORT = "transport"
    COMMIT = "commit"
    DEPLOYMENT = "deployment"


class FreshnessClass(str, Enum):
    """How often a data source publishes new values."""
    REAL_TIME = "real_time"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


# Maximum acceptable age (hours) of a value per freshness class
FRESHNESS_MAX_AGE_HOURS: Dict[FreshnessClass, float] = {
    FreshnessClass.REAL_TIME: 1,
    FreshnessClass.HOURLY: 6,
    FreshnessClass.DAILY: 48,
    FreshnessClass.WEEKLY: 168,
    FreshnessClass.MONTHLY: 720,
    FreshnessClass.QUARTERLY: 2160,
    FreshnessClass.ANNUALLY: 8760,
}


class PairClassification(str, Enum):
    """Agreement class of two independently derived values."""
    MATCH = "match"
    CLOSE = "close"
    DIVERGENT = "divergent"
    FAILED = "failed"

    @property
    def severity(self) -> int:
        """Ordinal severity, 0 for match up to 3 for failed."""
        return _CLASSIFICATION_ORDER.index(self)


_CLASSIFICATION_ORDER = [
    PairClassification.MATCH,
    PairClassification.CLOSE,
    PairClassification.DIVERGENT,
    PairClassification.FAILED,
]


class ConfidenceLevel(str, Enum):
    """Confidence grade of a calculation result, ordered low to very_high."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_ORDER.index(self)

    def downgrade(self) -> ConfidenceLevel:
        """Return the next lower grade (low stays low)."""
        return _CONFIDENCE_ORDER[max(0, self.rank - 1)]


_CONFIDENCE_ORDER = [
    ConfidenceLevel.LOW,
    ConfidenceLevel.MEDIUM,
    ConfidenceLevel.HIGH,
    ConfidenceLevel.VERY_HIGH,
]


class SCIRating(str, Enum):
    """Letter grade of a Software Carbon Intensity score."""
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"


class AuditAction(str, Enum):
    """Actions recorded in a calculation's audit trail."""
    CALCULATE = "calculate"
    VALIDATE = "validate"
    UPDATE_SOURCES = "update_sources"
    OVERRIDE = "override"


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


# =============================================================================
# Helpers
# =============================================================================


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def _ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes so all comparisons are tz-aware."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# Activity Models
# =============================================================================


class Coordinates(BaseModel):
    """Geographic coordinates."""
    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")

    model_config = {"extra": "forbid", "frozen": True}


class Location(BaseModel):
    """Where an activity took place."""
    country: str = Field(..., min_length=2, description="ISO 3166-1 alpha-2 country code")
    region: Optional[str] = Field(None, description="State, province or region code")
    postal_code: Optional[str] = Field(None, description="Postal or ZIP code")
    coordinates: Optional[Coordinates] = Field(None, description="Optional coordinates")

    model_config = {"extra": "forbid", "frozen": True}

    @field_validator("country")
    @classmethod
    def normalize_country(cls, v: str) -> str:
        """Upper-case and strip the country code."""
        return v.strip().upper()


class CloudComputeMetadata(BaseModel):
    """Metadata for a cloud compute activity."""
    provider: Literal["aws", "azure", "gcp", "other"] = Field(
        "other", description="Cloud provider",
    )
    region: str = Field(..., min_length=1, description="Provider region (e.g. us-east-1)")
    instance_type: Optional[str] = Field(None, description="Instance type (e.g. m5.large)")
    vcpu_count: int = Field(1, ge=1, le=1000, description="Number of vCPUs")
    duration: float = Field(..., ge=0, le=86400, description="Runtime in seconds")
    memory_gb: Optional[float] = Field(None, ge=0, description="Allocated memory in GB")

    model_config = {"extra": "forbid", "frozen": True}


class DataTransferMetadata(BaseModel):
    """Metadata for a data transfer activity."""
    bytes_transferred: int = Field(
        ..., ge=0, le=1_000_000_000_000, description="Bytes transferred",
    )
    network_type: Literal["internet", "cdn", "internal"] = Field(
        "internet", description="Network class the bytes travelled over",
    )
    source_region: Optional[str] = Field(None, description="Origin cloud region")
    destination_region: Optional[str] = Field(None, description="Destination cloud region")
    duration: Optional[float] = Field(None, ge=0, description="Transfer time in seconds")

    model_config = {"extra": "forbid", "frozen": True}


class StorageMetadata(BaseModel):
    """Metadata for a storage activity."""
    storage_type: Literal["ssd", "hdd", "object", "archive"] = Field(
        "ssd", description="Storage medium",
    )
    size_gb: float = Field(..., ge=0, le=1_000_000, description="Stored volume in GB")
    duration: float = Field(
        ..., ge=0, le=365 * 24 * 3600, description="Storage period in seconds",
    )
    region: Optional[str] = Field(None, description="Provider region holding the data")

    model_config = {"extra": "forbid", "frozen": True}


class ElectricityMetadata(BaseModel):
    """Metadata for a metered electricity activity."""
    kwh_consumed: float = Field(..., ge=0, le=1_000_000, description="Metered energy in kWh")
    time_of_day: Optional[Literal["peak", "off_peak", "shoulder"]] = Field(
        None, description="Tariff bucket the energy was drawn in",
    )
    source: Optional[Literal["grid", "renewable", "mixed"]] = Field(
        None, description="Supply mix",
    )

    model_config = {"extra": "forbid", "frozen": True}


class TransportMetadata(BaseModel):
    """Metadata for a travel activity."""
    distance_km: float = Field(..., gt=0, le=50_000, description="Distance travelled in km")
    mode: Literal["car", "bus", "rail", "short_haul_flight", "long_haul_flight"] = Field(
        "car", description="Transport mode",
    )
    passengers: int = Field(1, ge=1, le=1000, description="Travellers accounted for")

    model_config = {"extra": "forbid", "frozen": True}


class CommitMetadata(BaseModel):
    """Metadata for a commit and its CI run."""
    repository: Optional[str] = Field(None, description="Repository full name")
    files_changed: int = Field(0, ge=0, description="Files touched")
    lines_changed: int = Field(0, ge=0, description="Lines added plus removed")
    ci_duration_seconds: float = Field(0, ge=0, le=86400, description="CI runtime in seconds")

    model_config = {"extra": "forbid", "frozen": True}


class DeploymentMetadata(BaseModel):
    """Metadata for a deployment."""
    environment: Optional[str] = Field(None, description="Target environment")
    duration_seconds: float = Field(0, ge=0, le=86400, description="Rollout time in seconds")
    instance_count: int = Field(1, ge=1, le=10_000, description="Instances rolled out")

    model_config = {"extra": "forbid", "frozen": True}


class _ActivityBase(BaseModel):
    """Fields shared by every activity record."""
    timestamp: datetime = Field(..., description="When the activity happened")
    location: Optional[Location] = Field(None, description="Where the activity happened")

    model_config = {"extra": "forbid", "frozen": True}

    @field_validator("timestamp")
    @classmethod
    def timestamp_utc(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        return _ensure_utc(v)


class CloudComputeActivity(_ActivityBase):
    activity_type: Literal["cloud_compute"] = "cloud_compute"
    metadata: CloudComputeMetadata


class DataTransferActivity(_ActivityBase):
    activity_type: Literal["data_transfer"] = "data_transfer"
    metadata: DataTransferMetadata


class StorageActivity(_ActivityBase):
    activity_type: Literal["storage"] = "storage"
    metadata: StorageMetadata


class ElectricityActivity(_ActivityBase):
    activity_type: Literal["electricity"] = "electricity"
    metadata: ElectricityMetadata


class TransportActivity(_ActivityBase):
    activity_type: Literal["transport"] = "transport"
    metadata: TransportMetadata


class CommitActivity(_ActivityBase):
    activity_type: Literal["commit"] = "commit"
    metadata: CommitMetadata


class DeploymentActivity(_ActivityBase):
    activity_type: Literal["deployment"] = "deployment"
    metadata: DeploymentMetadata


ActivityRecord = Annotated[
    Union[
        CloudComputeActivity,
        DataTransferActivity,
        StorageActivity,
        ElectricityActivity,
        TransportActivity,
        CommitActivity,
        DeploymentActivity,
    ],
    Field(discriminator="activity_type"),
]

_ACTIVITY_ADAPTER: TypeAdapter = TypeAdapter(ActivityRecord)

_ACTIVITY_CLASSES = (
    CloudComputeActivity,
    DataTransferActivity,
    StorageActivity,
    ElectricityActivity,
    TransportActivity,
    CommitActivity,
    DeploymentActivity,
)


def parse_activity(payload: Any) -> ActivityRecord:
    """Validate a payload into a typed activity record.

    Args:
        payload: An activity model instance or a mapping with an
            ``activity_type`` key and type-specific ``metadata``.

    Returns:
        The matching activity model.

    Raises:
        InvalidActivity: If the payload does not describe a valid activity.
    """
    if isinstance(payload, _ACTIVITY_CLASSES):
        return payload
    try:
        return _ACTIVITY_ADAPTER.validate_python(payload)
    except PydanticValidationError as exc:
        invalid_fields = {
            ".".join(str(part) for part in err["loc"]) or "activity": err["msg"]
            for err in exc.errors()
        }
        raise InvalidActivity(
            message=f"Activity failed validation ({len(invalid_fields)} field(s))",
            component="parse_activity",
            invalid_fields=invalid_fields,
        ) from exc


# =============================================================================
# Emission Factor and Source Models
# =============================================================================


class EmissionFactor(BaseModel):
    """A coefficient from one source, valid over a time window."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Factor identifier")
    value: float = Field(..., description="Coefficient value")
    unit: str = Field(..., description="Unit of the coefficient (e.g. gCO2e/kWh)")
    source: str = Field(..., description="Publishing source")
    region: Optional[str] = Field(None, description="Zone the factor applies to")
    valid_from: datetime = Field(..., description="Start of the validity window")
    valid_until: Optional[datetime] = Field(None, description="End of the validity window")
    uncertainty: Optional[float] = Field(
        None, ge=0, le=1, description="Relative uncertainty (0.1 = +/-10%)",
    )

    model_config = {"extra": "forbid", "frozen": True}

    @field_validator("valid_from", "valid_until")
    @classmethod
    def window_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _ensure_utc(v) if v is not None else v


class DataSourceDescriptor(BaseModel):
    """Static description of an emission-factor source's trust weight."""
    name: str = Field(..., description="Source name")
    source_type: str = Field(..., description="grid_average, live_grid or cloud_provider")
    freshness: FreshnessClass = Field(..., description="Publication cadence")
    reliability: float = Field(..., ge=0, le=1, description="Trust weight in [0, 1]")
    geographic_coverage: List[str] = Field(
        default_factory=list, description="Covered zones or prefixes ('*' for global)",
    )

    model_config = {"extra": "forbid", "frozen": True}


class FactorReading(BaseModel):
    """One adapter answer: a factor plus the descriptor of its source."""
    factor: EmissionFactor
    descriptor: DataSourceDescriptor

    model_config = {"extra": "forbid", "frozen": True}


class SourceFetchResult(BaseModel):
    """Outcome of one source fan-out."""
    zone: str = Field(..., description="Zone that was queried")
    readings: List[FactorReading] = Field(default_factory=list, description="Successful answers")
    unavailable: List[str] = Field(default_factory=list, description="Sources that did not answer")
    elapsed_ms: float = Field(0.0, ge=0, description="Fan-out wall time in ms")

    model_config = {"extra": "forbid"}


class SourceHealth(BaseModel):
    """Circuit breaker snapshot for one source."""
    source: str
    state: CircuitState
    failure_count: int = 0
    trips: int = 0
    cooldown_seconds: float = 0.0
    retry_in_seconds: Optional[float] = Field(
        None, description="Seconds until a trial call is allowed (open state only)",
    )

    model_config = {"extra": "forbid"}


# =============================================================================
# Reconciliation Models
# =============================================================================


class CrossReference(BaseModel):
    """Comparison of two values from different sources or methods."""
    source: str = Field(..., description="What was compared (e.g. 'epa_egrid~live_grid')")
    expected_value: float
    actual_value: float
    variance_pct: float = Field(..., ge=0, description="Relative deviation in percent")
    status: PairClassification

    model_config = {"extra": "forbid"}


class ConfidenceAssessment(BaseModel):
    """Validation outcome of one reconciliation or validation pass."""
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0, le=1)
    cross_references: List[CrossReference] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


class ReconciliationResult(BaseModel):
    """Fused factor value plus the evidence behind its grade."""
    fused_value: float = Field(..., ge=0, description="Reliability-weighted intensity")
    unit: str = Field("gCO2e/kWh")
    grade: ConfidenceLevel
    assessment: ConfidenceAssessment
    max_deviation: float = Field(0.0, ge=0, description="Worst pairwise relative deviation")
    worst_classification: Optional[PairClassification] = None
    contributing_sources: List[str] = Field(default_factory=list)
    factors: List[EmissionFactor] = Field(default_factory=list)
    fallback_used: bool = False

    model_config = {"extra": "forbid"}


# =============================================================================
# Calculation Result Models
# =============================================================================


class CalculationMethodology(BaseModel):
    """Snapshot of the methodology a result was computed with."""
    name: str
    version: str
    emission_factors: List[EmissionFactor] = Field(default_factory=list)
    conversion_factors: Dict[str, float] = Field(default_factory=dict)
    assumptions: List[str] = Field(default_factory=list)
    standards: List[str] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


class AuditEntry(BaseModel):
    """One event in a calculation's audit trail."""
    timestamp: datetime = Field(default_factory=_utcnow)
    action: AuditAction
    details: Dict[str, Any] = Field(default_factory=dict)
    system_info: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}


class UncertaintyRange(BaseModel):
    lower: float = Field(..., ge=0)
    upper: float = Field(..., ge=0)

    model_config = {"extra": "forbid"}


class CalculationResult(BaseModel):
    """Carbon estimate for one activity.

    Owned by the calculation engine; the ledger only appends to
    ``audit_trail`` and the pipeline may lower ``confidence`` after
    cross-validation.
    """
    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    activity_type: ActivityType
    carbon_kg: float = Field(..., ge=0, description="Reported kgCO2e (bias applied)")
    base_carbon_kg: float = Field(..., ge=0, description="kgCO2e before the conservative bias")
    conservative_bias: float = Field(..., gt=0)
    confidence: ConfidenceLevel
    methodology: CalculationMethodology
    sources: List[str] = Field(default_factory=list)
    uncertainty_range: UncertaintyRange
    calculated_at: datetime = Field(default_factory=_utcnow)
    valid_until: datetime
    audit_trail: List[AuditEntry] = Field(default_factory=list)
    zone: str
    energy_kwh: Optional[float] = Field(None, ge=0, description="Energy estimate (None for transport)")
    carbon_intensity: Optional[float] = Field(None, ge=0, description="Effective gCO2e/kWh")
    assessment: Optional[ConfidenceAssessment] = None
    warnings: List[str] = Field(default_factory=list)
    provenance_hash: str = Field("", description="SHA-256 over inputs, factors and outputs")
    timings: Dict[str, float] = Field(default_factory=dict, description="Stage timings in ms")

    model_config = {"extra": "forbid"}


# =============================================================================
# SCI Models
# =============================================================================


class FunctionalUnitSpec(BaseModel):
    type: str = Field(..., description="vcpu_hours, megabytes, gb_hours or operation")
    value: float = Field(..., gt=0)
    unit: str
    description: str

    model_config = {"extra": "forbid"}


class SCIMethodology(BaseModel):
    temporal: Literal["real_time", "time_averaged"]
    marginal: bool
    location_based: bool = True

    model_config = {"extra": "forbid"}


class SCIComponents(BaseModel):
    operational: float = Field(..., ge=0, description="gCO2e")
    embodied: float = Field(..., ge=0, description="gCO2e")

    model_config = {"extra": "forbid"}


class EmbodiedBreakdown(BaseModel):
    """Embodied emissions (gCO2e) before the time share is applied."""
    servers: float = 0.0
    networking: float = 0.0
    storage: float = 0.0
    software: float = 0.0
    infrastructure: float = 0.0
    lifespan_years: int = 4
    utilization_rate: float = 0.65
    time_share: float = 1.0
    total: float = 0.0

    model_config = {"extra": "forbid"}


class SCICalculation(BaseModel):
    """Software Carbon Intensity score of one activity."""
    carbon_intensity: float = Field(..., ge=0, description="gCO2e/kWh used for operational")
    energy_consumption: float = Field(..., ge=0, description="kWh")
    embodied_emissions: float = Field(..., ge=0, description="gCO2e")
    functional_unit: float = Field(..., gt=0)
    functional_unit_spec: FunctionalUnitSpec
    sci_value: float = Field(..., ge=0, description="gCO2e per functional unit")
    sci_rating: SCIRating
    methodology: SCIMethodology
    components: SCIComponents
    embodied_breakdown: EmbodiedBreakdown

    model_config = {"extra": "forbid"}


class SCIComplianceReport(BaseModel):
    is_compliant: bool
    issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    compliance_score: float = Field(..., ge=0, le=1)

    model_config = {"extra": "forbid"}


# =============================================================================
# Cross-Validation Models
# =============================================================================


class ValidatorResult(BaseModel):
    """One alternative derivation compared with the primary result."""
    validator: str
    methodology: str
    value_kg: float = Field(..., ge=0)
    reference_kg: float = Field(..., ge=0, description="Primary result before bias")
    deviation: float = Field(..., ge=0)
    classification: PairClassification
    advisory: bool = Field(False, description="Reported only; excluded from agreement")

    model_config = {"extra": "forbid"}


class ConsensusRange(BaseModel):
    lower: float = Field(..., ge=0)
    upper: float = Field(..., ge=0)

    model_config = {"extra": "forbid"}


class CrossValidationReport(BaseModel):
    request_id: str
    agreement: Optional[float] = Field(
        None, ge=0, le=1, description="Share of validators that match or are close",
    )
    consensus_range: Optional[ConsensusRange] = None
    per_validator_results: List[ValidatorResult] = Field(default_factory=list)
    unavailable: List[str] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


# =============================================================================
# Ledger Models
# =============================================================================


class MethodologyChange(BaseModel):
    field: str
    previous_value: Any = None
    new_value: Any = None
    reason: str
    timestamp: datetime = Field(default_factory=_utcnow)

    model_config = {"extra": "forbid"}


class MethodologyVersion(BaseModel):
    """One version in the append-only methodology chain."""
    version: str = Field(..., pattern=r"^\d+\.\d+\.\d+$")
    methodology: CalculationMethodology
    created_at: datetime = Field(default_factory=_utcnow)
    created_by: str
    changes: List[MethodologyChange] = Field(default_factory=list)
    deprecated: bool = False
    superseded_by: Optional[str] = None
    provenance_hash: str = ""

    model_config = {"extra": "forbid"}


class PerformanceMetrics(BaseModel):
    calculation_time_ms: float = Field(0.0, ge=0)
    data_fetch_time_ms: float = Field(0.0, ge=0)
    validation_time_ms: float = Field(0.0, ge=0)
    total_time_ms: float = Field(0.0, ge=0)
    cache_hits: int = Field(0, ge=0)
    cache_misses: int = Field(0, ge=0)

    model_config = {"extra": "forbid"}


class AuditRecord(BaseModel):
    """Permanent record of one calculation."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime
    request_id: str
    activity_data: Dict[str, Any]
    calculation_result: CalculationResult
    validation_results: Optional[ConfidenceAssessment] = None
    performance_metrics: PerformanceMetrics
    system_info: Dict[str, Any] = Field(default_factory=dict)
    user_context: Optional[Dict[str, Any]] = None
    provenance_hash: str = ""

    model_config = {"extra": "forbid"}


class AuditQuery(BaseModel):
    """Filter and page over audit records (all filters optional)."""
    request_id: Optional[str] = None
    activity_type: Optional[ActivityType] = None
    user_id: Optional[str] = Field(None, description="'all' disables the filter")
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    confidence_level: Optional[ConfidenceLevel] = None
    min_carbon_kg: Optional[float] = Field(None, ge=0)
    max_carbon_kg: Optional[float] = Field(None, ge=0)
    offset: int = Field(0, ge=0)
    limit: int = Field(50, ge=1, le=1000)

    model_config = {"extra": "forbid"}

    @field_validator("start", "end")
    @classmethod
    def range_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _ensure_utc(v) if v is not None else v


class AuditQueryResult(BaseModel):
    records: List[AuditRecord] = Field(default_factory=list)
    total_count: int = 0
    has_more: bool = False

    model_config = {"extra": "forbid"}


class AuditStatistics(BaseModel):
    total_calculations: int = 0
    average_response_time_ms: float = 0.0
    confidence_distribution: Dict[str, int] = Field(default_factory=dict)
    activity_type_distribution: Dict[str, int] = Field(default_factory=dict)
    error_rate: float = Field(0.0, ge=0, le=1)
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    data_quality: Dict[str, int] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}


class LedgerWriteResult(BaseModel):
    """Result of a ledger write; ``error`` is set when persistence failed."""
    audit_id: Optional[str] = None
    error: Optional[str] = None

    model_config = {"extra": "forbid"}

    @property
    def persisted(self) -> bool:
        return self.audit_id is not None and self.error is None


# =============================================================================
# Pipeline Models
# =============================================================================


class CalculationOutcome(BaseModel):
    """Everything one pipeline run produced."""
    result: CalculationResult
    sci: Optional[SCICalculation] = None
    sci_compliance: Optional[SCIComplianceReport] = None
    cross_validation: Optional[CrossValidationReport] = None
    audit: LedgerWriteResult

    model_config = {"extra": "forbid"}


__all__ = [
    # Enumerations
    "ActivityType",
    "FreshnessClass",
    "FRESHNESS_MAX_AGE_HOURS",
    "PairClassification",
    "ConfidenceLevel",
    "SCIRating",
    "AuditAction",
    "CircuitState",
    # Activities
    "Coordinates",
    "Location",
    "CloudComputeMetadata",
    "DataTransferMetadata",
    "StorageMetadata",
    "ElectricityMetadata",
    "TransportMetadata",
    "CommitMetadata",
    "DeploymentMetadata",
    "CloudComputeActivity",
    "DataTransferActivity",
    "StorageActivity",
    "ElectricityActivity",
    "TransportActivity",
    "CommitActivity",
    "DeploymentActivity",
    "ActivityRecord",
    "parse_activity",
    # Factors
    "EmissionFactor",
    "DataSourceDescriptor",
    "FactorReading",
    "SourceFetchResult",
    "SourceHealth",
    # Reconciliation
    "CrossReference",
    "ConfidenceAssessment",
    "ReconciliationResult",
    # Results
    "CalculationMethodology",
    "AuditEntry",
    "UncertaintyRange",
    "CalculationResult",
    # SCI
    "FunctionalUnitSpec",
    "SCIMethodology",
    "SCIComponents",
    "EmbodiedBreakdown",
    "SCICalculation",
    "SCIComplianceReport",
    # Cross-validation
    "ValidatorResult",
    "ConsensusRange",
    "CrossValidationReport",
    # Ledger
    "MethodologyChange",
    "MethodologyVersion",
    "PerformanceMetrics",
    "AuditRecord",
    "AuditQuery",
    "AuditQueryResult",
    "AuditStatistics",
    "LedgerWriteResult",
    # Pipeline
    "CalculationOutcome",
]
