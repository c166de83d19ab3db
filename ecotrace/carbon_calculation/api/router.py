# -*- coding: utf-8 -*-
"""
Carbon Calculation REST API Router - EcoTrace Carbon Calculation Pipeline

FastAPI router providing endpoints for carbon calculation, audit record
retrieval and statistics, methodology versioning and source health.

Endpoints:
    1.  POST /calculate                           - Calculate an activity
    2.  GET  /audit/{audit_id}                    - Get an audit record
    3.  GET  /audit                               - Query audit records
    4.  GET  /audit-statistics                    - Aggregate audit statistics
    5.  GET  /methodology                         - Current and all versions
    6.  GET  /methodology/{version}               - Get one version
    7.  POST /methodology                         - Create a new version
    8.  POST /methodology/{version}/deprecate     - Re-point a deprecated version
    9.  GET  /sources/health                      - Circuit breaker snapshots
    10. GET  /health                              - Service health

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from ecotrace.carbon_calculation.models import (
    ActivityType,
    AuditQuery,
    AuditQueryResult,
    AuditRecord,
    AuditStatistics,
    CalculationMethodology,
    CalculationOutcome,
    ConfidenceLevel,
    MethodologyChange,
    MethodologyVersion,
    SourceHealth,
)
from ecotrace.exceptions import CalculationUnavailable, InvalidActivity, MethodologyError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class CalculateRequest(BaseModel):
    """Activity payload plus optional correlation and caller details."""
    activity: Dict[str, Any] = Field(..., description="Activity record")
    request_id: Optional[str] = Field(None, description="Correlation id")
    user_context: Optional[Dict[str, Any]] = Field(None, description="Caller details")

    model_config = {"extra": "forbid"}


class MethodologyVersionRequest(BaseModel):
    methodology: CalculationMethodology
    changes: List[MethodologyChange] = Field(default_factory=list)
    author: str = Field(..., min_length=1)
    bump: Literal["patch", "minor", "major"] = "patch"

    model_config = {"extra": "forbid"}


class DeprecateRequest(BaseModel):
    superseded_by: Optional[str] = None

    model_config = {"extra": "forbid"}


class MethodologyListing(BaseModel):
    current: MethodologyVersion
    versions: List[MethodologyVersion]


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

router = APIRouter(
    prefix="/api/v1/carbon",
    tags=["Carbon Calculation"],
)


def _svc(request: Request) -> Any:
    """Get the CarbonCalculationService from the application state."""
    from ecotrace.carbon_calculation.setup import get_carbon_service
    try:
        return get_carbon_service(request.app)
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


# ---------------------------------------------------------------------------
# 1. POST /calculate - Calculate an activity
# ---------------------------------------------------------------------------


@router.post("/calculate", response_model=CalculationOutcome)
async def calculate(
    body: CalculateRequest = Body(...),
    service: Any = Depends(_svc),
) -> CalculationOutcome:
    """Calculate, score, cross-validate and audit one activity."""
    try:
        return await service.calculate(
            body.activity,
            request_id=body.request_id,
            user_context=body.user_context,
        )
    except InvalidActivity as exc:
        raise HTTPException(
            status_code=422,
            detail={"message": exc.message, "invalid_fields": exc.invalid_fields},
        )
    except CalculationUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))


# ---------------------------------------------------------------------------
# 2. GET /audit/{audit_id} - Get an audit record
# ---------------------------------------------------------------------------


@router.get("/audit/{audit_id}", response_model=AuditRecord)
async def get_audit_record(
    audit_id: str,
    service: Any = Depends(_svc),
) -> AuditRecord:
    record = await service.ledger.get_audit_record(audit_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Audit record {audit_id} not found")
    return record


# ---------------------------------------------------------------------------
# 3. GET /audit - Query audit records
# ---------------------------------------------------------------------------


@router.get("/audit", response_model=AuditQueryResult)
async def query_audit_records(
    request_id: Optional[str] = Query(None),
    activity_type: Optional[ActivityType] = Query(None),
    user_id: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    confidence_level: Optional[ConfidenceLevel] = Query(None),
    min_carbon_kg: Optional[float] = Query(None, ge=0),
    max_carbon_kg: Optional[float] = Query(None, ge=0),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=1000),
    service: Any = Depends(_svc),
) -> AuditQueryResult:
    """Filter audit records, newest first."""
    query = AuditQuery(
        request_id=request_id,
        activity_type=activity_type,
        user_id=user_id,
        start=start,
        end=end,
        confidence_level=confidence_level,
        min_carbon_kg=min_carbon_kg,
        max_carbon_kg=max_carbon_kg,
        offset=offset,
        limit=limit,
    )
    return service.ledger.query_audit_records(query)


# ---------------------------------------------------------------------------
# 4. GET /audit-statistics - Aggregate audit statistics
# ---------------------------------------------------------------------------


@router.get("/audit-statistics", response_model=AuditStatistics)
async def get_audit_statistics(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    service: Any = Depends(_svc),
) -> AuditStatistics:
    query = AuditQuery(start=start, end=end)
    return service.ledger.get_audit_statistics(query.start, query.end)


# ---------------------------------------------------------------------------
# 5. GET /methodology - Current and all versions
# ---------------------------------------------------------------------------


@router.get("/methodology", response_model=MethodologyListing)
async def list_methodology_versions(
    service: Any = Depends(_svc),
) -> MethodologyListing:
    return MethodologyListing(
        current=service.ledger.get_current_methodology_version(),
        versions=service.ledger.list_methodology_versions(),
    )


# ---------------------------------------------------------------------------
# 6. GET /methodology/{version} - Get one version
# ---------------------------------------------------------------------------


@router.get("/methodology/{version}", response_model=MethodologyVersion)
async def get_methodology_version(
    version: str,
    service: Any = Depends(_svc),
) -> MethodologyVersion:
    found = service.ledger.get_methodology_version(version)
    if found is None:
        raise HTTPException(status_code=404, detail=f"Methodology version {version} not found")
    return found


# ---------------------------------------------------------------------------
# 7. POST /methodology - Create a new version
# ---------------------------------------------------------------------------


@router.post("/methodology", response_model=MethodologyVersion, status_code=201)
async def create_methodology_version(
    body: MethodologyVersionRequest = Body(...),
    service: Any = Depends(_svc),
) -> MethodologyVersion:
    """Append a version; the previous active version is superseded."""
    try:
        return await service.ledger.create_methodology_version(
            body.methodology, body.changes, body.author, bump=body.bump,
        )
    except MethodologyError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


# ---------------------------------------------------------------------------
# 8. POST /methodology/{version}/deprecate - Re-point a deprecated version
# ---------------------------------------------------------------------------


@router.post("/methodology/{version}/deprecate", response_model=MethodologyVersion)
async def deprecate_methodology_version(
    version: str,
    body: Optional[DeprecateRequest] = Body(None),
    service: Any = Depends(_svc),
) -> MethodologyVersion:
    try:
        return await service.ledger.deprecate_methodology_version(
            version, superseded_by=body.superseded_by if body else None,
        )
    except MethodologyError as exc:
        status = 404 if service.ledger.get_methodology_version(version) is None else 409
        raise HTTPException(status_code=status, detail=str(exc))


# ---------------------------------------------------------------------------
# 9. GET /sources/health - Circuit breaker snapshots
# ---------------------------------------------------------------------------


@router.get("/sources/health", response_model=Dict[str, SourceHealth])
async def get_source_health(
    service: Any = Depends(_svc),
) -> Dict[str, SourceHealth]:
    return service.get_source_health()


# ---------------------------------------------------------------------------
# 10. GET /health - Service health
# ---------------------------------------------------------------------------


@router.get("/health")
async def health(service: Any = Depends(_svc)) -> Dict[str, Any]:
    metrics = service.get_metrics()
    return {
        "status": "healthy" if metrics["open_breakers"] < metrics["sources"] else "degraded",
        "service": "carbon-calculation",
        **metrics,
    }


__all__ = [
    "router",
]
