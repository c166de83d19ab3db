# -*- coding: utf-8 -*-
"""
Audit & Methodology Ledger - EcoTrace Carbon Calculation Pipeline

Owns the lifecycle of audit records and methodology versions:

- ``record_calculation`` appends one AuditRecord per calculation and never
  raises; persistence problems come back in ``LedgerWriteResult.error``.
- ``record_validation`` attaches a later-arriving validation assessment.
- Queries filter by request id, activity type, user, date range,
  confidence and carbon range, sorted newest first with offset/limit.
- Statistics report latency percentiles (nearest rank), distributions,
  error rate and data-quality buckets.
- Methodology versions form an append-only chain with exactly one
  active version. New versions bump the numerically highest version by
  the caller's bump class (patch by default) and supersede the current one.
- A periodic sweep purges records older than the retention window, then
  evicts the oldest records above the hard cap.

The in-memory index is authoritative for queries; the injected
``AuditStore`` mirrors records under ``audit_<id>`` and versions under
``methodology_<version>`` with its own TTL. Every write is also chained
in a ``ProvenanceTracker``.

Example:
    >>> ledger = AuditLedger()
    >>> write = await ledger.record_calculation(result.request_id, activity, result, metrics)
    >>> write.persisted
    True
    >>> ledger.get_next_version()
    '1.0.1'

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import asyncio
import logging
import math
import os
import platform
import socket
import uuid
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ecotrace import __version__
from ecotrace.carbon_calculation.audit_store import (
    AuditStore,
    InMemoryTTLStore,
    audit_key,
    methodology_key,
)
from ecotrace.carbon_calculation.calculation_engine import build_methodology
from ecotrace.carbon_calculation.config import CarbonCalculationConfig, get_config
from ecotrace.carbon_calculation.metrics import (
    record_ledger_failure,
    record_ledger_write,
    record_methodology_version,
    update_audit_record_count,
)
from ecotrace.carbon_calculation.models import (
    AuditAction,
    AuditEntry,
    AuditQuery,
    AuditQueryResult,
    AuditRecord,
    AuditStatistics,
    CalculationMethodology,
    CalculationResult,
    ConfidenceAssessment,
    ConfidenceLevel,
    LedgerWriteResult,
    MethodologyChange,
    MethodologyVersion,
    PerformanceMetrics,
)
from ecotrace.carbon_calculation.provenance import ProvenanceTracker, hash_payload
from ecotrace.exceptions import MethodologyError

logger = logging.getLogger(__name__)

INITIAL_VERSION = "1.0.0"
BUMP_CLASSES = ("patch", "minor", "major")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_version(version: str) -> Tuple[int, int, int]:
    """Parse ``MAJOR.MINOR.PATCH`` into an integer tuple.

    Raises:
        MethodologyError: Not a three-part numeric version.
    """
    parts = version.split(".")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        raise MethodologyError(
            f"Malformed methodology version '{version}'",
            component="AuditLedger",
            context={"version": version},
        )
    major, minor, patch = (int(p) for p in parts)
    return major, minor, patch


def next_version(versions: Sequence[str], bump: str = "patch") -> str:
    """Bump the numerically highest version.

    ``{1.0.0}`` gives ``1.0.1``; ``{1.2.5, 2.0.0}`` gives ``2.0.1``.
    """
    if bump not in BUMP_CLASSES:
        raise MethodologyError(
            f"Unknown version bump '{bump}' (expected one of {', '.join(BUMP_CLASSES)})",
            component="AuditLedger",
        )
    if not versions:
        return INITIAL_VERSION
    major, minor, patch = max(parse_version(v) for v in versions)
    if bump == "major":
        return f"{major + 1}.0.0"
    if bump == "minor":
        return f"{major}.{minor + 1}.0"
    return f"{major}.{minor}.{patch + 1}"


def nearest_rank(sorted_values: Sequence[float], percentile: float) -> float:
    """Nearest-rank percentile of an ascending sequence (0 when empty)."""
    if not sorted_values:
        return 0.0
    index = math.ceil(percentile / 100 * len(sorted_values)) - 1
    return sorted_values[min(max(index, 0), len(sorted_values) - 1)]


def _system_info() -> Dict[str, Any]:
    return {
        "version": __version__,
        "environment": os.environ.get("ECOTRACE_ENV", "development"),
        "python_version": platform.python_version(),
        "hostname": socket.gethostname(),
    }


class AuditLedger:
    """Append-only audit and methodology ledger.

    Attributes:
        config: Retention, capacity and sweep settings.
        store: Keyed mirror of records and versions.
        provenance: SHA-256 chain over every ledger write.
    """

    def __init__(
        self,
        config: Optional[CarbonCalculationConfig] = None,
        store: Optional[AuditStore] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config or get_config()
        self.store = store or InMemoryTTLStore(
            max_entries=self.config.store_max_entries,
            ttl_seconds=self.config.store_ttl_seconds,
        )
        self.provenance = ProvenanceTracker()
        self._clock = clock
        self._records: OrderedDict[str, AuditRecord] = OrderedDict()
        self._versions: Dict[str, MethodologyVersion] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

        initial = MethodologyVersion(
            version=INITIAL_VERSION,
            methodology=build_methodology(self.config, INITIAL_VERSION),
            created_at=self._clock(),
            created_by="system",
        )
        self._add_version(initial)
        logger.info(
            "AuditLedger initialized: retention=%dd, max_records=%d, methodology=%s",
            self.config.retention_days, self.config.max_audit_records, INITIAL_VERSION,
        )

    # ------------------------------------------------------------------
    # Calculation records
    # ------------------------------------------------------------------

    async def record_calculation(
        self,
        request_id: str,
        activity: Any,
        result: CalculationResult,
        performance_metrics: Optional[PerformanceMetrics] = None,
        user_context: Optional[Dict[str, Any]] = None,
    ) -> LedgerWriteResult:
        """Append an audit record for a finished calculation.

        Appends a CALCULATE entry to ``result.audit_trail`` and stores a
        copy of the result. Never raises.

        Returns:
            LedgerWriteResult; ``audit_id`` is set once the record is in
            the index, ``error`` when any step failed.
        """
        audit_id: Optional[str] = None
        try:
            audit_id = str(uuid.uuid4())
            timestamp = self._clock()
            activity_data = (
                activity.model_dump(mode="json") if hasattr(activity, "model_dump")
                else dict(activity)
            )
            system_info = _system_info()
            result.audit_trail.append(
                AuditEntry(
                    timestamp=timestamp,
                    action=AuditAction.CALCULATE,
                    details={
                        "audit_id": audit_id,
                        "request_id": request_id,
                        "methodology_version": result.methodology.version,
                    },
                    system_info={"version": system_info["version"], "request_id": request_id},
                )
            )
            record = AuditRecord(
                id=audit_id,
                timestamp=timestamp,
                request_id=request_id,
                activity_data=activity_data,
                calculation_result=result.model_copy(deep=True),
                performance_metrics=performance_metrics or PerformanceMetrics(),
                system_info=system_info,
                user_context=user_context,
            )
            record.provenance_hash = self.provenance.record(
                "calculation", audit_id,
                {"request_id": request_id, "result_hash": result.provenance_hash},
            )
            self._records[audit_id] = record
            update_audit_record_count(len(self._records))
        except Exception as exc:
            record_ledger_failure()
            logger.error(
                "Failed to index audit record for %s: %s", request_id, exc, exc_info=True,
            )
            return LedgerWriteResult(audit_id=None, error=str(exc))

        error = await self._persist(audit_key(audit_id), record)
        if error is None:
            record_ledger_write("calculation")
            logger.info(
                "Recorded calculation %s as %s: %.6f kgCO2e (%s)",
                request_id, audit_id, result.carbon_kg, result.confidence.value,
            )
        return LedgerWriteResult(audit_id=audit_id, error=error)

    async def record_validation(
        self,
        request_id: str,
        assessment: ConfidenceAssessment,
    ) -> LedgerWriteResult:
        """Attach a validation assessment to the latest record of a request."""
        record = self._latest_for_request(request_id)
        if record is None:
            logger.warning("No audit record for request %s; validation not attached", request_id)
            return LedgerWriteResult(error=f"No audit record for request {request_id}")

        try:
            record.validation_results = assessment
            record.calculation_result.audit_trail.append(
                AuditEntry(
                    timestamp=self._clock(),
                    action=AuditAction.VALIDATE,
                    details={
                        "is_valid": assessment.is_valid,
                        "confidence": assessment.confidence,
                        "warnings": len(assessment.warnings),
                    },
                )
            )
            self.provenance.record(
                "validation", record.id, assessment.model_dump(mode="json"),
            )
        except Exception as exc:
            record_ledger_failure()
            logger.error(
                "Failed to attach validation to %s: %s", record.id, exc, exc_info=True,
            )
            return LedgerWriteResult(audit_id=record.id, error=str(exc))

        error = await self._persist(audit_key(record.id), record)
        if error is None:
            record_ledger_write("validation")
        return LedgerWriteResult(audit_id=record.id, error=error)

    async def get_audit_record(self, audit_id: str) -> Optional[AuditRecord]:
        """Look up a record in the index, then in the store."""
        record = self._records.get(audit_id)
        if record is not None:
            return record
        try:
            stored = await self.store.get(audit_key(audit_id))
        except Exception as exc:
            logger.error("Audit store read failed for %s: %s", audit_id, exc)
            return None
        if stored is None:
            return None
        return AuditRecord.model_validate(stored)

    def query_audit_records(self, query: Optional[AuditQuery] = None) -> AuditQueryResult:
        """Filter, sort newest first and page over the index."""
        query = query or AuditQuery()
        matches = [
            (position, record)
            for position, record in enumerate(self._records.values())
            if self._matches(record, query)
        ]
        matches.sort(key=lambda item: (item[1].timestamp, item[0]), reverse=True)
        total = len(matches)
        page = [record for _, record in matches[query.offset:query.offset + query.limit]]
        return AuditQueryResult(
            records=page,
            total_count=total,
            has_more=query.offset + query.limit < total,
        )

    def get_audit_statistics(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> AuditStatistics:
        """Aggregate statistics over records in ``[start, end]``."""
        records = [
            r for r in self._records.values()
            if (start is None or r.timestamp >= start) and (end is None or r.timestamp <= end)
        ]
        total = len(records)
        if total == 0:
            return AuditStatistics()

        confidence: Dict[str, int] = {}
        activity_types: Dict[str, int] = {}
        errors = 0
        latencies: List[float] = []
        for record in records:
            grade = record.calculation_result.confidence.value
            confidence[grade] = confidence.get(grade, 0) + 1
            kind = record.calculation_result.activity_type.value
            activity_types[kind] = activity_types.get(kind, 0) + 1
            if record.validation_results is not None and not record.validation_results.is_valid:
                errors += 1
            latencies.append(record.performance_metrics.total_time_ms)
        latencies.sort()

        return AuditStatistics(
            total_calculations=total,
            average_response_time_ms=round(sum(latencies) / total, 2),
            confidence_distribution=confidence,
            activity_type_distribution=activity_types,
            error_rate=errors / total,
            p50_ms=nearest_rank(latencies, 50),
            p95_ms=nearest_rank(latencies, 95),
            p99_ms=nearest_rank(latencies, 99),
            data_quality={
                "high_confidence": (
                    confidence.get(ConfidenceLevel.HIGH.value, 0)
                    + confidence.get(ConfidenceLevel.VERY_HIGH.value, 0)
                ),
                "medium_confidence": confidence.get(ConfidenceLevel.MEDIUM.value, 0),
                "low_confidence": confidence.get(ConfidenceLevel.LOW.value, 0),
            },
        )

    # ------------------------------------------------------------------
    # Methodology versions
    # ------------------------------------------------------------------

    def get_next_version(self, bump: str = "patch") -> str:
        return next_version(list(self._versions), bump)

    async def create_methodology_version(
        self,
        methodology: CalculationMethodology,
        changes: Sequence[MethodologyChange],
        author: str,
        bump: str = "patch",
    ) -> MethodologyVersion:
        """Append a new version and supersede the current one.

        Args:
            methodology: New methodology; its ``version`` is overwritten.
            changes: What changed and why.
            author: Who made the change.
            bump: ``patch`` (default), ``minor`` or ``major``.

        Raises:
            MethodologyError: Unknown bump class.
        """
        version = self.get_next_version(bump)
        previous = self.get_current_methodology_version()
        snapshot = methodology.model_copy(deep=True, update={"version": version})

        created = MethodologyVersion(
            version=version,
            methodology=snapshot,
            created_at=self._clock(),
            created_by=author,
            changes=list(changes),
        )
        self._add_version(created)

        previous.deprecated = True
        previous.superseded_by = version
        await self._persist(methodology_key(previous.version), previous)
        if await self._persist(methodology_key(version), created) is None:
            record_ledger_write("methodology")

        logger.info(
            "Methodology %s created by %s (%d change(s)); %s superseded",
            version, author, len(created.changes), previous.version,
        )
        return created

    def get_methodology_version(self, version: str) -> Optional[MethodologyVersion]:
        return self._versions.get(version)

    def list_methodology_versions(self) -> List[MethodologyVersion]:
        """All versions, highest first."""
        return sorted(
            self._versions.values(), key=lambda v: parse_version(v.version), reverse=True,
        )

    def get_current_methodology_version(self) -> MethodologyVersion:
        """The single non-deprecated version."""
        for version in self.list_methodology_versions():
            if not version.deprecated:
                return version
        raise MethodologyError("No active methodology version", component="AuditLedger")

    async def deprecate_methodology_version(
        self,
        version: str,
        superseded_by: Optional[str] = None,
    ) -> MethodologyVersion:
        """Mark a version deprecated.

        The active version cannot be deprecated directly; create a new
        version to supersede it. Deprecated versions are never reactivated.

        Raises:
            MethodologyError: Unknown version or successor, or the version
                is the only active one.
        """
        target = self._versions.get(version)
        if target is None:
            raise MethodologyError(
                f"Unknown methodology version '{version}'",
                component="AuditLedger",
                context={"version": version},
            )
        if superseded_by is not None and superseded_by not in self._versions:
            raise MethodologyError(
                f"Unknown successor version '{superseded_by}'",
                component="AuditLedger",
                context={"version": version, "superseded_by": superseded_by},
            )
        if not target.deprecated:
            raise MethodologyError(
                f"Version {version} is the only active methodology; "
                "create a new version to supersede it",
                component="AuditLedger",
                context={"version": version},
            )
        if superseded_by is not None:
            target.superseded_by = superseded_by
            await self._persist(methodology_key(version), target)
        return target

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    async def cleanup(self) -> int:
        """Purge expired records, then evict the oldest above the cap.

        Returns:
            Number of records removed.
        """
        cutoff = self._clock() - timedelta(days=self.config.retention_days)
        expired = [aid for aid, r in self._records.items() if r.timestamp < cutoff]
        for audit_id in expired:
            del self._records[audit_id]

        evicted: List[str] = []
        excess = len(self._records) - self.config.max_audit_records
        if excess > 0:
            by_age = sorted(
                enumerate(self._records.items()),
                key=lambda item: (item[1][1].timestamp, item[0]),
            )
            evicted = [audit_id for _, (audit_id, _) in by_age[:excess]]
            for audit_id in evicted:
                del self._records[audit_id]

        for audit_id in expired + evicted:
            try:
                await self.store.delete(audit_key(audit_id))
            except Exception as exc:
                logger.error("Audit store delete failed for %s: %s", audit_id, exc)

        removed = len(expired) + len(evicted)
        update_audit_record_count(len(self._records))
        if removed:
            logger.info(
                "Audit cleanup removed %d record(s) (%d expired, %d over cap); %d remain",
                removed, len(expired), len(evicted), len(self._records),
            )
        return removed

    def start_cleanup_task(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())
        logger.info(
            "Audit cleanup scheduled every %ds", self.config.cleanup_interval_seconds,
        )

    async def stop_cleanup_task(self) -> None:
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        timestamps = sorted(r.timestamp for r in self._records.values())
        return {
            "total_records": len(self._records),
            "store_size": len(self.store) if hasattr(self.store, "__len__") else None,
            "methodology_versions": len(self._versions),
            "current_methodology": self.get_current_methodology_version().version,
            "oldest_record": timestamps[0].isoformat() if timestamps else None,
            "newest_record": timestamps[-1].isoformat() if timestamps else None,
            "provenance_entries": self.provenance.entry_count,
            "provenance_intact": self.provenance.verify_chain(),
            "cleanup_running": self._cleanup_task is not None and not self._cleanup_task.done(),
        }

    def __len__(self) -> int:
        return len(self._records)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _add_version(self, version: MethodologyVersion) -> None:
        version.provenance_hash = self.provenance.record(
            "methodology", version.version,
            {
                "methodology": hash_payload(version.methodology.model_dump(mode="json")),
                "created_by": version.created_by,
                "changes": [c.model_dump(mode="json") for c in version.changes],
            },
        )
        self._versions[version.version] = version
        record_methodology_version()

    async def _persist(self, key: str, model: Any) -> Optional[str]:
        try:
            await self.store.set(key, model.model_dump(mode="json"))
        except Exception as exc:
            record_ledger_failure()
            logger.error("Audit store write failed for %s: %s", key, exc, exc_info=True)
            return str(exc)
        return None

    def _latest_for_request(self, request_id: str) -> Optional[AuditRecord]:
        for record in reversed(self._records.values()):
            if record.request_id == request_id:
                return record
        return None

    @staticmethod
    def _matches(record: AuditRecord, query: AuditQuery) -> bool:
        result = record.calculation_result
        if query.request_id and record.request_id != query.request_id:
            return False
        if query.activity_type and result.activity_type != query.activity_type:
            return False
        if query.user_id and query.user_id != "all":
            if (record.user_context or {}).get("user_id") != query.user_id:
                return False
        if query.start and record.timestamp < query.start:
            return False
        if query.end and record.timestamp > query.end:
            return False
        if query.confidence_level and result.confidence != query.confidence_level:
            return False
        if query.min_carbon_kg is not None and result.carbon_kg < query.min_carbon_kg:
            return False
        if query.max_carbon_kg is not None and result.carbon_kg > query.max_carbon_kg:
            return False
        return True

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            try:
                await self.cleanup()
            except Exception:
                logger.error("Audit cleanup sweep failed", exc_info=True)


__all__ = [
    "AuditLedger",
    "next_version",
    "parse_version",
    "nearest_rank",
]
