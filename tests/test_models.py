"""Tests for the carbon calculation data models and activity parsing."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from ecotrace.carbon_calculation.models import (
    AuditQuery,
    CloudComputeActivity,
    ConfidenceLevel,
    ElectricityActivity,
    LedgerWriteResult,
    Location,
    MethodologyVersion,
    PairClassification,
    TransportActivity,
    parse_activity,
)
from ecotrace.carbon_calculation.calculation_engine import build_methodology
from ecotrace.exceptions import InvalidActivity

ACTIVITY_TIME = datetime.now(timezone.utc).isoformat()


class TestParseActivity:
    """Tests for parse_activity."""

    def test_dispatches_on_activity_type(self, compute_payload):
        activity = parse_activity(compute_payload)

        assert isinstance(activity, CloudComputeActivity)
        assert activity.metadata.vcpu_count == 4
        assert activity.metadata.provider == "aws"

    def test_model_instance_passes_through(self, electricity_payload):
        activity = parse_activity(electricity_payload)
        assert parse_activity(activity) is activity

    def test_transport(self):
        activity = parse_activity({
            "activity_type": "transport",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"distance_km": 120, "mode": "rail", "passengers": 2},
        })
        assert isinstance(activity, TransportActivity)

    def test_unknown_activity_type(self):
        with pytest.raises(InvalidActivity) as exc_info:
            parse_activity({"activity_type": "mining", "metadata": {}})
        assert exc_info.value.invalid_fields

    def test_out_of_range_field_is_reported(self, compute_payload):
        """The offending field path is named."""
        compute_payload["metadata"]["duration"] = 100000

        with pytest.raises(InvalidActivity) as exc_info:
            parse_activity(compute_payload)

        assert any("duration" in key for key in exc_info.value.invalid_fields)

    def test_metadata_must_match_type(self):
        with pytest.raises(InvalidActivity):
            parse_activity({
                "activity_type": "electricity",
                "timestamp": ACTIVITY_TIME,
                "metadata": {"bytes_transferred": 10},
            })

    def test_extra_fields_rejected(self, electricity_payload):
        electricity_payload["metadata"]["colour"] = "green"
        with pytest.raises(InvalidActivity):
            parse_activity(electricity_payload)

    def test_naive_timestamp_is_utc(self, electricity_payload):
        electricity_payload["timestamp"] = "2026-01-15T10:00:00"
        activity = parse_activity(electricity_payload)
        assert activity.timestamp == datetime(2026, 1, 15, 10, tzinfo=timezone.utc)

    def test_timestamp_is_required(self, electricity_payload):
        assert isinstance(parse_activity(electricity_payload), ElectricityActivity)

        del electricity_payload["timestamp"]
        with pytest.raises(InvalidActivity) as exc_info:
            parse_activity(electricity_payload)

        assert any("timestamp" in key for key in exc_info.value.invalid_fields)


class TestLocation:
    def test_country_normalized(self):
        assert Location(country=" de ").country == "DE"

    def test_coordinates_validated(self):
        with pytest.raises(ValidationError):
            Location(country="US", coordinates={"latitude": 95, "longitude": 0})


class TestEnums:
    def test_confidence_downgrade(self):
        assert ConfidenceLevel.VERY_HIGH.downgrade() == ConfidenceLevel.HIGH
        assert ConfidenceLevel.MEDIUM.downgrade() == ConfidenceLevel.LOW
        assert ConfidenceLevel.LOW.downgrade() == ConfidenceLevel.LOW

    def test_confidence_rank_order(self):
        ranks = [level.rank for level in (
            ConfidenceLevel.LOW, ConfidenceLevel.MEDIUM,
            ConfidenceLevel.HIGH, ConfidenceLevel.VERY_HIGH,
        )]
        assert ranks == sorted(ranks)

    def test_pair_severity(self):
        assert PairClassification.MATCH.severity < PairClassification.CLOSE.severity
        assert PairClassification.DIVERGENT.severity < PairClassification.FAILED.severity


class TestLedgerModels:
    def test_write_result_persisted(self):
        assert LedgerWriteResult(audit_id="a").persisted
        assert not LedgerWriteResult(audit_id="a", error="store down").persisted
        assert not LedgerWriteResult(error="nothing written").persisted

    def test_methodology_version_pattern(self):
        with pytest.raises(ValidationError):
            MethodologyVersion(
                version="v1", methodology=build_methodology(), created_by="system",
            )

    def test_audit_query_limits(self):
        with pytest.raises(ValidationError):
            AuditQuery(limit=0)
        with pytest.raises(ValidationError):
            AuditQuery(offset=-1)

    def test_audit_query_naive_range_is_utc(self):
        query = AuditQuery(start=datetime(2026, 1, 1))
        assert query.start.tzinfo is not None
