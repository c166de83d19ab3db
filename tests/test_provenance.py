"""Tests for the ledger provenance chain and the Prometheus helpers."""

import json

import pytest
from prometheus_client import REGISTRY

from ecotrace.carbon_calculation.metrics import (
    record_ledger_failure,
    record_pair_classification,
    record_source_request,
)
from ecotrace.carbon_calculation.provenance import ProvenanceTracker, hash_payload


class TestHashPayload:
    def test_key_order_is_irrelevant(self):
        assert hash_payload({"a": 1, "b": 2}) == hash_payload({"b": 2, "a": 1})

    def test_different_payloads_differ(self):
        assert hash_payload({"carbon_kg": 0.4}) != hash_payload({"carbon_kg": 0.41})

    def test_hex_sha256(self):
        assert len(hash_payload("x")) == 64


class TestProvenanceTracker:
    """Tests for chain hashing."""

    def test_chain_links(self):
        tracker = ProvenanceTracker()
        first = tracker.record("calculation", "audit-1", {"carbon_kg": 0.4})
        second = tracker.record("validation", "audit-1", {"is_valid": True})

        assert first != second
        assert tracker.last_chain_hash == second
        assert tracker.entry_count == 2
        assert tracker.verify_chain()

    def test_same_events_same_chain(self):
        a, b = ProvenanceTracker(), ProvenanceTracker()
        for tracker in (a, b):
            tracker.record("methodology", "1.0.0", {"version": "1.0.0"})
        assert a.last_chain_hash == b.last_chain_hash

    def test_tampering_is_detected(self):
        tracker = ProvenanceTracker()
        tracker.record("calculation", "audit-1", {"carbon_kg": 0.4})
        tracker.record("calculation", "audit-2", {"carbon_kg": 0.5})

        tracker.get_entries()[0].entry_hash = hash_payload("forged")

        assert not tracker.verify_chain()

    def test_filters_and_export(self):
        tracker = ProvenanceTracker()
        tracker.record("calculation", "audit-1", {})
        tracker.record("methodology", "1.0.1", {})

        assert [e.subject_id for e in tracker.get_entries(kind="methodology")] == ["1.0.1"]
        assert len(tracker.get_entries(subject_id="audit-1")) == 1
        exported = json.loads(tracker.export_json())
        assert [e["kind"] for e in exported] == ["calculation", "methodology"]


class TestMetrics:
    """The helpers increment the registered collectors."""

    @staticmethod
    def _value(name, labels=None):
        return REGISTRY.get_sample_value(name, labels or {}) or 0.0

    def test_source_request_counter(self):
        labels = {"source": "metrics_probe", "outcome": "timeout"}
        before = self._value("ecotrace_carbon_source_requests_total", labels)
        record_source_request("metrics_probe", "timeout")
        assert self._value("ecotrace_carbon_source_requests_total", labels) == before + 1

    def test_pair_classification_counter(self):
        labels = {"classification": "divergent"}
        before = self._value("ecotrace_carbon_pair_classifications_total", labels)
        record_pair_classification("divergent")
        assert self._value("ecotrace_carbon_pair_classifications_total", labels) == before + 1

    def test_ledger_failure_counter(self):
        before = self._value("ecotrace_carbon_ledger_write_failures_total")
        record_ledger_failure()
        assert self._value("ecotrace_carbon_ledger_write_failures_total") == pytest.approx(before + 1)
