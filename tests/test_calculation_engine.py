"""
Calculation Engine Tests

This test suite validates:
- Energy models per activity type
- Conservative bias and uncertainty range
- Zone resolution and source warnings
- Fallback to static regional averages
- Determinism of the provenance hash
- Edge cases (zero usage, stale activity, implausible results)
"""

from datetime import datetime, timedelta, timezone

import pytest

from ecotrace.carbon_calculation.calculation_engine import (
    CalculationEngine,
    build_methodology,
)
from ecotrace.carbon_calculation.circuit_breaker import CircuitBreakerRegistry
from ecotrace.carbon_calculation.config import CarbonCalculationConfig
from ecotrace.carbon_calculation.models import (
    ActivityType,
    AuditAction,
    ConfidenceLevel,
    parse_activity,
)
from ecotrace.carbon_calculation.source_adapters import SourceHub
from ecotrace.exceptions import InvalidActivity

ACTIVITY_TIME = datetime.now(timezone.utc).isoformat()


class TestEnergyModels:
    """Tests for estimate_energy and its helpers."""

    def test_cloud_compute(self, compute_payload):
        activity = parse_activity(compute_payload)
        # (4 x 2.12 W + 4 GB x 0.38 W) x 1 h x PUE 1.135
        assert CalculationEngine.estimate_energy(activity) == pytest.approx(0.01135)

    def test_instance_type_memory(self):
        assert CalculationEngine.memory_gb(None, "m5.xlarge") == 16.0
        assert CalculationEngine.memory_gb(None, "custom") == 4.0
        assert CalculationEngine.memory_gb(2.5, "m5.xlarge") == 2.5

    def test_data_transfer(self):
        activity = parse_activity({
            "activity_type": "data_transfer",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"bytes_transferred": 2_000_000_000, "network_type": "cdn"},
        })
        assert CalculationEngine.estimate_energy(activity) == pytest.approx(0.02)

    def test_storage(self):
        activity = parse_activity({
            "activity_type": "storage",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"storage_type": "ssd", "size_gb": 100, "duration": 7200},
        })
        assert CalculationEngine.estimate_energy(activity) == pytest.approx(100 * 2 * 1.2e-6)

    def test_commit(self):
        activity = parse_activity({
            "activity_type": "commit",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"lines_changed": 200, "ci_duration_seconds": 1800},
        })
        assert CalculationEngine.estimate_energy(activity) == pytest.approx(0.0002 + 0.0002 + 0.05)

    def test_deployment(self):
        activity = parse_activity({
            "activity_type": "deployment",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"duration_seconds": 900, "instance_count": 4},
        })
        assert CalculationEngine.estimate_energy(activity) == pytest.approx(0.01 + 0.25 * 0.2 * 4)

    def test_electricity_intensity_adjustments(self):
        activity = parse_activity({
            "activity_type": "electricity",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"kwh_consumed": 5, "time_of_day": "peak", "source": "mixed"},
        })
        assert CalculationEngine.estimate_energy(activity) == 5
        assert CalculationEngine.effective_intensity(activity, 100) == pytest.approx(100 * 1.2 * 0.7)

    def test_transport(self):
        car = parse_activity({
            "activity_type": "transport",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"distance_km": 100, "mode": "car", "passengers": 3},
        })
        rail = parse_activity({
            "activity_type": "transport",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"distance_km": 100, "mode": "rail", "passengers": 3},
        })
        assert CalculationEngine.transport_kg(car) == pytest.approx(17.1)
        assert CalculationEngine.transport_kg(rail) == pytest.approx(10.5)


class TestCalculate:
    """Tests for the full calculate() flow."""

    @pytest.mark.asyncio
    async def test_bias_and_range(self, engine, compute_payload):
        result = await engine.calculate(compute_payload)

        assert result.carbon_kg == pytest.approx(result.base_carbon_kg * 1.15)
        assert result.uncertainty_range.lower <= result.carbon_kg <= result.uncertainty_range.upper
        assert result.conservative_bias == pytest.approx(1.15)

    @pytest.mark.asyncio
    async def test_compute_result(self, engine, compute_payload):
        """us-east-1 resolves to US-VA; two matching sources grade very high."""
        result = await engine.calculate(compute_payload)

        fused = (400 * 0.95 + 404 * 0.9) / 1.85
        assert result.zone == "US-VA"
        assert result.activity_type == ActivityType.CLOUD_COMPUTE
        assert result.energy_kwh == pytest.approx(0.01135)
        assert result.carbon_intensity == pytest.approx(fused)
        assert result.base_carbon_kg == pytest.approx(0.01135 * fused / 1000)
        assert result.confidence == ConfidenceLevel.VERY_HIGH
        assert result.sources == ["grid_a", "grid_b"]
        assert not any(w.startswith("MISSING_LOCATION") for w in result.warnings)

    @pytest.mark.asyncio
    async def test_bias_scales_exactly(self, resolver, confidence_engine,
                                       static_adapter, electricity_payload):
        results = []
        for bias in (1.0, 1.15, 1.3):
            config = CarbonCalculationConfig(conservative_bias=bias)
            hub = SourceHub(
                [static_adapter("a", 300.0), static_adapter("b", 301.0)],
                CircuitBreakerRegistry(config), config,
            )
            engine = CalculationEngine(resolver, hub, confidence_engine, config)
            results.append(await engine.calculate(electricity_payload))

        base = results[0].carbon_kg
        assert results[1].carbon_kg == pytest.approx(base * 1.15)
        assert results[2].carbon_kg == pytest.approx(base * 1.3)
        assert {r.base_carbon_kg for r in results} == {results[0].base_carbon_kg}

    @pytest.mark.asyncio
    async def test_method_confidence_widens_band(self, engine, compute_payload):
        """A rougher energy model keeps the source grade but widens the range."""
        compute = await engine.calculate(compute_payload)
        commit = await engine.calculate({
            "activity_type": "commit",
            "timestamp": ACTIVITY_TIME,
            "location": {"country": "DE"},
            "metadata": {"lines_changed": 50},
        })

        assert commit.confidence == ConfidenceLevel.VERY_HIGH
        # max(floor 0.05, factor uncertainty 0.05) + (1 - method confidence)
        assert compute.uncertainty_range.upper == pytest.approx(compute.carbon_kg * 1.15)
        assert commit.uncertainty_range.upper == pytest.approx(commit.carbon_kg * 1.35)

    @pytest.mark.asyncio
    async def test_missing_location_warning(self, engine):
        result = await engine.calculate({
            "activity_type": "electricity",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"kwh_consumed": 1},
        })
        assert result.zone == "WORLD"
        assert any(w.startswith("MISSING_LOCATION") for w in result.warnings)

    @pytest.mark.asyncio
    async def test_stale_activity_warning(self, engine, electricity_payload):
        electricity_payload["timestamp"] = (
            datetime.now(timezone.utc) - timedelta(days=45)
        ).isoformat()
        result = await engine.calculate(electricity_payload)
        assert any(w.startswith("STALE_ACTIVITY") for w in result.warnings)

    @pytest.mark.asyncio
    async def test_fallback_when_sources_down(self, make_engine, static_adapter, electricity_payload):
        engine = make_engine([static_adapter("down", 0, fail=True)])

        result = await engine.calculate(electricity_payload)

        assert result.confidence == ConfidenceLevel.LOW
        assert result.sources == ["regional_average:DE"]
        assert result.carbon_intensity == pytest.approx(338.45)
        assert "SOURCE_UNAVAILABLE: down" in result.warnings
        assert "FALLBACK_REGIONAL_AVERAGE: DE" in result.warnings
        assert result.valid_until - result.calculated_at == timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_valid_until_follows_factor_expiry(self, engine, electricity_payload):
        result = await engine.calculate(electricity_payload)
        assert result.calculated_at <= result.valid_until
        assert result.valid_until - result.calculated_at <= timedelta(hours=2, seconds=5)

    @pytest.mark.asyncio
    async def test_zero_usage_is_zero(self, engine):
        result = await engine.calculate({
            "activity_type": "data_transfer",
            "timestamp": ACTIVITY_TIME,
            "location": {"country": "GB"},
            "metadata": {"bytes_transferred": 0},
        })
        assert result.carbon_kg == 0
        assert result.uncertainty_range.lower == 0
        assert result.uncertainty_range.upper == 0

    @pytest.mark.asyncio
    async def test_out_of_range_warning(self, engine):
        result = await engine.calculate({
            "activity_type": "electricity",
            "timestamp": ACTIVITY_TIME,
            "location": {"country": "DE"},
            "metadata": {"kwh_consumed": 1000},
        })
        assert any(w.startswith("RESULT_OUT_OF_RANGE") for w in result.warnings)

    @pytest.mark.asyncio
    async def test_transport_skips_sources(self, engine, agreeing_adapters):
        result = await engine.calculate({
            "activity_type": "transport",
            "timestamp": ACTIVITY_TIME,
            "location": {"country": "GB"},
            "metadata": {"distance_km": 10, "mode": "bus"},
        })

        assert result.sources == ["transport_emission_factors"]
        assert result.energy_kwh is None
        assert result.confidence == ConfidenceLevel.LOW
        assert result.base_carbon_kg == pytest.approx(0.97)
        assert all(adapter.calls == 0 for adapter in agreeing_adapters)

    @pytest.mark.asyncio
    async def test_invalid_activity_before_any_fetch(self, engine, agreeing_adapters):
        with pytest.raises(InvalidActivity):
            await engine.calculate({"activity_type": "storage", "metadata": {"size_gb": -1}})
        assert all(adapter.calls == 0 for adapter in agreeing_adapters)

    @pytest.mark.asyncio
    async def test_audit_entry_and_methodology(self, engine, electricity_payload):
        result = await engine.calculate(electricity_payload, request_id="req-1")

        assert result.request_id == "req-1"
        assert [e.action for e in result.audit_trail] == [AuditAction.UPDATE_SOURCES]
        assert result.audit_trail[0].details["zone"] == "DE"
        assert result.methodology.version == "1.0.0"
        assert len(result.methodology.emission_factors) == 2
        assert set(result.timings) == {"calculation_time_ms", "data_fetch_time_ms"}

    @pytest.mark.asyncio
    async def test_supplied_methodology_is_stamped(self, engine, config, electricity_payload):
        methodology = build_methodology(config, "2.0.0")
        result = await engine.calculate(electricity_payload, methodology=methodology)
        assert result.methodology.version == "2.0.0"
        assert methodology.emission_factors == []

    @pytest.mark.asyncio
    async def test_provenance_is_deterministic(self, engine, electricity_payload):
        """Identical inputs and factors produce identical figures and hashes."""
        electricity_payload["timestamp"] = datetime.now(timezone.utc).isoformat()
        first = await engine.calculate(electricity_payload)
        second = await engine.calculate(electricity_payload)

        assert first.carbon_kg == second.carbon_kg
        assert first.provenance_hash == second.provenance_hash
        assert len(first.provenance_hash) == 64
        assert first.request_id != second.request_id


class TestMultiSourceScenarios:
    """Two storage sources end to end through calculate()."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("storage_type", ["ssd", "hdd", "object", "archive"])
    async def test_matching_sources_grade_high(self, make_engine, static_adapter,
                                               storage_payload, storage_type):
        engine = make_engine([
            static_adapter("a", 120.0, reliability=0.95),
            static_adapter("b", 122.0, reliability=0.95),
        ])
        storage_payload["metadata"]["storage_type"] = storage_type

        result = await engine.calculate(storage_payload)

        assert result.confidence in (ConfidenceLevel.HIGH, ConfidenceLevel.VERY_HIGH)
        assert result.sources == ["a", "b"]
        assert result.carbon_intensity == pytest.approx(121.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("storage_type", ["ssd", "hdd", "object", "archive"])
    async def test_failed_pair_grades_low(self, make_engine, static_adapter,
                                          storage_payload, storage_type):
        engine = make_engine([
            static_adapter("a", 120.0, reliability=0.95),
            static_adapter("b", 200.0, reliability=0.95),
        ])
        storage_payload["metadata"]["storage_type"] = storage_type

        result = await engine.calculate(storage_payload)

        assert result.confidence == ConfidenceLevel.LOW

    @pytest.mark.asyncio
    async def test_transport_without_sources_is_low(self, make_engine):
        engine = make_engine([])

        result = await engine.calculate({
            "activity_type": "transport",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"distance_km": 10, "mode": "rail"},
        })

        assert result.confidence == ConfidenceLevel.LOW
        assert result.base_carbon_kg == pytest.approx(0.35)
        assert result.uncertainty_range.lower <= result.carbon_kg <= result.uncertainty_range.upper


class TestMethodology:
    def test_build_methodology(self):
        methodology = build_methodology(CarbonCalculationConfig(conservative_bias=1.2), "1.0.3")

        assert methodology.version == "1.0.3"
        assert methodology.assumptions[0] == "Conservative estimation bias applied (+20%)"
        assert methodology.conversion_factors["conservative_bias"] == pytest.approx(1.2)
        assert "GHG_Protocol" in methodology.standards
