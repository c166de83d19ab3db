"""Tests for the emission-factor source adapters and the SourceHub fan-out."""

from datetime import datetime, timezone

import httpx
import pytest

from ecotrace.carbon_calculation.circuit_breaker import CircuitBreakerRegistry
from ecotrace.carbon_calculation.config import CarbonCalculationConfig
from ecotrace.carbon_calculation.models import CircuitState, FreshnessClass
from ecotrace.carbon_calculation.source_adapters import (
    CLOUD_ZONE_INTENSITY,
    CloudProviderAdapter,
    EPAGridAdapter,
    LiveGridAdapter,
    SourceHub,
)
from ecotrace.exceptions import SourceUnavailable

AS_OF = datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)


def _live_adapter(handler, api_key="token"):
    config = CarbonCalculationConfig(live_grid_api_key=api_key)
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url=config.live_grid_base_url,
    )
    return LiveGridAdapter(config, client=client)


class TestEPAGridAdapter:
    """Tests for the eGRID table adapter."""

    @pytest.mark.asyncio
    async def test_state_maps_to_subregion(self):
        factor = await EPAGridAdapter().get_factor("US-CA", AS_OF)

        assert factor.value == pytest.approx(244.73)
        assert factor.unit == "kgCO2e/MWh"
        assert factor.id == "egrid:CAMX:2026"
        assert factor.valid_from == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert factor.valid_until == datetime(2027, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_national_average(self):
        factor = await EPAGridAdapter().get_factor("US", AS_OF)
        assert factor.value == pytest.approx(371.24)

    @pytest.mark.asyncio
    async def test_outside_coverage(self):
        adapter = EPAGridAdapter()
        assert await adapter.get_factor("DE", AS_OF) is None
        assert await adapter.get_factor("US-ZZ", AS_OF) is None

    def test_descriptor(self):
        descriptor = EPAGridAdapter().descriptor
        assert descriptor.name == "epa_egrid"
        assert descriptor.freshness == FreshnessClass.ANNUALLY


class TestLiveGridAdapter:
    """Tests for the HTTP live grid adapter."""

    @pytest.mark.asyncio
    async def test_success(self):
        seen = {}

        def handler(request):
            seen["zone"] = request.url.params["zone"]
            seen["token"] = request.headers["auth-token"]
            return httpx.Response(
                200, json={"carbonIntensity": 212, "datetime": "2026-03-10T13:00:00Z"},
            )

        factor = await _live_adapter(handler).get_factor("US-CA", AS_OF)

        assert seen == {"zone": "US-CAL-CISO", "token": "token"}
        assert factor.value == 212
        assert factor.unit == "gCO2e/kWh"
        assert factor.valid_from == datetime(2026, 3, 10, 13, tzinfo=timezone.utc)
        assert factor.region == "US-CA"

    @pytest.mark.asyncio
    async def test_not_covered(self):
        adapter = _live_adapter(lambda request: httpx.Response(404))
        assert await adapter.get_factor("XX", AS_OF) is None

    @pytest.mark.asyncio
    async def test_server_error(self):
        adapter = _live_adapter(lambda request: httpx.Response(503))
        with pytest.raises(SourceUnavailable) as exc_info:
            await adapter.get_factor("DE", AS_OF)
        assert exc_info.value.source_name == "live_grid"

    @pytest.mark.asyncio
    async def test_malformed_payload(self):
        adapter = _live_adapter(lambda request: httpx.Response(200, json={"zone": "DE"}))
        with pytest.raises(SourceUnavailable):
            await adapter.get_factor("DE", AS_OF)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(SourceUnavailable):
            await _live_adapter(handler).get_factor("DE", AS_OF)

    @pytest.mark.asyncio
    async def test_disabled_without_api_key(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        adapter = _live_adapter(handler, api_key="")

        assert await adapter.get_factor("DE", AS_OF) is None
        assert calls == []


class TestCloudProviderAdapter:
    @pytest.mark.asyncio
    async def test_known_zone(self):
        factor = await CloudProviderAdapter().get_factor("US-VA", AS_OF)
        assert factor.value == pytest.approx(CLOUD_ZONE_INTENSITY["US-VA"])
        assert factor.source == "cloud_carbon_footprint"

    @pytest.mark.asyncio
    async def test_unknown_zone(self):
        assert await CloudProviderAdapter().get_factor("ZA", AS_OF) is None

    def test_coverage_lists_table(self):
        assert "DE" in CloudProviderAdapter().descriptor.geographic_coverage


class TestSourceHub:
    """Tests for concurrent fan-out with breakers."""

    @pytest.mark.asyncio
    async def test_collects_answers(self, config, static_adapter):
        adapters = [static_adapter("a", 100.0), static_adapter("b", 110.0)]
        hub = SourceHub(adapters, CircuitBreakerRegistry(config), config)

        result = await hub.fetch("DE", AS_OF)

        assert result.zone == "DE"
        assert sorted(r.descriptor.name for r in result.readings) == ["a", "b"]
        assert result.unavailable == []

    @pytest.mark.asyncio
    async def test_not_covered_is_not_unavailable(self, config, static_adapter):
        adapters = [static_adapter("a", 100.0, zones={"FR"})]
        breakers = CircuitBreakerRegistry(config)
        hub = SourceHub(adapters, breakers, config)

        result = await hub.fetch("DE", AS_OF)

        assert result.readings == []
        assert result.unavailable == []
        assert breakers.get("a").failure_count == 0

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, config, static_adapter):
        adapters = [static_adapter("ok", 100.0), static_adapter("down", 0, fail=True)]
        breakers = CircuitBreakerRegistry(config)
        hub = SourceHub(adapters, breakers, config)

        result = await hub.fetch("DE", AS_OF)

        assert [r.descriptor.name for r in result.readings] == ["ok"]
        assert result.unavailable == ["down"]
        assert breakers.get("down").failure_count == 1

    @pytest.mark.asyncio
    async def test_per_source_timeout(self, config, static_adapter):
        """A slow source is dropped and counted as a breaker failure."""
        adapters = [static_adapter("fast", 100.0), static_adapter("slow", 100.0, delay=2.0)]
        breakers = CircuitBreakerRegistry(config)
        hub = SourceHub(adapters, breakers, config)

        result = await hub.fetch("DE", AS_OF)

        assert [r.descriptor.name for r in result.readings] == ["fast"]
        assert result.unavailable == ["slow"]
        assert breakers.get("slow").failure_count == 1

    @pytest.mark.asyncio
    async def test_overall_deadline(self, static_adapter):
        config = CarbonCalculationConfig(source_timeout_seconds=5.0)
        adapters = [static_adapter("fast", 100.0), static_adapter("slow", 100.0, delay=1.0)]
        hub = SourceHub(adapters, CircuitBreakerRegistry(config), config)

        result = await hub.fetch("DE", AS_OF, deadline_seconds=0.1)

        assert [r.descriptor.name for r in result.readings] == ["fast"]
        assert result.unavailable == ["slow"]
        assert result.elapsed_ms < 1000

    @pytest.mark.asyncio
    async def test_open_breaker_short_circuits(self, static_adapter):
        config = CarbonCalculationConfig(breaker_failure_threshold=1)
        down = static_adapter("down", 0, fail=True)
        breakers = CircuitBreakerRegistry(config)
        hub = SourceHub([down], breakers, config)

        await hub.fetch("DE", AS_OF)
        assert breakers.get("down").state == CircuitState.OPEN

        result = await hub.fetch("DE", AS_OF)

        assert result.unavailable == ["down"]
        assert down.calls == 1

    @pytest.mark.asyncio
    async def test_aclose_closes_adapters(self, config, static_adapter):
        adapters = [static_adapter("a", 1.0), static_adapter("b", 1.0)]
        await SourceHub(adapters, CircuitBreakerRegistry(config), config).aclose()
        assert all(a.closed for a in adapters)
