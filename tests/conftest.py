# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures for the carbon calculation tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from ecotrace.carbon_calculation.audit_ledger import AuditLedger
from ecotrace.carbon_calculation.audit_store import AuditStore
from ecotrace.carbon_calculation.calculation_engine import CalculationEngine
from ecotrace.carbon_calculation.circuit_breaker import CircuitBreakerRegistry
from ecotrace.carbon_calculation.confidence_engine import ConfidenceEngine
from ecotrace.carbon_calculation.config import CarbonCalculationConfig, reset_config
from ecotrace.carbon_calculation.cross_validation import CrossValidator
from ecotrace.carbon_calculation.geographic_resolver import GeographicResolver
from ecotrace.carbon_calculation.models import (
    DataSourceDescriptor,
    EmissionFactor,
    FreshnessClass,
)
from ecotrace.carbon_calculation.pipeline import CarbonPipeline
from ecotrace.carbon_calculation.sci_calculator import SCICalculator
from ecotrace.carbon_calculation.source_adapters import SourceAdapter, SourceHub
from ecotrace.exceptions import LedgerError, SourceUnavailable


# ==================== TEST DOUBLES ====================


class StaticAdapter(SourceAdapter):
    """Adapter answering a fixed value for every zone (or a chosen few)."""

    def __init__(
        self,
        name: str,
        value: float,
        unit: str = "gCO2e/kWh",
        reliability: float = 0.9,
        freshness: FreshnessClass = FreshnessClass.HOURLY,
        zones: Optional[set] = None,
        delay: float = 0.0,
        fail: bool = False,
        age: timedelta = timedelta(0),
        uncertainty: Optional[float] = 0.05,
    ) -> None:
        self.descriptor = DataSourceDescriptor(
            name=name,
            source_type="test",
            freshness=freshness,
            reliability=reliability,
            geographic_coverage=sorted(zones) if zones else ["*"],
        )
        self.value = value
        self.unit = unit
        self.zones = zones
        self.delay = delay
        self.fail = fail
        self.age = age
        self.uncertainty = uncertainty
        self.calls = 0
        self.closed = False

    async def get_factor(self, zone, as_of):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise SourceUnavailable(f"{self.name} is down", source_name=self.name)
        if self.zones is not None and zone not in self.zones:
            return None
        observed = as_of - self.age
        return EmissionFactor(
            id=f"{self.name}:{zone}",
            value=self.value,
            unit=self.unit,
            source=self.name,
            region=zone,
            valid_from=observed,
            valid_until=observed + timedelta(hours=2),
            uncertainty=self.uncertainty,
        )

    async def aclose(self):
        self.closed = True


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStore(AuditStore):
    """Store whose writes always fail."""

    async def get(self, key):
        return None

    async def set(self, key, value, ttl_seconds=None):
        raise LedgerError("disk full", component="FailingStore")

    async def delete(self, key):
        return False

    async def keys(self, prefix=""):
        return []


class LedgerClock:
    """UTC wall clock advanced by hand, for retention tests."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ==================== FIXTURES ====================


@pytest.fixture(autouse=True)
def _reset_config_singleton():
    """Keep tests independent of the process-wide config singleton."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config():
    """Default configuration with fast deadlines."""
    return CarbonCalculationConfig(
        source_timeout_seconds=0.5,
        calculation_deadline_seconds=1.0,
        cleanup_interval_seconds=3600,
    )


@pytest.fixture
def static_adapter():
    """Factory for StaticAdapter instances."""
    return StaticAdapter


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def ledger_clock():
    return LedgerClock()


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def confidence_engine(config):
    return ConfidenceEngine(config)


@pytest.fixture
def resolver(config):
    return GeographicResolver(config)


@pytest.fixture
def agreeing_adapters():
    """Two reliable sources within 2% of each other."""
    return [
        StaticAdapter("grid_a", 400.0, reliability=0.95),
        StaticAdapter("grid_b", 404.0, reliability=0.9),
    ]


@pytest.fixture
def make_engine(config, resolver, confidence_engine):
    """Build a CalculationEngine over the given adapters."""

    def _make(adapters, breakers=None):
        breakers = breakers or CircuitBreakerRegistry(config)
        hub = SourceHub(adapters, breakers, config)
        return CalculationEngine(resolver, hub, confidence_engine, config)

    return _make


@pytest.fixture
def engine(make_engine, agreeing_adapters):
    return make_engine(agreeing_adapters)


@pytest.fixture
def ledger(config):
    return AuditLedger(config)


@pytest.fixture
def pipeline(config, engine, confidence_engine, ledger):
    return CarbonPipeline(
        engine,
        SCICalculator(config),
        CrossValidator(confidence_engine, config=config),
        ledger,
        config,
    )


@pytest.fixture
def compute_payload():
    """4 vCPU for one hour in aws us-east-1."""
    return {
        "activity_type": "cloud_compute",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "metadata": {
            "provider": "aws",
            "region": "us-east-1",
            "vcpu_count": 4,
            "duration": 3600,
        },
    }


@pytest.fixture
def electricity_payload():
    return {
        "activity_type": "electricity",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "location": {"country": "DE"},
        "metadata": {"kwh_consumed": 10.0},
    }


@pytest.fixture
def storage_payload():
    """100 GB of SSD for one hour in Germany."""
    return {
        "activity_type": "storage",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "location": {"country": "DE"},
        "metadata": {"storage_type": "ssd", "size_gb": 100, "duration": 3600},
    }
