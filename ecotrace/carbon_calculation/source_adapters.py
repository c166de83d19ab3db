# -*- coding: utf-8 -*-
"""
Emission-Factor Source Adapters - EcoTrace Carbon Calculation Pipeline

Each adapter wraps one external data source behind a uniform contract::

    await adapter.get_factor(zone, as_of) -> EmissionFactor | None

``None`` means the zone is not covered by the source. Upstream failures
raise ``SourceUnavailable``. Adapters shipped here:

- ``EPAGridAdapter``: EPA eGRID subregion annual averages for US zones.
- ``LiveGridAdapter``: live grid carbon intensity over HTTP (httpx).
- ``CloudProviderAdapter``: published cloud-region grid coefficients.

``SourceHub`` queries every adapter concurrently, each behind its own
circuit breaker, joins the answers under an overall deadline and reports
pending or failed sources as unavailable instead of failing the request.

Example:
    >>> hub = SourceHub([EPAGridAdapter(), CloudProviderAdapter()], CircuitBreakerRegistry())
    >>> fetch = await hub.fetch("US-CA", datetime.now(timezone.utc))
    >>> [r.descriptor.name for r in fetch.readings]
    ['epa_egrid', 'cloud_carbon_footprint']

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import httpx

from ecotrace.carbon_calculation.circuit_breaker import CircuitBreakerRegistry
from ecotrace.carbon_calculation.config import CarbonCalculationConfig, get_config
from ecotrace.carbon_calculation.metrics import record_source_request
from ecotrace.carbon_calculation.models import (
    DataSourceDescriptor,
    EmissionFactor,
    FactorReading,
    FreshnessClass,
    SourceFetchResult,
)
from ecotrace.exceptions import SourceUnavailable

logger = logging.getLogger(__name__)

INTENSITY_UNIT = "gCO2e/kWh"


def _year_window(as_of: datetime) -> Tuple[datetime, datetime]:
    """Validity window of an annual average applied to ``as_of``'s year."""
    start = datetime(as_of.year, 1, 1, tzinfo=timezone.utc)
    return start, datetime(as_of.year + 1, 1, 1, tzinfo=timezone.utc)


# ===========================================================================
# Adapter contract
# ===========================================================================


class SourceAdapter(ABC):
    """Uniform contract for an emission-factor source."""

    descriptor: DataSourceDescriptor

    @property
    def name(self) -> str:
        return self.descriptor.name

    @abstractmethod
    async def get_factor(self, zone: str, as_of: datetime) -> Optional[EmissionFactor]:
        """Return the source's factor for ``zone`` at ``as_of``.

        Returns:
            EmissionFactor in gCO2e/kWh-compatible units, or None if the
            zone is not covered.

        Raises:
            SourceUnavailable: On upstream failure.
        """

    async def aclose(self) -> None:
        """Release resources held by the adapter."""


# ===========================================================================
# EPA eGRID
# ===========================================================================

# eGRID subregion annual output emission rates, kg CO2e/MWh
EGRID_SUBREGION_RATES: Dict[str, float] = {
    "CAMX": 244.73,
    "NYCW": 285.45,
    "ERCT": 407.89,
    "FRCC": 391.62,
    "NWPP": 292.04,
    "AZNM": 353.71,
    "NEWE": 240.52,
    "RFCE": 291.20,
    "RFCW": 497.31,
    "SRSO": 420.14,
    "SRVC": 317.92,
    "SRTV": 431.05,
    "SRMV": 380.27,
    "SRMW": 637.81,
    "MROW": 452.66,
    "SPSO": 429.13,
    "SPNO": 466.40,
    "RMPA": 564.84,
    "AKGD": 450.10,
    "HIOA": 680.25,
}

EGRID_US_AVERAGE = 371.24

STATE_SUBREGIONS: Dict[str, str] = {
    "CA": "CAMX", "NY": "NYCW", "TX": "ERCT", "FL": "FRCC",
    "WA": "NWPP", "OR": "NWPP", "NV": "NWPP", "ID": "NWPP", "UT": "NWPP",
    "MT": "NWPP", "AZ": "AZNM", "NM": "AZNM",
    "MA": "NEWE", "CT": "NEWE", "RI": "NEWE", "NH": "NEWE", "VT": "NEWE", "ME": "NEWE",
    "PA": "RFCE", "NJ": "RFCE", "DE": "RFCE", "MD": "RFCE", "DC": "RFCE",
    "OH": "RFCW", "WV": "RFCW", "IN": "RFCW", "MI": "RFCW",
    "GA": "SRSO", "AL": "SRSO", "NC": "SRVC", "SC": "SRVC", "VA": "SRVC",
    "TN": "SRTV", "KY": "SRTV", "LA": "SRMV", "AR": "SRMV", "MS": "SRMV",
    "IL": "SRMW", "MO": "SRMW",
    "IA": "MROW", "MN": "MROW", "WI": "MROW", "ND": "MROW", "SD": "MROW", "NE": "MROW",
    "OK": "SPSO", "KS": "SPNO", "CO": "RMPA", "WY": "RMPA",
    "AK": "AKGD", "HI": "HIOA",
}


class EPAGridAdapter(SourceAdapter):
    """Annual-average US grid factors from the EPA eGRID tables."""

    def __init__(
        self,
        reliability: float = 0.70,
        subregion_rates: Optional[Dict[str, float]] = None,
    ) -> None:
        self.descriptor = DataSourceDescriptor(
            name="epa_egrid",
            source_type="grid_average",
            freshness=FreshnessClass.ANNUALLY,
            reliability=reliability,
            geographic_coverage=["US"],
        )
        self._rates = dict(subregion_rates or EGRID_SUBREGION_RATES)

    async def get_factor(self, zone: str, as_of: datetime) -> Optional[EmissionFactor]:
        if zone == "US":
            subregion, value = "US", EGRID_US_AVERAGE
        elif zone.startswith("US-"):
            subregion = STATE_SUBREGIONS.get(zone[3:])
            if subregion is None or subregion not in self._rates:
                return None
            value = self._rates[subregion]
        else:
            return None

        valid_from, valid_until = _year_window(as_of)
        return EmissionFactor(
            id=f"egrid:{subregion}:{valid_from.year}",
            value=value,
            unit="kgCO2e/MWh",
            source="EPA_eGRID_2022",
            region=zone,
            valid_from=valid_from,
            valid_until=valid_until,
            uncertainty=0.10,
        )


# ===========================================================================
# Live grid intensity (HTTP)
# ===========================================================================

# Canonical zone -> live API zone key where they differ
LIVE_ZONE_ALIASES: Dict[str, str] = {
    "US-CA": "US-CAL-CISO",
    "US-TX": "US-TEX-ERCO",
    "US-NY": "US-NY-NYIS",
    "US-FL": "US-FLA-FPL",
    "US-WA": "US-NW-SCL",
    "US-OR": "US-NW-PACW",
    "US-VA": "US-MIDA-PJM",
    "US-OH": "US-MIDA-PJM",
    "AU-NSW": "AU-NSW",
}


class LiveGridAdapter(SourceAdapter):
    """Real-time grid carbon intensity from an HTTP API.

    Speaks the Electricity Maps ``/carbon-intensity/latest`` contract:
    ``GET {base_url}/carbon-intensity/latest?zone=<zone>`` with an
    ``auth-token`` header, answering ``{"carbonIntensity": ..., "datetime": ...}``.
    Without an API key the adapter covers no zone.
    """

    def __init__(
        self,
        config: Optional[CarbonCalculationConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        reliability: float = 0.95,
    ) -> None:
        self.config = config or get_config()
        self.descriptor = DataSourceDescriptor(
            name="live_grid",
            source_type="live_grid",
            freshness=FreshnessClass.REAL_TIME,
            reliability=reliability,
            geographic_coverage=["*"],
        )
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.config.live_grid_base_url,
            timeout=self.config.source_timeout_seconds,
        )

    async def get_factor(self, zone: str, as_of: datetime) -> Optional[EmissionFactor]:
        if not self.config.live_grid_api_key:
            return None

        api_zone = LIVE_ZONE_ALIASES.get(zone, zone)
        try:
            response = await self._client.get(
                "/carbon-intensity/latest",
                params={"zone": api_zone},
                headers={"auth-token": self.config.live_grid_api_key},
            )
        except httpx.HTTPError as exc:
            raise SourceUnavailable(
                f"Live grid request failed: {exc}", source_name=self.name,
            ) from exc

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise SourceUnavailable(
                f"Live grid returned HTTP {response.status_code}",
                source_name=self.name,
                context={"zone": api_zone, "status_code": response.status_code},
            )

        try:
            payload = response.json()
            value = float(payload["carbonIntensity"])
            observed = datetime.fromisoformat(
                str(payload["datetime"]).replace("Z", "+00:00"),
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise SourceUnavailable(
                f"Malformed live grid payload: {exc}", source_name=self.name,
            ) from exc

        if observed.tzinfo is None:
            observed = observed.replace(tzinfo=timezone.utc)

        return EmissionFactor(
            id=f"live:{api_zone}:{observed.isoformat()}",
            value=value,
            unit=INTENSITY_UNIT,
            source="electricity_maps",
            region=zone,
            valid_from=observed,
            valid_until=observed + timedelta(hours=1),
            uncertainty=0.05,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# ===========================================================================
# Cloud provider coefficients
# ===========================================================================

# Grid coefficients published for cloud regions, gCO2e/kWh
CLOUD_ZONE_INTENSITY: Dict[str, float] = {
    "US-VA": 379.07,
    "US-OH": 410.61,
    "US-CA": 322.17,
    "US-OR": 322.17,
    "US-WA": 322.17,
    "US-IA": 478.82,
    "US-SC": 454.22,
    "CA-QC": 1.50,
    "CA-ON": 30.00,
    "IE": 278.60,
    "GB": 225.00,
    "FR": 51.10,
    "DE": 311.00,
    "NL": 390.00,
    "BE": 167.00,
    "SE": 8.80,
    "FI": 181.00,
    "JP": 462.00,
    "KR": 415.60,
    "SG": 408.00,
    "AU-NSW": 790.00,
    "IN": 708.00,
    "BR": 61.70,
}


class CloudProviderAdapter(SourceAdapter):
    """Grid coefficients published for cloud provider regions."""

    def __init__(
        self,
        reliability: float = 0.80,
        zone_intensity: Optional[Dict[str, float]] = None,
    ) -> None:
        self._table = dict(zone_intensity or CLOUD_ZONE_INTENSITY)
        self.descriptor = DataSourceDescriptor(
            name="cloud_carbon_footprint",
            source_type="cloud_provider",
            freshness=FreshnessClass.ANNUALLY,
            reliability=reliability,
            geographic_coverage=sorted(self._table),
        )

    async def get_factor(self, zone: str, as_of: datetime) -> Optional[EmissionFactor]:
        value = self._table.get(zone)
        if value is None:
            return None
        valid_from, valid_until = _year_window(as_of)
        return EmissionFactor(
            id=f"ccf:{zone}:{valid_from.year}",
            value=value,
            unit=INTENSITY_UNIT,
            source="cloud_carbon_footprint",
            region=zone,
            valid_from=valid_from,
            valid_until=valid_until,
            uncertainty=0.15,
        )


# ===========================================================================
# SourceHub (concurrent fan-out)
# ===========================================================================


class SourceHub:
    """Concurrent, circuit-broken fan-out over a set of adapters.

    Attributes:
        adapters: Injected adapters, queried in parallel.
        breakers: Registry owning one breaker per adapter.
    """

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        breakers: CircuitBreakerRegistry,
        config: Optional[CarbonCalculationConfig] = None,
    ) -> None:
        self.config = config or get_config()
        self.adapters: List[SourceAdapter] = list(adapters)
        self.breakers = breakers

    async def fetch(
        self,
        zone: str,
        as_of: datetime,
        deadline_seconds: Optional[float] = None,
    ) -> SourceFetchResult:
        """Query every adapter for ``zone`` concurrently.

        Adapters that are short-circuited, fail, time out or are still
        pending at the deadline are reported as unavailable. Only answers
        that completed before the join are returned.

        Args:
            zone: Zone to query.
            as_of: Time the factor should apply to.
            deadline_seconds: Overall deadline; defaults to configuration.

        Returns:
            SourceFetchResult with readings and unavailable source names.
        """
        started = time.perf_counter()
        deadline = (
            deadline_seconds if deadline_seconds is not None
            else self.config.calculation_deadline_seconds
        )

        unavailable: List[str] = []
        tasks: Dict[asyncio.Task, SourceAdapter] = {}
        for adapter in self.adapters:
            if not self.breakers.get(adapter.name).allow_request():
                record_source_request(adapter.name, "short_circuit")
                unavailable.append(adapter.name)
                continue
            task = asyncio.ensure_future(self._guarded_get(adapter, zone, as_of))
            tasks[task] = adapter

        readings: List[FactorReading] = []
        if tasks:
            done, pending = await asyncio.wait(tasks.keys(), timeout=deadline)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

            for task, adapter in tasks.items():
                if task in pending:
                    self.breakers.get(adapter.name).record_failure()
                    record_source_request(adapter.name, "timeout")
                    logger.warning(
                        "Source %s still pending at %.1fs deadline; treated as unavailable",
                        adapter.name, deadline,
                    )
                    unavailable.append(adapter.name)
                    continue
                answered, factor = task.result()
                if not answered:
                    unavailable.append(adapter.name)
                    continue
                if factor is None:
                    continue
                readings.append(FactorReading(factor=factor, descriptor=adapter.descriptor))

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(
            "Fetched %d factor(s) for %s in %.1fms (unavailable: %s)",
            len(readings), zone, elapsed_ms, unavailable or "none",
        )
        return SourceFetchResult(
            zone=zone,
            readings=readings,
            unavailable=sorted(set(unavailable)),
            elapsed_ms=elapsed_ms,
        )

    async def _guarded_get(
        self,
        adapter: SourceAdapter,
        zone: str,
        as_of: datetime,
    ) -> Tuple[bool, Optional[EmissionFactor]]:
        """Call one adapter.

        Returns:
            ``(answered, factor)``; ``answered`` is False when the call failed
            or timed out, in which case the breaker has recorded a failure.
        """
        breaker = self.breakers.get(adapter.name)
        try:
            factor = await asyncio.wait_for(
                adapter.get_factor(zone, as_of),
                timeout=self.config.source_timeout_seconds,
            )
        except asyncio.TimeoutError:
            breaker.record_failure()
            record_source_request(adapter.name, "timeout")
            logger.warning("Source %s timed out for zone %s", adapter.name, zone)
            return False, None
        except SourceUnavailable as exc:
            breaker.record_failure()
            record_source_request(adapter.name, "failure")
            logger.warning("Source %s unavailable for zone %s: %s", adapter.name, zone, exc.message)
            return False, None
        except Exception as exc:  # adapter bug: isolate it like an outage
            breaker.record_failure()
            record_source_request(adapter.name, "failure")
            logger.error(
                "Source %s raised %s for zone %s", adapter.name, type(exc).__name__, zone,
                exc_info=True,
            )
            return False, None

        breaker.record_success()
        record_source_request(adapter.name, "success" if factor is not None else "not_covered")
        return True, factor

    async def aclose(self) -> None:
        """Close every adapter."""
        await asyncio.gather(*(adapter.aclose() for adapter in self.adapters))


__all__ = [
    "SourceAdapter",
    "EPAGridAdapter",
    "LiveGridAdapter",
    "CloudProviderAdapter",
    "SourceHub",
    "EGRID_SUBREGION_RATES",
    "STATE_SUBREGIONS",
    "CLOUD_ZONE_INTENSITY",
    "LIVE_ZONE_ALIASES",
]
