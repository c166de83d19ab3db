# -*- coding: utf-8 -*-
"""
Carbon Calculation Service Setup - EcoTrace Carbon Calculation Pipeline

Provides ``configure_carbon_service(app)`` which wires up the carbon
calculation SDK (resolver, source adapters, circuit breakers, confidence
engine, calculation engine, SCI calculator, cross-validator, audit ledger
and pipeline) and mounts the REST API.

Also exposes ``get_carbon_service(app)`` for programmatic access and the
``CarbonCalculationService`` facade class.

Usage:
    >>> from fastapi import FastAPI
    >>> from ecotrace.carbon_calculation.setup import configure_carbon_service
    >>> app = FastAPI()
    >>> configure_carbon_service(app)

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Dict, Optional, Sequence

import httpx
from fastapi import FastAPI

from ecotrace.carbon_calculation.audit_ledger import AuditLedger
from ecotrace.carbon_calculation.audit_store import AuditStore
from ecotrace.carbon_calculation.calculation_engine import CalculationEngine
from ecotrace.carbon_calculation.circuit_breaker import CircuitBreakerRegistry
from ecotrace.carbon_calculation.confidence_engine import ConfidenceEngine
from ecotrace.carbon_calculation.config import CarbonCalculationConfig, get_config
from ecotrace.carbon_calculation.cross_validation import CrossValidator
from ecotrace.carbon_calculation.geographic_resolver import GeographicResolver
from ecotrace.carbon_calculation.models import CalculationOutcome, SourceHealth
from ecotrace.carbon_calculation.pipeline import CarbonPipeline
from ecotrace.carbon_calculation.sci_calculator import SCICalculator
from ecotrace.carbon_calculation.source_adapters import (
    CloudProviderAdapter,
    EPAGridAdapter,
    LiveGridAdapter,
    SourceAdapter,
    SourceHub,
)

logger = logging.getLogger(__name__)


# ===================================================================
# CarbonCalculationService facade
# ===================================================================

# Thread-safe singleton lock
_singleton_lock = threading.Lock()
_singleton_instance: Optional["CarbonCalculationService"] = None


def default_adapters(
    config: CarbonCalculationConfig,
    http_client: Optional[httpx.AsyncClient] = None,
) -> list:
    """EPA grid averages, live grid intensity and cloud provider coefficients."""
    return [
        EPAGridAdapter(),
        LiveGridAdapter(config, client=http_client),
        CloudProviderAdapter(),
    ]


class CarbonCalculationService:
    """Unified facade over the carbon calculation SDK.

    Every collaborator is created here and passed explicitly to the
    components that need it; nothing is shared through module globals.

    Attributes:
        config: CarbonCalculationConfig instance.
        resolver: GeographicResolver instance.
        breakers: CircuitBreakerRegistry, one breaker per source.
        hub: SourceHub over the configured adapters.
        confidence_engine: ConfidenceEngine instance.
        ledger: AuditLedger instance.
        engine: CalculationEngine instance.
        sci_calculator: SCICalculator instance.
        cross_validator: CrossValidator instance.
        pipeline: CarbonPipeline composing all of the above.

    Example:
        >>> service = CarbonCalculationService()
        >>> outcome = await service.calculate({
        ...     "activity_type": "electricity",
        ...     "timestamp": "2026-10-01T12:00:00Z",
        ...     "location": {"country": "DE"},
        ...     "metadata": {"kwh_consumed": 3.2, "time_of_day": "peak"},
        ... })
    """

    def __init__(
        self,
        config: Optional[CarbonCalculationConfig] = None,
        adapters: Optional[Sequence[SourceAdapter]] = None,
        store: Optional[AuditStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or get_config()
        self.resolver = GeographicResolver(self.config)
        self.breakers = CircuitBreakerRegistry(self.config)
        self.hub = SourceHub(
            adapters if adapters is not None else default_adapters(self.config, http_client),
            self.breakers,
            self.config,
        )
        self.confidence_engine = ConfidenceEngine(self.config)
        self.ledger = AuditLedger(self.config, store=store)
        self.engine = CalculationEngine(
            self.resolver,
            self.hub,
            self.confidence_engine,
            self.config,
            methodology=self.ledger.get_current_methodology_version().methodology,
        )
        self.sci_calculator = SCICalculator(self.config)
        self.cross_validator = CrossValidator(self.confidence_engine, config=self.config)
        self.pipeline = CarbonPipeline(
            self.engine,
            self.sci_calculator,
            self.cross_validator,
            self.ledger,
            self.config,
        )
        self._started = False
        logger.info("CarbonCalculationService created with %d source(s)", len(self.hub.adapters))

    async def calculate(
        self,
        activity: Any,
        request_id: Optional[str] = None,
        user_context: Optional[Dict[str, Any]] = None,
    ) -> CalculationOutcome:
        """Run an activity through the pipeline."""
        self._ensure_sweeper()
        return await self.pipeline.run(
            activity, request_id=request_id, user_context=user_context,
        )

    def get_source_health(self) -> Dict[str, SourceHealth]:
        """Breaker snapshot for every configured source."""
        return {
            adapter.name: self.breakers.get(adapter.name).snapshot()
            for adapter in self.hub.adapters
        }

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """Get carbon service metrics summary."""
        return {
            "started": self._started,
            "sources": len(self.hub.adapters),
            "open_breakers": sum(
                1 for health in self.get_source_health().values()
                if health.state.value != "closed"
            ),
            "ledger": self.ledger.get_status(),
            "pipeline": self.pipeline.get_statistics(),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def startup(self) -> None:
        """Start the carbon service.

        Safe to call multiple times. The retention sweep starts here when
        an event loop is running, otherwise on the first calculation.
        """
        if self._started:
            logger.debug("CarbonCalculationService already started; skipping")
            return

        logger.info("CarbonCalculationService starting up...")
        self._started = True
        self._ensure_sweeper()
        logger.info("CarbonCalculationService startup complete")

    async def shutdown(self) -> None:
        """Stop the retention sweep and close the source adapters."""
        if not self._started:
            return

        await self.ledger.stop_cleanup_task()
        await self.hub.aclose()
        self._started = False
        logger.info("CarbonCalculationService shut down")

    def _ensure_sweeper(self) -> None:
        if not self._started:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; retention sweep deferred")
            return
        self.ledger.start_cleanup_task()


# ===================================================================
# Thread-safe singleton access
# ===================================================================


def get_service() -> CarbonCalculationService:
    """Return the process-wide CarbonCalculationService.

    Thread-safe lazy initialization from ``get_config()``. After
    ``configure_carbon_service`` this is the service mounted on the app.

    Returns:
        The CarbonCalculationService singleton.
    """
    global _singleton_instance
    if _singleton_instance is None:
        with _singleton_lock:
            if _singleton_instance is None:
                _singleton_instance = CarbonCalculationService()
    return _singleton_instance


# ===================================================================
# FastAPI integration
# ===================================================================


def configure_carbon_service(
    app: FastAPI,
    config: Optional[CarbonCalculationConfig] = None,
    service: Optional[CarbonCalculationService] = None,
) -> CarbonCalculationService:
    """Configure the carbon calculation service on a FastAPI application.

    Creates the CarbonCalculationService (unless one is given), stores it
    in app.state, mounts the carbon API router, and starts the service.

    Args:
        app: FastAPI application instance.
        config: Optional carbon calculation config.
        service: Pre-built service, e.g. with test adapters.

    Returns:
        CarbonCalculationService instance.
    """
    global _singleton_instance

    service = service or CarbonCalculationService(config=config)

    with _singleton_lock:
        _singleton_instance = service

    app.state.carbon_service = service

    from ecotrace.carbon_calculation.api.router import router as carbon_router
    app.include_router(carbon_router)
    logger.info("Carbon calculation API router mounted")

    service.startup()

    logger.info("Carbon calculation service configured on app")
    return service


def get_carbon_service(app: Any) -> CarbonCalculationService:
    """Get the CarbonCalculationService instance from app state.

    Raises:
        RuntimeError: If the carbon service is not configured.
    """
    service = getattr(app.state, "carbon_service", None)
    if service is None:
        raise RuntimeError(
            "Carbon calculation service not configured. "
            "Call configure_carbon_service(app) first."
        )
    return service


def get_router() -> Any:
    """Get the carbon calculation API router."""
    from ecotrace.carbon_calculation.api.router import router
    return router


__all__ = [
    "CarbonCalculationService",
    "configure_carbon_service",
    "get_carbon_service",
    "get_service",
    "get_router",
    "default_adapters",
]
