# -*- coding: utf-8 -*-
"""
EcoTrace
========

Carbon footprint estimation for software-engineering activity (commits,
CI runs, deployments, cloud compute, storage and data transfer).

Sub-packages:
    - carbon_calculation: scientific calculation and validation pipeline
      (source fan-out, reconciliation, SCI scoring, cross-validation and
      the audit/methodology ledger)
    - exceptions: EcoTrace exception hierarchy
"""

__version__ = "1.0.0"

from ecotrace.exceptions import (
    EcoTraceException,
    CarbonCalculationError,
    InvalidActivity,
    CalculationUnavailable,
    SourceUnavailable,
    LedgerError,
    MethodologyError,
)

__all__ = [
    "__version__",
    "EcoTraceException",
    "CarbonCalculationError",
    "InvalidActivity",
    "CalculationUnavailable",
    "SourceUnavailable",
    "LedgerError",
    "MethodologyError",
]
