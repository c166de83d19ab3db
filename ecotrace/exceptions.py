"""EcoTrace Custom Exception Hierarchy.

This module provides the exception hierarchy for EcoTrace with rich error
context for debugging, monitoring, and API responses.

Exception Hierarchy:
    EcoTraceException (base)
    ├── CarbonCalculationError
    │   ├── InvalidActivity
    │   └── CalculationUnavailable
    ├── SourceUnavailable
    ├── LedgerError
    └── MethodologyError

Only ``InvalidActivity`` and ``CalculationUnavailable`` ever leave the
calculation engine. ``SourceUnavailable`` is absorbed by the source hub
(the adapter is reported as unavailable) and ``LedgerError`` is absorbed by
the ledger write path (reported through ``LedgerWriteResult.error``).

All exceptions include rich context:
- error_code: Unique error identifier
- component: Name of the component that raised the error
- context: Dictionary with error-specific details
- timestamp: When the error occurred
- traceback: Stack at the point of creation

Example:
    >>> from ecotrace.exceptions import InvalidActivity
    >>> raise InvalidActivity(
    ...     message="Activity payload failed validation",
    ...     invalid_fields={"metadata.vcpu_count": "Input should be >= 1"},
    ... )

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

import json
import re
import traceback as tb
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ==============================================================================
# Base Exception
# ==============================================================================

class EcoTraceException(Exception):
    """Base exception for all EcoTrace errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier (e.g., "ET_CARBON_INVALID_ACTIVITY")
        component: Name of the component that raised the error (optional)
        context: Dictionary with error-specific details
        timestamp: When the error occurred (UTC)
        traceback_str: Stack trace for debugging
    """

    # Base error code prefix
    ERROR_PREFIX = "ET"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        component: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize EcoTrace exception with rich context.

        Args:
            message: Human-readable error message
            error_code: Unique error identifier (auto-generated if not provided)
            component: Name of the component that raised the error
            context: Dictionary with error-specific details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.component = component
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)
        self.traceback_str = "".join(tb.format_stack()[:-1])

    def _generate_error_code(self) -> str:
        """Generate an error code from the exception class name.

        Returns:
            Error code like "ET_CARBON_INVALID_ACTIVITY"
        """
        error_type = re.sub(r"(?<!^)(?=[A-Z])", "_", self.__class__.__name__).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary with all error details
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "component": self.component,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "traceback": self.traceback_str,
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        """String representation with error code and message."""
        parts = [f"[{self.error_code}]"]
        if self.component:
            parts.append(f"Component: {self.component}")
        parts.append(self.message)
        return " - ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}', "
            f"component='{self.component}')"
        )


# ==============================================================================
# Calculation Exceptions
# ==============================================================================

class CarbonCalculationError(EcoTraceException):
    """Base exception for errors that abort a carbon calculation."""
    ERROR_PREFIX = "ET_CARBON"


class InvalidActivity(CarbonCalculationError):
    """Activity record failed validation.

    Raised before any external call is made when an activity payload is
    malformed or its metadata does not match its activity type.

    Example:
        >>> raise InvalidActivity(
        ...     message="Unknown activity type",
        ...     invalid_fields={"activity_type": "unsupported value 'mining'"},
        ... )
    """

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        invalid_fields: Optional[Dict[str, str]] = None,
    ):
        """Initialize invalid activity error.

        Args:
            message: Error message
            component: Component that rejected the activity
            context: Error context
            invalid_fields: Dictionary of field path -> reason
        """
        self.invalid_fields = dict(invalid_fields or {})
        if invalid_fields:
            context = context or {}
            context["invalid_fields"] = self.invalid_fields
        super().__init__(message, component=component, context=context)


class CalculationUnavailable(CarbonCalculationError):
    """No emission factor could be obtained, not even from the static table.

    This is the only structural failure of the calculation path.
    """


# ==============================================================================
# Source, Ledger and Methodology Exceptions
# ==============================================================================

class SourceUnavailable(EcoTraceException):
    """An emission-factor source could not answer.

    Raised inside adapters on upstream errors; the source hub records it as
    a circuit breaker failure and reports the source as unavailable.
    """
    ERROR_PREFIX = "ET_SOURCE"

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.source_name = source_name
        if source_name:
            context = context or {}
            context["source_name"] = source_name
        super().__init__(message, component=source_name, context=context)


class LedgerError(EcoTraceException):
    """Audit persistence failed.

    Never propagated to the calculation caller.
    """
    ERROR_PREFIX = "ET_LEDGER"


class MethodologyError(EcoTraceException):
    """Illegal methodology version operation.

    Raised for unknown versions, malformed version strings and attempts to
    deprecate the only active version.
    """
    ERROR_PREFIX = "ET_METHODOLOGY"


__all__ = [
    "EcoTraceException",
    "CarbonCalculationError",
    "InvalidActivity",
    "CalculationUnavailable",
    "SourceUnavailable",
    "LedgerError",
    "MethodologyError",
]
