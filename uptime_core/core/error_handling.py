"""
Error Taxonomy and Probe Failure Classification
===============================================

Provides:
- The exception hierarchy raised synchronously by configuration paths
- Classification of probe failures into routable categories
- A bounded registry of recent probe failures for diagnostics

Probe failures are data, not exceptions: the prober classifies whatever
went wrong and records it on the ProbeResult. Only configuration errors
propagate to callers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class UptimeError(Exception):
    """Base class for errors raised by the uptime engine."""


class ConfigurationError(UptimeError):
    """Invalid engine or check configuration."""


class CheckValidationError(ConfigurationError):
    """A CheckDefinition failed validation and was not scheduled."""

    def __init__(self, check_id: str, problems: list):
        self.check_id = check_id
        self.problems = list(problems)
        label = check_id or "<missing id>"
        super().__init__(f"Invalid check '{label}': {'; '.join(self.problems)}")


class DuplicateCheckError(ConfigurationError):
    """A check with the same id is already registered."""

    def __init__(self, check_id: str):
        self.check_id = check_id
        super().__init__(f"Check '{check_id}' is already registered")


# =============================================================================
# FAILURE CLASSIFICATION
# =============================================================================


class ErrorCategory(Enum):
    """Why a probe attempt failed."""
    NETWORK = "network"                      # Connection refused, DNS, reset
    TIMEOUT = "timeout"                      # Attempt exceeded check.timeout
    UNEXPECTED_STATUS = "unexpected_status"  # Status code not accepted
    CONTENT_MISMATCH = "content_mismatch"    # Body lacks expected content
    INTERNAL = "internal"                    # Anything else


@dataclass
class ClassifiedError:
    """A probe failure with classification metadata."""
    category: ErrorCategory
    message: str
    is_retryable: bool
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_exception(
        cls,
        exception: BaseException,
        context: Optional[Dict[str, Any]] = None,
    ) -> "ClassifiedError":
        """Classify an exception raised during a probe attempt."""
        category, retryable = cls._classify(exception)
        message = str(exception) or type(exception).__name__
        if category is ErrorCategory.TIMEOUT and not str(exception):
            message = "Request timed out"
        return cls(
            category=category,
            message=message,
            is_retryable=retryable,
            context=context or {},
        )

    @staticmethod
    def _classify(exception: BaseException) -> Tuple[ErrorCategory, bool]:
        exc_type = type(exception).__name__.lower()
        exc_msg = str(exception).lower()

        if isinstance(exception, asyncio.TimeoutError) or "timeout" in exc_type:
            return ErrorCategory.TIMEOUT, True

        if "timed out" in exc_msg:
            return ErrorCategory.TIMEOUT, True

        if isinstance(exception, OSError) or any(
            net in exc_type for net in ("connection", "connector", "network", "socket", "dns")
        ):
            return ErrorCategory.NETWORK, True

        if any(net in exc_type for net in ("clientpayload", "serverdisconnected", "clientresponse")):
            return ErrorCategory.NETWORK, True

        return ErrorCategory.INTERNAL, False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "message": self.message,
            "retryable": self.is_retryable,
            "timestamp": self.timestamp,
        }


# =============================================================================
# FAILURE REGISTRY
# =============================================================================


class ErrorRegistry:
    """
    Bounded record of recent probe failures.

    Used for diagnostics only; nothing in the engine's decision path
    reads it.
    """

    def __init__(self, max_errors: int = 500):
        self._errors: Deque[Tuple[str, ClassifiedError]] = deque(maxlen=max_errors)
        self._counts: Dict[ErrorCategory, int] = {}

    def record(self, check_id: str, error: ClassifiedError) -> None:
        self._errors.append((check_id, error))
        self._counts[error.category] = self._counts.get(error.category, 0) + 1

    def forget(self, check_id: str) -> None:
        kept = [(cid, err) for cid, err in self._errors if cid != check_id]
        self._errors.clear()
        self._errors.extend(kept)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_errors": len(self._errors),
            "error_counts": {c.value: n for c, n in self._counts.items()},
            "recent_errors": [
                {"check_id": cid, **err.to_dict()}
                for cid, err in list(self._errors)[-10:]
            ],
        }
