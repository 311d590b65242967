"""
Uptime Core - Core Module
=========================

Clock, data model and error taxonomy shared by every component.
"""

from __future__ import annotations

from uptime_core.core.clock import ManualClock, SystemClock
from uptime_core.core.error_handling import (
    CheckValidationError,
    ClassifiedError,
    ConfigurationError,
    DuplicateCheckError,
    ErrorCategory,
    ErrorRegistry,
    UptimeError,
)
from uptime_core.core.models import (
    CheckDefinition,
    Incident,
    IncidentSeverity,
    IncidentStatus,
    IncidentUpdate,
    MaintenanceStatus,
    MaintenanceWindow,
    ProbeResult,
    ServiceMetrics,
    ServiceStatus,
    ServiceSummary,
    StatusSnapshot,
    UpdateKind,
)

__all__ = [
    # Clock
    "SystemClock",
    "ManualClock",
    # Errors
    "UptimeError",
    "ConfigurationError",
    "CheckValidationError",
    "DuplicateCheckError",
    "ErrorCategory",
    "ClassifiedError",
    "ErrorRegistry",
    # Models
    "CheckDefinition",
    "ProbeResult",
    "ServiceMetrics",
    "Incident",
    "IncidentUpdate",
    "IncidentStatus",
    "IncidentSeverity",
    "UpdateKind",
    "MaintenanceWindow",
    "MaintenanceStatus",
    "ServiceStatus",
    "ServiceSummary",
    "StatusSnapshot",
]
