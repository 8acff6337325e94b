"""
sfca-lsp core module.

Data models, the error taxonomy and the telemetry transport shared by every
other component.
"""

from .errors import (
    DiffPresentationError,
    ExternalAnalysisTimeoutError,
    ExternalAnalysisTransientError,
    FixConsolidationNotSupportedError,
    MalformedExternalResponseError,
    MalformedViolationError,
    ScanFailedError,
    SfcaError,
    StaleDiagnosticError,
    UnknownEngineError,
)
from .types import CodeLocation, Fix, SeverityBucket, Suggestion, Violation

__all__ = [
    "CodeLocation",
    "DiffPresentationError",
    "ExternalAnalysisTimeoutError",
    "ExternalAnalysisTransientError",
    "Fix",
    "FixConsolidationNotSupportedError",
    "MalformedExternalResponseError",
    "MalformedViolationError",
    "ScanFailedError",
    "SeverityBucket",
    "SfcaError",
    "StaleDiagnosticError",
    "Suggestion",
    "UnknownEngineError",
    "Violation",
]
