"""
Error taxonomy.

Every failure the server surfaces to a user derives from SfcaError so that
public entry points can convert it into a display message and a telemetry
exception without guessing at its shape.
"""

import traceback


class SfcaError(Exception):
    """Base class for all sfca-lsp errors."""


class MalformedViolationError(SfcaError):
    """A violation cannot be turned into a diagnostic (no usable primary location)."""


class StaleDiagnosticError(SfcaError):
    """A fix was refused because the diagnostic's text changed since analysis."""


class DiffPresentationError(SfcaError):
    """The editor host failed to present a proposed change."""


class ExternalAnalysisTransientError(SfcaError):
    """A single remote status check failed; retried by the poller."""


class ExternalAnalysisTimeoutError(SfcaError):
    """The remote analysis job did not succeed before the deadline."""


class MalformedExternalResponseError(SfcaError):
    """A remote analysis payload could not be decoded."""


class ScanFailedError(SfcaError):
    """The scanning engine exited unsuccessfully."""


class FixConsolidationNotSupportedError(SfcaError):
    """A diagnostic carries several fixes and no merge strategy exists for them."""


class UnknownEngineError(SfcaError):
    """A fix generator was registered for an engine the server does not know."""


class InvalidCommandArgumentsError(SfcaError):
    """A workspace command was invoked with arguments it cannot use."""


def get_error_message(err: BaseException) -> str:
    """Return the user-facing message of an exception."""
    return str(err) or type(err).__name__


def get_error_message_with_stack(err: BaseException) -> str:
    """Return the message followed by the formatted traceback, for telemetry."""
    stack = "".join(traceback.format_exception(type(err), err, err.__traceback__))
    return f"{get_error_message(err)}\n{stack}".rstrip()
