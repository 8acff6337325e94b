"""
ApexGuru remote analysis.

Submits a class to the org's ApexGuru endpoint, polls the job until it
finishes and decodes the report into violations. The report is a base64
encoded JSON array; a payload that fails to decode yields no violations at
all rather than a partial set.
"""

import asyncio
import base64
import binascii
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol
from urllib import error, request

from .. import messages
from ..config import ApexGuruSettings
from ..constants import (
    APEX_GURU_AUTH_ENDPOINT,
    APEX_GURU_DOCS_URL,
    APEX_GURU_REQUEST,
    COMMAND_RUN_APEX_GURU_ON_FILE,
    ENGINE_APEX_GURU,
    TELEM_APEX_GURU_FILE_ANALYSIS_NOT_ENABLED,
    TELEM_FAILED_APEX_GURU_FILE_ANALYSIS,
    TELEM_MALFORMED_VIOLATION,
    TELEM_SUCCESSFUL_APEX_GURU_FILE_ANALYSIS,
)
from ..core.errors import (
    ExternalAnalysisTimeoutError,
    MalformedExternalResponseError,
    SfcaError,
    get_error_message,
    get_error_message_with_stack,
)
from ..core.telemetry import TelemetryService
from ..core.types import CodeLocation, Fix, Suggestion, Violation
from ..diagnostics import DiagnosticFactory
from ..display import Display
from ..manager import DiagnosticManager
from .poller import poll_until_success

logger = logging.getLogger(__name__)


class OrgConnection(Protocol):
    """Authenticated REST access to an org."""

    async def request(self, method: str, url: str, body: str = "") -> Dict[str, Any]: ...


class HttpOrgConnection:
    """
    OrgConnection over urllib.

    Requests run in a worker thread so the event loop keeps serving the
    editor while a job is polled.
    """

    def __init__(self, instance_url: str, access_token: str, timeout: float = 30.0):
        self.instance_url = instance_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout

    async def request(self, method: str, url: str, body: str = "") -> Dict[str, Any]:
        return await asyncio.to_thread(self._request_sync, method, url, body)

    def _request_sync(self, method: str, url: str, body: str) -> Dict[str, Any]:
        req = request.Request(
            f"{self.instance_url}{url}",
            data=body.encode("utf-8") if body else None,
            method=method,
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        try:
            with request.urlopen(req, timeout=self.timeout) as response:
                payload = response.read().decode("utf-8")
        except error.HTTPError as e:
            raise SfcaError(f"{method} {url} failed with HTTP {e.code}: {e.reason}") from e
        except error.URLError as e:
            raise SfcaError(f"{method} {url} failed: {e.reason}") from e

        data = json.loads(payload) if payload else {}
        if not isinstance(data, dict):
            raise SfcaError(f"{method} {url} returned a non-object response")
        return data


def _b64_text(value: str) -> str:
    return base64.b64decode(value, validate=True).decode("utf-8") if value else ""


def _report_to_violation(file: str, report: Dict[str, Any]) -> Violation:
    props = {p["name"]: p["value"] for p in report.get("properties", [])}
    line = int(props["line_number"])

    code_before = _b64_text(props.get("code_before") or props.get("class_before") or "")
    code_after = _b64_text(props.get("code_after") or props.get("class_after") or "")

    location = CodeLocation(file=file, start_line=line, start_column=1)
    fixes: List[Fix] = []
    if code_after:
        # The fix replaces every line of the flagged code.
        span = max(len(code_before.splitlines()), 1)
        fixes.append(
            Fix(
                location=CodeLocation(file=file, start_line=line, start_column=1, end_line=line + span - 1),
                fixed_code=code_after,
            )
        )

    suggestions: List[Suggestion] = []
    if props.get("suggestion"):
        suggestions.append(Suggestion(location=location, message=props["suggestion"]))

    return Violation(
        rule=report["type"],
        engine=ENGINE_APEX_GURU,
        message=report["value"],
        severity=1,
        locations=[location],
        resources=[APEX_GURU_DOCS_URL],
        fixes=fixes,
        suggestions=suggestions,
    )


def decode_report(file: str, payload: str) -> List[Violation]:
    """
    Decode a base64 ApexGuru report into violations.

    Args:
        file: The analyzed file; every violation is located in it.
        payload: The base64 encoded JSON array from the job status.

    Returns:
        List[Violation]: One violation per report entry.

    Raises:
        MalformedExternalResponseError: If any part of the payload is malformed.
    """
    try:
        reports = json.loads(_b64_text(payload))
        if not isinstance(reports, list):
            raise ValueError(f"expected a JSON array, got {type(reports).__name__}")
        return [_report_to_violation(file, r) for r in reports]
    except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError, AttributeError) as e:
        # ValidationError and JSONDecodeError are ValueErrors.
        raise MalformedExternalResponseError(messages.apex_guru_unable_to_parse(get_error_message(e))) from e


class ApexGuruService:
    """Job-based ApexGuru client."""

    def __init__(
        self,
        connection: OrgConnection,
        settings: Optional[ApexGuruSettings] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.connection = connection
        self.settings = settings or ApexGuruSettings()
        self.clock = clock
        self.sleep = sleep

    async def is_enabled(self) -> bool:
        """True when the org has ApexGuru. Any failure counts as not enabled."""
        try:
            response = await self.connection.request("GET", APEX_GURU_AUTH_ENDPOINT)
            return response.get("status") == "Success"
        except Exception as e:
            logger.warning(f"ApexGuru access check failed: {e}")
            return False

    async def submit(self, content: str) -> str:
        """Start a job for `content` and return its request id."""
        body = json.dumps({"classContent": base64.b64encode(content.encode("utf-8")).decode("ascii")})
        response = await self.connection.request("POST", APEX_GURU_REQUEST, body)
        status = response.get("status")
        if status not in ("new", "success"):
            raise SfcaError(messages.apex_guru_unexpected_response(str(status)))
        return response["requestId"]

    async def status(self, request_id: str) -> Dict[str, Any]:
        return await self.connection.request("GET", f"{APEX_GURU_REQUEST}/{request_id}")

    async def scan(self, path: Path) -> List[Violation]:
        """
        Analyze one file.

        Raises:
            ExternalAnalysisTimeoutError: If the job does not succeed in time.
            MalformedExternalResponseError: If the report cannot be decoded.
        """
        content = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
        request_id = await self.submit(content)
        logger.info(f"ApexGuru request id: {request_id}")

        max_seconds = self.settings.max_wait_seconds
        try:
            response = await poll_until_success(
                lambda: self.status(request_id),
                lambda r: r.get("status") == "success",
                max_wait_ms=int(max_seconds * 1000),
                retry_interval_ms=self.settings.retry_interval_ms,
                job_id=request_id,
                clock=self.clock,
                sleep=self.sleep,
            )
        except ExternalAnalysisTimeoutError as e:
            raise ExternalAnalysisTimeoutError(messages.apex_guru_timeout(max_seconds, get_error_message(e))) from e

        if response.get("status") != "success":
            raise ExternalAnalysisTimeoutError(
                messages.apex_guru_timeout(max_seconds, str(response.get("message") or ""))
            )
        return decode_report(str(path), response.get("report") or "")


class ApexGuruRunAction:
    """Runs ApexGuru on a file and replaces its previous ApexGuru diagnostics."""

    def __init__(
        self,
        service: Optional[ApexGuruService],
        factory: DiagnosticFactory,
        diagnostic_manager: DiagnosticManager,
        display: Display,
        telemetry: TelemetryService,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service = service
        self.factory = factory
        self.diagnostic_manager = diagnostic_manager
        self.display = display
        self.telemetry = telemetry
        self.clock = clock

    async def run(self, path: Path, command_name: str = COMMAND_RUN_APEX_GURU_ON_FILE) -> None:
        start = self.clock()
        try:
            if self.service is None or not await self.service.is_enabled():
                self.display.display_error(messages.apex_guru_not_enabled())
                self.telemetry.send_command_event(
                    TELEM_APEX_GURU_FILE_ANALYSIS_NOT_ENABLED,
                    {"executedCommand": command_name, "configured": str(self.service is not None).lower()},
                )
                return

            violations = await self.service.scan(path)

            def on_malformed(violation: Violation, err: Exception) -> None:
                self.telemetry.send_exception(TELEM_MALFORMED_VIOLATION, get_error_message(err), {"rule": violation.rule})

            diagnostics = self.factory.from_violations(violations, on_error=on_malformed)

            stale = [d for d in self.diagnostic_manager.get_diagnostics_for_file(path) if d.engine == ENGINE_APEX_GURU]
            self.diagnostic_manager.clear_diagnostics(stale)
            self.diagnostic_manager.add_diagnostics(diagnostics)
            self.display.display_info(messages.apex_guru_finished_scan(len(diagnostics)))

            self.telemetry.send_command_event(
                TELEM_SUCCESSFUL_APEX_GURU_FILE_ANALYSIS,
                {
                    "executedCommand": command_name,
                    "duration": str(int((self.clock() - start) * 1000)),
                    "numViolations": str(len(violations)),
                    "numViolationsWithSuggestions": str(sum(1 for v in violations if v.suggestions)),
                    "numViolationsWithFixes": str(sum(1 for v in violations if v.fixes)),
                },
            )
        except Exception as e:
            logger.error(f"ApexGuru analysis of {path} failed: {e}")
            self.display.display_error(messages.analysis_failed(get_error_message(e)))
            self.telemetry.send_exception(
                TELEM_FAILED_APEX_GURU_FILE_ANALYSIS,
                get_error_message_with_stack(e),
                {"executedCommand": command_name, "duration": str(int((self.clock() - start) * 1000))},
            )


def create_org_connection(settings: ApexGuruSettings) -> Optional[HttpOrgConnection]:
    """Build a connection from settings, or None when the org is not configured."""
    token = settings.access_token
    if not settings.enabled or not settings.instance_url or not token:
        return None
    return HttpOrgConnection(settings.instance_url, token)
