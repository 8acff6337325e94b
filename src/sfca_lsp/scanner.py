"""
Code Analyzer CLI binding.

Runs `sf code-analyzer` in a subprocess and turns its JSON results into
violations. The subprocess runs in a worker thread so the language server
keeps answering requests during a scan.
"""

import asyncio
import json
import logging
import os
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from pydantic import ValidationError

from . import messages
from .config import ScannerSettings
from .constants import (
    COMMAND_RUN_ON_FILE,
    TELEM_FAILED_STATIC_ANALYSIS,
    TELEM_MALFORMED_VIOLATION,
    TELEM_SUCCESSFUL_STATIC_ANALYSIS,
)
from .core.errors import ScanFailedError, get_error_message, get_error_message_with_stack
from .core.telemetry import TelemetryService
from .core.types import Violation
from .diagnostics import AnalyzerDiagnostic, DiagnosticFactory
from .display import Display
from .manager import DiagnosticManager

logger = logging.getLogger(__name__)

UNINSTANTIABLE_ENGINE_RULE = "UninstantiableEngineError"

CommandRunner = Callable[[List[str], Optional[Path]], subprocess.CompletedProcess]


def run_command(cmd: List[str], cwd: Optional[Path] = None) -> subprocess.CompletedProcess:
    """Run a command synchronously, capturing its output."""
    logger.info(f"Running command: {' '.join(cmd)}")
    return subprocess.run(cmd, cwd=str(cwd) if cwd else None, capture_output=True, text=True)


class Scanner(Protocol):
    async def scan(self, targets: Sequence[str]) -> List[Violation]: ...


def _absolutize(raw_location: Dict[str, Any], run_dir: str) -> None:
    file = raw_location.get("file")
    if file and not os.path.isabs(file):
        raw_location["file"] = os.path.join(run_dir, file)


class CodeAnalyzerCliScanner:
    """
    Scanner backed by the Code Analyzer CLI plugin.

    Attributes:
        settings: How the CLI is invoked.
        cwd: Working directory for the CLI (the workspace root).
    """

    def __init__(
        self,
        settings: Optional[ScannerSettings] = None,
        cwd: Optional[Path] = None,
        runner: CommandRunner = run_command,
    ):
        self.settings = settings or ScannerSettings()
        self.cwd = cwd
        self.runner = runner
        self._rule_descriptions: Optional[Dict[str, str]] = None

    def build_run_command(self, targets: Sequence[str], output_file: str) -> List[str]:
        cmd = [self.settings.command, "code-analyzer", "run"]
        for target in targets:
            cmd.extend(["-w", str(target)])
        if self.settings.rule_selector:
            cmd.extend(["-r", self.settings.rule_selector])
        if self.settings.config_file:
            cmd.extend(["-c", self.settings.config_file])
        cmd.extend(["-f", output_file])
        return cmd

    async def scan(self, targets: Sequence[str]) -> List[Violation]:
        """
        Scan files and return their violations.

        Raises:
            ScanFailedError: If the CLI exits non-zero or writes unreadable output.
        """
        return await asyncio.to_thread(self._scan_sync, list(targets))

    def _scan_sync(self, targets: List[str]) -> List[Violation]:
        with tempfile.TemporaryDirectory(prefix="sfca-") as tmp:
            output_file = os.path.join(tmp, "results.json")
            result = self.runner(self.build_run_command(targets, output_file), self.cwd)
            if result.returncode != 0:
                raise ScanFailedError(result.stderr.strip() or f"Code Analyzer exited with code {result.returncode}")
            results = self._read_json(output_file)

        if not isinstance(results, dict):
            raise ScanFailedError("Code Analyzer results are not a JSON object")
        return self.parse_results(results)

    def parse_results(self, results: Dict[str, Any]) -> List[Violation]:
        """Convert the CLI's results JSON into violations, resolving paths against runDir."""
        run_dir = results.get("runDir") or str(self.cwd or Path.cwd())
        violations: List[Violation] = []
        for raw in results.get("violations", []):
            for location in raw.get("locations", []):
                _absolutize(location, run_dir)
            for entry in raw.get("fixes", []) + raw.get("suggestions", []):
                if isinstance(entry.get("location"), dict):
                    _absolutize(entry["location"], run_dir)
            try:
                violations.append(Violation.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping unparseable violation {raw.get('rule')!r}: {e}")
        return violations

    async def get_rule_description(self, engine: str, rule: str) -> str:
        """Description of a rule, or an empty string if the CLI does not know it."""
        if self._rule_descriptions is None:
            self._rule_descriptions = await asyncio.to_thread(self._load_rule_descriptions)
        return self._rule_descriptions.get(f"{engine}:{rule}", "")

    def _load_rule_descriptions(self) -> Dict[str, str]:
        with tempfile.TemporaryDirectory(prefix="sfca-") as tmp:
            output_file = os.path.join(tmp, "rules.json")
            cmd = [self.settings.command, "code-analyzer", "rules", "-r", "all", "-f", output_file]
            result = self.runner(cmd, self.cwd)
            if result.returncode != 0:
                raise ScanFailedError(result.stderr.strip())
            rules = self._read_json(output_file)

        if isinstance(rules, dict):
            rules = rules.get("rules", [])
        return {f"{r['engine']}:{r['name']}": r.get("description", "") for r in rules}

    @staticmethod
    def _read_json(path: str) -> Any:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ScanFailedError(f"Unable to read Code Analyzer output {path}: {e}") from e


class ScanAction:
    """Scans files and replaces their diagnostics with the results."""

    def __init__(
        self,
        scanner: Scanner,
        factory: DiagnosticFactory,
        diagnostic_manager: DiagnosticManager,
        display: Display,
        telemetry: TelemetryService,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.scanner = scanner
        self.factory = factory
        self.diagnostic_manager = diagnostic_manager
        self.display = display
        self.telemetry = telemetry
        self.clock = clock
        self._seen_engine_errors: set = set()

    async def run(self, targets: Iterable[str | Path], command_name: str = COMMAND_RUN_ON_FILE) -> List[AnalyzerDiagnostic]:
        """
        Scan `targets` and publish the results.

        Never raises; failures are displayed and reported to telemetry.

        Returns:
            List[AnalyzerDiagnostic]: The diagnostics added to the store.
        """
        files = [str(t) for t in targets]
        start = self.clock()
        try:
            violations = await self.scanner.scan(files)

            located = [v for v in violations if not self._is_unlocated(v)]
            for violation in violations:
                if self._is_unlocated(violation):
                    self._display_unlocated(violation)

            def on_malformed(violation: Violation, err: Exception) -> None:
                self.telemetry.send_exception(
                    TELEM_MALFORMED_VIOLATION,
                    get_error_message(err),
                    {"engine": violation.engine, "rule": violation.rule},
                )

            diagnostics = self.factory.from_violations(located, on_error=on_malformed)
            self.diagnostic_manager.clear_diagnostics_for_files(files)
            self.diagnostic_manager.add_diagnostics(diagnostics)

            bad_files = len({d.file for d in diagnostics})
            self.display.display_info(messages.finished_scan(len(files), bad_files, len(diagnostics)))
            self.telemetry.send_command_event(
                TELEM_SUCCESSFUL_STATIC_ANALYSIS,
                {"commandName": command_name, "duration": str(int((self.clock() - start) * 1000))},
            )
            return diagnostics
        except Exception as e:
            logger.error(f"Scan of {len(files)} files failed: {e}")
            self.display.display_error(messages.analysis_failed(get_error_message(e)))
            self.telemetry.send_exception(
                TELEM_FAILED_STATIC_ANALYSIS,
                get_error_message_with_stack(e),
                {"executedCommand": command_name, "duration": str(int((self.clock() - start) * 1000))},
            )
            return []

    @staticmethod
    def _is_unlocated(violation: Violation) -> bool:
        # Engine-level messages have a location without a file.
        primary = violation.primary_location
        return primary is not None and not primary.file

    def _display_unlocated(self, violation: Violation) -> None:
        message = f"[{violation.engine}:{violation.rule}] {violation.message}"
        if violation.rule == UNINSTANTIABLE_ENGINE_RULE:
            # Engine setup problems repeat on every scan; say it once.
            if violation.engine in self._seen_engine_errors:
                return
            self._seen_engine_errors.add(violation.engine)
            self.display.display_warning(message)
        elif violation.severity <= 2:
            self.display.display_error(message)
        elif violation.severity <= 4:
            self.display.display_warning(message)
        else:
            self.display.display_info(message)
