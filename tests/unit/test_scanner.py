"""
Unit tests for the Code Analyzer CLI binding and the scan action.
"""

import asyncio
import json
import subprocess
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from sfca_lsp import messages
from sfca_lsp.config import ScannerSettings
from sfca_lsp.constants import (
    COMMAND_RUN_ON_FILE,
    TELEM_FAILED_STATIC_ANALYSIS,
    TELEM_MALFORMED_VIOLATION,
    TELEM_SUCCESSFUL_STATIC_ANALYSIS,
)
from sfca_lsp.core.errors import ScanFailedError
from sfca_lsp.core.types import CodeLocation, Violation
from sfca_lsp.diagnostics import DiagnosticFactory
from sfca_lsp.manager import DiagnosticManager
from sfca_lsp.scanner import CodeAnalyzerCliScanner, ScanAction


def _raw_violation(file="classes/Account.cls", rule="AvoidDebugStatements", **extra):
    raw = {
        "rule": rule,
        "engine": "pmd",
        "severity": 3,
        "tags": ["Recommended"],
        "primaryLocationIndex": 0,
        "message": "Avoid debug statements",
        "locations": [{"file": file, "startLine": 3, "startColumn": 9, "endLine": 3, "endColumn": 30}],
        "resources": ["https://docs.pmd-code.org/AvoidDebugStatements"],
    }
    raw.update(extra)
    return raw


def _runner_writing(payload, returncode=0, stderr=""):
    """A CommandRunner that writes `payload` to the `-f` output file."""
    def run(cmd: List[str], cwd=None) -> subprocess.CompletedProcess:
        if returncode == 0 and payload is not None:
            output = cmd[cmd.index("-f") + 1]
            with open(output, "w", encoding="utf-8") as f:
                f.write(payload if isinstance(payload, str) else json.dumps(payload))
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr=stderr)
    return MagicMock(side_effect=run)


class TestBuildRunCommand:
    """Test CLI argument construction."""

    def test_minimal(self):
        scanner = CodeAnalyzerCliScanner()
        cmd = scanner.build_run_command(["/w/A.cls", "/w/B.cls"], "/tmp/out.json")
        assert cmd == ["sf", "code-analyzer", "run", "-w", "/w/A.cls", "-w", "/w/B.cls", "-f", "/tmp/out.json"]

    def test_selector_and_config(self):
        settings = ScannerSettings(command="/opt/sf", rule_selector="Recommended", config_file="ca.yml")
        cmd = CodeAnalyzerCliScanner(settings).build_run_command(["/w/A.cls"], "out.json")
        assert cmd == [
            "/opt/sf", "code-analyzer", "run", "-w", "/w/A.cls",
            "-r", "Recommended", "-c", "ca.yml", "-f", "out.json",
        ]


class TestParseResults:
    """Test conversion of the results JSON."""

    def test_relative_paths_resolve_against_run_dir(self):
        fix_location = {"file": "classes/Account.cls", "startLine": 3}
        results = {
            "runDir": "/workspace/force-app",
            "violations": [_raw_violation(fixes=[{"location": fix_location, "fixedCode": "// fixed"}])],
        }

        [violation] = CodeAnalyzerCliScanner().parse_results(results)

        assert violation.primary_location.file == "/workspace/force-app/classes/Account.cls"
        assert violation.primary_location.end_column == 30
        assert violation.fixes[0].location.file == "/workspace/force-app/classes/Account.cls"
        assert violation.tags == ["Recommended"]

    def test_absolute_paths_are_untouched(self):
        results = {"runDir": "/elsewhere", "violations": [_raw_violation(file="/w/A.cls")]}
        [violation] = CodeAnalyzerCliScanner().parse_results(results)
        assert violation.primary_location.file == "/w/A.cls"

    def test_unparseable_violation_is_skipped(self):
        results = {"runDir": "/w", "violations": [_raw_violation(severity=9), _raw_violation()]}
        assert len(CodeAnalyzerCliScanner().parse_results(results)) == 1

    def test_no_violations(self):
        assert CodeAnalyzerCliScanner().parse_results({"runDir": "/w"}) == []


class TestScan:
    """Test the subprocess round trip."""

    def test_scan_reads_output_file(self, tmp_path):
        runner = _runner_writing({"runDir": str(tmp_path), "violations": [_raw_violation()]})
        scanner = CodeAnalyzerCliScanner(cwd=tmp_path, runner=runner)

        violations = asyncio.run(scanner.scan(["classes/Account.cls"]))

        assert [v.rule for v in violations] == ["AvoidDebugStatements"]
        assert runner.call_args.args[1] == tmp_path

    def test_nonzero_exit_raises_with_stderr(self):
        scanner = CodeAnalyzerCliScanner(runner=_runner_writing(None, returncode=1, stderr="No engines\n"))
        with pytest.raises(ScanFailedError, match="No engines"):
            asyncio.run(scanner.scan(["/w/A.cls"]))

    def test_unreadable_output_raises(self):
        scanner = CodeAnalyzerCliScanner(runner=_runner_writing("{truncated"))
        with pytest.raises(ScanFailedError, match="Unable to read"):
            asyncio.run(scanner.scan(["/w/A.cls"]))

    def test_non_object_output_raises(self):
        scanner = CodeAnalyzerCliScanner(runner=_runner_writing([1, 2]))
        with pytest.raises(ScanFailedError, match="not a JSON object"):
            asyncio.run(scanner.scan(["/w/A.cls"]))

    def test_rule_descriptions_are_loaded_once(self):
        rules = {"rules": [{"engine": "pmd", "name": "AvoidDebugStatements", "description": "No debug."}]}
        runner = _runner_writing(rules)
        scanner = CodeAnalyzerCliScanner(runner=runner)

        assert asyncio.run(scanner.get_rule_description("pmd", "AvoidDebugStatements")) == "No debug."
        assert asyncio.run(scanner.get_rule_description("pmd", "Unknown")) == ""
        assert runner.call_count == 1
        assert runner.call_args.args[0][:5] == ["sf", "code-analyzer", "rules", "-r", "all"]


class TestScanAction:
    """Test publishing scan results."""

    @pytest.fixture
    def manager(self):
        return DiagnosticManager()

    def _action(self, scanner, manager, display, telemetry):
        ticks = iter([10.0, 10.5])
        return ScanAction(scanner, DiagnosticFactory(), manager, display, telemetry, clock=lambda: next(ticks))

    def test_success_replaces_diagnostics_for_scanned_files(
        self, manager, display, telemetry, make_violation, apex_file
    ):
        factory = DiagnosticFactory()
        manager.add_diagnostics([factory.from_violation(make_violation(rule="Old"))])
        scanner = MagicMock()
        scanner.scan = AsyncMock(return_value=[make_violation(), make_violation(start_line=7, end_line=7)])

        result = asyncio.run(self._action(scanner, manager, display, telemetry).run([apex_file]))

        assert len(result) == 2
        assert [d.rule for d in manager.get_diagnostics_for_file(apex_file)] == ["AvoidDebugStatements"] * 2
        assert display.infos == [messages.finished_scan(1, 1, 2)]
        assert telemetry.events == [
            (TELEM_SUCCESSFUL_STATIC_ANALYSIS, {"commandName": COMMAND_RUN_ON_FILE, "duration": "500"})
        ]

    def test_failure_is_displayed_and_returns_nothing(self, manager, display, telemetry, apex_file):
        scanner = MagicMock()
        scanner.scan = AsyncMock(side_effect=ScanFailedError("sf: command not found"))

        result = asyncio.run(self._action(scanner, manager, display, telemetry).run([apex_file], "custom.cmd"))

        assert result == []
        assert display.errors == [messages.analysis_failed("sf: command not found")]
        name, message, props = telemetry.exceptions[0]
        assert name == TELEM_FAILED_STATIC_ANALYSIS
        assert message.startswith("sf: command not found")
        assert props == {"executedCommand": "custom.cmd", "duration": "500"}

    def test_unlocated_violations_are_displayed_by_severity(self, manager, display, telemetry, apex_file):
        def engine_message(rule, severity, engine="pmd"):
            return Violation(
                rule=rule, engine=engine, message="engine says", severity=severity, locations=[CodeLocation()]
            )

        scanner = MagicMock()
        scanner.scan = AsyncMock(
            return_value=[
                engine_message("Broken", 1),
                engine_message("Meh", 3),
                engine_message("Fyi", 5),
                engine_message("UninstantiableEngineError", 1, engine="sfge"),
            ]
        )
        action = ScanAction(scanner, DiagnosticFactory(), manager, display, telemetry, clock=lambda: 0.0)

        asyncio.run(action.run([apex_file]))
        asyncio.run(action.run([apex_file]))

        assert display.errors == ["[pmd:Broken] engine says"] * 2
        assert display.warnings.count("[sfge:UninstantiableEngineError] engine says") == 1
        assert display.warnings.count("[pmd:Meh] engine says") == 2
        assert "[pmd:Fyi] engine says" in display.infos
        assert manager.files() == []

    def test_malformed_violation_is_reported_and_skipped(self, manager, display, telemetry, make_violation, apex_file):
        no_locations = Violation(rule="Empty", engine="pmd", message="m", severity=3, locations=[])
        scanner = MagicMock()
        scanner.scan = AsyncMock(return_value=[no_locations, make_violation()])

        asyncio.run(self._action(scanner, manager, display, telemetry).run([apex_file]))

        assert len(manager.get_diagnostics_for_file(apex_file)) == 1
        assert telemetry.exception_names == [TELEM_MALFORMED_VIOLATION]
