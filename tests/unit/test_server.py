"""
Unit tests for the LSP server wiring and its handlers.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, PropertyMock, patch

import pytest
from lsprotocol.types import (
    ClientCapabilities,
    DidChangeTextDocumentParams,
    DidSaveTextDocumentParams,
    HoverParams,
    InitializeParams,
    MessageType,
    Position,
    Range,
    TextDocumentContentChangePartial,
    TextDocumentIdentifier,
    VersionedTextDocumentIdentifier,
)

from sfca_lsp import server as lsp
from sfca_lsp.config import AnalysisSettings, Settings
from sfca_lsp.constants import (
    QF_COMMAND_A4D_FIX,
    QF_COMMAND_DIAGNOSTICS_IN_RANGE,
    QF_COMMAND_SUPPRESS_ON_CLASS,
    TELEM_COMMAND_FAILED,
)
from sfca_lsp.core.types import CodeLocation, Suggestion
from sfca_lsp.fixes import FixWorkflowState, LLMFixGenerator, SuppressionFixGenerator, ViolationFixesGenerator
from sfca_lsp.scanner import CodeAnalyzerCliScanner
from sfca_lsp.utils import path_to_uri


def _range(sl, sc, el, ec) -> Range:
    return Range(start=Position(line=sl, character=sc), end=Position(line=el, character=ec))


@pytest.fixture
def scanner():
    mock = MagicMock()
    mock.scan = AsyncMock(return_value=[])
    return mock


@pytest.fixture
def ls(tmp_path, scanner, telemetry):
    """A wired server with its outgoing notifications captured."""
    server = lsp.build_server(Settings(), tmp_path, scanner=scanner, telemetry=telemetry)
    server.text_document_publish_diagnostics = MagicMock()
    server.window_show_message = MagicMock()
    return server


@pytest.fixture
def open_document(ls, make_document):
    """Serve `document` from the server's workspace."""
    def _open(document):
        workspace = MagicMock()
        workspace.get_text_document.return_value = document
        patcher = patch.object(type(ls), "workspace", new_callable=PropertyMock, return_value=workspace)
        patcher.start()
        return patcher

    patchers = []
    yield lambda document: patchers.append(_open(document))
    for p in patchers:
        p.stop()


class TestBuildRegistry:
    """Test fix generator registration."""

    def test_without_llm(self, scanner):
        registry = lsp.build_registry(scanner)

        assert isinstance(registry.find("pmd", QF_COMMAND_SUPPRESS_ON_CLASS), SuppressionFixGenerator)
        assert registry.find("pmd", QF_COMMAND_A4D_FIX) is None
        assert [type(g) for g in registry.generators_for("eslint")] == [ViolationFixesGenerator]

    def test_with_llm(self, scanner):
        registry = lsp.build_registry(scanner, llm_service=MagicMock())
        assert isinstance(registry.find("pmd", QF_COMMAND_A4D_FIX), LLMFixGenerator)
        assert registry.find("eslint", QF_COMMAND_A4D_FIX) is None


class TestArgumentHelpers:
    def test_command_args_unwraps_single_list(self):
        assert lsp._command_args((["file:///a", "id-1"],)) == ["file:///a", "id-1"]
        assert lsp._command_args(("file:///a", "id-1")) == ["file:///a", "id-1"]

    @pytest.mark.parametrize(
        "value",
        [
            _range(1, 2, 3, 4),
            {"start": {"line": 1, "character": 2}, "end": {"line": 3, "character": 4}},
            [{"line": 1, "character": 2}, {"line": 3, "character": 4}],
        ],
    )
    def test_to_range(self, value):
        assert lsp._to_range(value) == _range(1, 2, 3, 4)


class TestServerWiring:
    """Test the components a built server carries."""

    def test_defaults(self, tmp_path):
        server = lsp.build_server(Settings(), tmp_path)

        assert isinstance(server.scanner, CodeAnalyzerCliScanner)
        assert server.scanner.cwd == tmp_path.resolve()
        assert server.apex_guru_action.service is None

    def test_store_changes_are_published(self, ls, make_violation, apex_file):
        diagnostic = ls.factory.from_violation(make_violation())

        ls.diagnostic_manager.add_diagnostics([diagnostic])

        params = ls.text_document_publish_diagnostics.call_args.args[0]
        assert params.uri == path_to_uri(apex_file)
        assert [d.data for d in params.diagnostics] == [{"id": diagnostic.id}]

    def test_servers_are_independent(self, tmp_path, make_violation):
        first = lsp.build_server(Settings(), tmp_path, telemetry=MagicMock())
        second = lsp.build_server(Settings(), tmp_path, telemetry=MagicMock())
        first.text_document_publish_diagnostics = MagicMock()

        first.diagnostic_manager.add_diagnostics([first.factory.from_violation(make_violation())])

        assert second.diagnostic_manager.files() == []


class TestFeatures:
    """Test the LSP feature handlers."""

    def test_initialize_moves_scanner_root(self, tmp_path):
        server = lsp.build_server(Settings(), tmp_path / "..")
        workspace = tmp_path / "project"
        workspace.mkdir()

        lsp.initialize(server, InitializeParams(capabilities=ClientCapabilities(), process_id=None, root_uri=workspace.as_uri()))

        assert server.root == workspace.resolve()
        assert server.scanner.cwd == workspace.resolve()

    def test_initialize_without_root(self, ls, tmp_path):
        lsp.initialize(ls, InitializeParams(capabilities=ClientCapabilities(), process_id=None))
        assert ls.root == tmp_path.resolve()

    def test_did_save_scans(self, ls, scanner, make_violation, apex_file):
        scanner.scan.return_value = [make_violation()]
        params = DidSaveTextDocumentParams(text_document=TextDocumentIdentifier(uri=path_to_uri(apex_file)))

        asyncio.run(lsp.did_save(ls, params))

        scanner.scan.assert_awaited_once()
        assert ls.diagnostic_manager.has_violations(apex_file)

    def test_did_save_respects_setting(self, tmp_path, scanner, telemetry, apex_file):
        settings = Settings(analysis=AnalysisSettings(analyze_on_save=False))
        server = lsp.build_server(settings, tmp_path, scanner=scanner, telemetry=telemetry)
        params = DidSaveTextDocumentParams(text_document=TextDocumentIdentifier(uri=path_to_uri(apex_file)))

        asyncio.run(lsp.did_save(server, params))

        assert not scanner.scan.called

    def test_did_change_marks_overlapping_stale(self, ls, make_violation, apex_file):
        diagnostic = ls.factory.from_violation(make_violation())  # line 2, cols 8..30
        ls.diagnostic_manager.add_diagnostics([diagnostic])
        params = DidChangeTextDocumentParams(
            text_document=VersionedTextDocumentIdentifier(uri=path_to_uri(apex_file), version=2),
            content_changes=[TextDocumentContentChangePartial(range=_range(2, 10, 2, 11), text="")],
        )

        lsp.did_change(ls, params)

        assert diagnostic.is_stale

    def test_hover(self, ls, make_violation, apex_file):
        suggestion = Suggestion(location=CodeLocation(file=apex_file, start_line=3, start_column=9), message="Log it.")
        ls.diagnostic_manager.add_diagnostics([ls.factory.from_violation(make_violation(suggestions=[suggestion]))])

        result = lsp.hover(
            ls,
            HoverParams(text_document=TextDocumentIdentifier(uri=path_to_uri(apex_file)), position=Position(line=2, character=8)),
        )

        assert "Log it." in result.contents.value


class TestCommands:
    """Test the workspace/executeCommand handlers."""

    def test_run_on_file_returns_count(self, ls, scanner, make_violation, apex_file):
        scanner.scan.return_value = [make_violation(), make_violation(start_line=5, end_line=5)]

        assert asyncio.run(lsp.run_on_file(ls, [path_to_uri(apex_file)])) == 2

    def test_remove_diagnostics_on_file(self, ls, make_violation, apex_file):
        ls.diagnostic_manager.add_diagnostics([ls.factory.from_violation(make_violation())])

        lsp.remove_diagnostics_on_file(ls, path_to_uri(apex_file))

        assert not ls.diagnostic_manager.has_violations(apex_file)

    def test_remove_diagnostics_in_range(self, ls, make_violation, apex_file):
        ls.diagnostic_manager.add_diagnostics(
            [
                ls.factory.from_violation(make_violation()),
                ls.factory.from_violation(make_violation(start_line=8, end_line=8)),
            ]
        )
        rng = {"start": {"line": 2, "character": 0}, "end": {"line": 2, "character": 5}}

        assert lsp.remove_diagnostics_in_range(ls, path_to_uri(apex_file), rng) == 1
        assert len(ls.diagnostic_manager.get_diagnostics_for_file(apex_file)) == 1

    def test_run_apex_guru_without_org(self, ls, apex_file):
        asyncio.run(lsp.run_apex_guru_on_file(ls, path_to_uri(apex_file)))

        params = ls.window_show_message.call_args.args[0]
        assert "ApexGuru is not enabled" in params.message

    def test_fix_command_runs_workflow(self, ls, make_violation, make_document, open_document, apex_file):
        diagnostic = ls.factory.from_violation(make_violation())
        ls.diagnostic_manager.add_diagnostics([diagnostic])
        document = make_document("public class Account {}\n")
        open_document(document)
        ls.fix_action = MagicMock()
        ls.fix_action.run = AsyncMock(return_value=MagicMock(state=FixWorkflowState.DIFF_PRESENTED))

        state = asyncio.run(lsp.suppress_on_class(ls, [path_to_uri(apex_file), diagnostic.id]))

        assert state == str(FixWorkflowState.DIFF_PRESENTED)
        generator, passed_diagnostic, passed_document = ls.fix_action.run.call_args.args
        assert isinstance(generator, SuppressionFixGenerator)
        assert passed_diagnostic is diagnostic
        assert passed_document is document

    def test_fix_command_for_unknown_diagnostic(self, ls, apex_file):
        assert asyncio.run(lsp.apply_violation_fixes(ls, path_to_uri(apex_file), "missing")) is None

    def test_fix_command_without_generator(self, ls, make_violation, apex_file):
        diagnostic = ls.factory.from_violation(make_violation())
        ls.diagnostic_manager.add_diagnostics([diagnostic])

        assert asyncio.run(lsp.a4d_fix(ls, path_to_uri(apex_file), diagnostic.id)) is None


class TestCommandFailures:
    """Test that malformed command arguments are reported instead of escaping."""

    def _error(self, ls) -> str:
        params = ls.window_show_message.call_args.args[0]
        assert params.type == MessageType.Error
        return params.message

    def test_range_command_with_one_argument(self, ls, telemetry, apex_file):
        assert lsp.remove_diagnostics_in_range(ls, path_to_uri(apex_file)) is None

        assert f"Command '{QF_COMMAND_DIAGNOSTICS_IN_RANGE}' failed" in self._error(ls)
        assert telemetry.exception_names == [TELEM_COMMAND_FAILED]
        assert telemetry.exceptions[0][2] == {"executedCommand": QF_COMMAND_DIAGNOSTICS_IN_RANGE}

    def test_range_with_missing_keys(self, ls, telemetry, apex_file):
        rng = {"start": {"line": 2}}

        assert lsp.remove_diagnostics_in_range(ls, path_to_uri(apex_file), rng) is None

        assert "Not a range" in self._error(ls)
        assert telemetry.exception_names == [TELEM_COMMAND_FAILED]

    def test_fix_command_with_one_argument(self, ls, telemetry, apex_file):
        assert asyncio.run(lsp.suppress_on_class(ls, path_to_uri(apex_file))) is None

        assert "expects 2 arguments, got 1" in self._error(ls)
        assert telemetry.exception_names == [TELEM_COMMAND_FAILED]

    def test_apex_guru_without_arguments(self, ls, telemetry):
        assert asyncio.run(lsp.run_apex_guru_on_file(ls)) is None
        assert telemetry.exception_names == [TELEM_COMMAND_FAILED]
