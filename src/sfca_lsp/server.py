"""
LSP Server implementation for Code Analyzer.

This server is the bridge between the editor and the scanning engines. It
uses pygls to speak the Language Server Protocol; every component is built
in `build_server` and handed to the pieces that need it, so a test can build
as many independent servers as it likes.
"""

import functools
import inspect
import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence

from lsprotocol.types import (
    INITIALIZE,
    TEXT_DOCUMENT_CODE_ACTION,
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    TEXT_DOCUMENT_DID_SAVE,
    TEXT_DOCUMENT_HOVER,
    CodeAction,
    CodeActionKind,
    CodeActionOptions,
    CodeActionParams,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    DidSaveTextDocumentParams,
    Hover,
    HoverParams,
    InitializeParams,
    Position,
    PublishDiagnosticsParams,
    Range,
)
from pygls.lsp.server import LanguageServer

from . import __version__, messages
from .actions import CodeActionProvider
from .config import Settings, config_path_for, load_settings
from .constants import (
    COMMAND_REMOVE_DIAGNOSTICS_ON_FILE,
    COMMAND_RUN_APEX_GURU_ON_FILE,
    COMMAND_RUN_ON_FILE,
    ENGINE_PMD,
    KNOWN_ENGINES,
    QF_COMMAND_A4D_FIX,
    QF_COMMAND_APPLY_VIOLATION_FIXES,
    QF_COMMAND_DIAGNOSTICS_IN_RANGE,
    QF_COMMAND_SUPPRESS_ON_CLASS,
    TELEM_COMMAND_FAILED,
)
from .core.errors import InvalidCommandArgumentsError, get_error_message, get_error_message_with_stack
from .core.telemetry import TelemetryService, create_telemetry_service
from .diagnostics import DiagnosticFactory, ThresholdSeverityPolicy
from .fixes import (
    FixGeneratorRegistry,
    LLMFixGenerator,
    SuggestFixWithDiffAction,
    SuppressionFixGenerator,
    ViolationFixesGenerator,
)
from .fixes.generators import LLMService
from .host import LspHost
from .hover import resolve_hover
from .manager import DiagnosticManager
from .reconciler import TextEdit
from .remote import ApexGuruRunAction, ApexGuruService, create_org_connection
from .scanner import CodeAnalyzerCliScanner, ScanAction, Scanner
from .utils import path_to_uri, uri_to_path

logger = logging.getLogger(__name__)

SERVER_NAME = "sfca-lsp"


class SfcaLanguageServer(LanguageServer):
    """
    LanguageServer carrying the Code Analyzer components.

    Attributes:
        settings: Workspace settings.
        root: Workspace root; the scanner runs from here.
        diagnostic_manager: The diagnostic store. Every change is republished.
        registry: Fix generators by engine.
    """

    def __init__(
        self,
        settings: Settings,
        root: Path,
        *,
        scanner: Optional[Scanner] = None,
        telemetry: Optional[TelemetryService] = None,
        llm_service: Optional[LLMService] = None,
        apex_guru_service: Optional[ApexGuruService] = None,
    ):
        super().__init__(SERVER_NAME, f"v{__version__}")
        self.settings = settings
        self.root = root
        self.host = LspHost(self)
        self.telemetry = telemetry or create_telemetry_service(
            config_path_for(root), settings.telemetry.enabled
        )

        self.diagnostic_manager = DiagnosticManager()
        self.diagnostic_manager.on_change(self.publish_diagnostics)
        self.factory = DiagnosticFactory(
            ThresholdSeverityPolicy(settings.severity.error_max, settings.severity.warning_max)
        )

        self.scanner = scanner or CodeAnalyzerCliScanner(settings.scanner, cwd=root)
        self.scan_action = ScanAction(
            self.scanner, self.factory, self.diagnostic_manager, self.host, self.telemetry
        )

        if apex_guru_service is None:
            connection = create_org_connection(settings.apex_guru)
            if connection is not None:
                apex_guru_service = ApexGuruService(connection, settings.apex_guru)
        self.apex_guru_action = ApexGuruRunAction(
            apex_guru_service, self.factory, self.diagnostic_manager, self.host, self.telemetry
        )

        self.registry = build_registry(self.scanner, llm_service)
        self.fix_action = SuggestFixWithDiffAction(
            self.diagnostic_manager, self.host, self.host, self.host, self.telemetry
        )
        self.code_actions = CodeActionProvider(self.diagnostic_manager, self.registry)

    def publish_diagnostics(self, file: str) -> None:
        diagnostics = [d.to_lsp() for d in self.diagnostic_manager.get_diagnostics_for_file(file)]
        self.text_document_publish_diagnostics(
            PublishDiagnosticsParams(uri=path_to_uri(file), diagnostics=diagnostics)
        )


def build_registry(scanner: Scanner, llm_service: Optional[LLMService] = None) -> FixGeneratorRegistry:
    """
    Register the fix generators.

    LLM fixes are offered only when an LLM service is available; the rule
    descriptions for its prompt come from the scanner.

    Raises:
        UnknownEngineError: If a generator is registered for an unknown engine.
    """
    registry = FixGeneratorRegistry()
    violation_fixes = ViolationFixesGenerator()
    for engine in sorted(KNOWN_ENGINES):
        registry.register(engine, violation_fixes)
    registry.register(ENGINE_PMD, SuppressionFixGenerator())
    if llm_service is not None:
        registry.register(ENGINE_PMD, LLMFixGenerator(llm_service, scanner))
    registry.validate(KNOWN_ENGINES)
    return registry


def _command_args(args: Sequence[Any]) -> List[Any]:
    # Some clients send the arguments array as a single positional argument.
    if len(args) == 1 and isinstance(args[0], list):
        return list(args[0])
    return list(args)


def _leading_args(command: str, args: Sequence[Any], count: int) -> List[Any]:
    values = _command_args(args)
    if len(values) < count:
        raise InvalidCommandArgumentsError(f"{command} expects {count} arguments, got {len(values)}")
    return values[:count]


def _to_range(value: Any) -> Range:
    if isinstance(value, Range):
        return value
    try:
        if isinstance(value, (list, tuple)):
            # VS Code serializes a Range as [start, end].
            start, end = value
        else:
            start, end = value["start"], value["end"]
        return Range(
            start=Position(line=int(start["line"]), character=int(start["character"])),
            end=Position(line=int(end["line"]), character=int(end["character"])),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidCommandArgumentsError(f"Not a range: {value!r}") from e


def reported(command: str):
    """
    Wrap a command handler so a failure reaches the user and telemetry.

    The wrapped handler returns None instead of raising.
    """
    def report(ls: SfcaLanguageServer, err: Exception) -> None:
        logger.error(f"{command} failed: {err}")
        ls.host.display_error(messages.command_failed(command, get_error_message(err)))
        ls.telemetry.send_exception(
            TELEM_COMMAND_FAILED, get_error_message_with_stack(err), {"executedCommand": command}
        )

    def decorator(handler):
        if inspect.iscoroutinefunction(handler):
            @functools.wraps(handler)
            async def run_async(ls, *args):
                try:
                    return await handler(ls, *args)
                except Exception as e:
                    report(ls, e)
                    return None
            return run_async

        @functools.wraps(handler)
        def run(ls, *args):
            try:
                return handler(ls, *args)
            except Exception as e:
                report(ls, e)
                return None
        return run

    return decorator


# --- Features ---

def initialize(ls: SfcaLanguageServer, params: InitializeParams):
    """Point the scanner at the client's workspace root."""
    root_uri = params.root_uri or params.root_path
    if not root_uri:
        logger.warning("No root URI provided. Scanning from the current directory.")
        return

    ls.root = uri_to_path(root_uri) if "://" in root_uri else Path(root_uri).resolve()
    if isinstance(ls.scanner, CodeAnalyzerCliScanner):
        ls.scanner.cwd = ls.root
    logger.info(f"Initializing Code Analyzer LSP for root: {ls.root}")


async def did_open(ls: SfcaLanguageServer, params: DidOpenTextDocumentParams):
    """Scan newly opened files when configured to."""
    if ls.settings.analysis.analyze_on_open:
        await ls.scan_action.run([uri_to_path(params.text_document.uri)], COMMAND_RUN_ON_FILE)


async def did_save(ls: SfcaLanguageServer, params: DidSaveTextDocumentParams):
    """Rescan saved files when configured to."""
    if ls.settings.analysis.analyze_on_save:
        await ls.scan_action.run([uri_to_path(params.text_document.uri)], COMMAND_RUN_ON_FILE)


def did_change(ls: SfcaLanguageServer, params: DidChangeTextDocumentParams):
    """Move or invalidate diagnostics under the edits."""
    edits = [TextEdit.from_lsp(change) for change in params.content_changes]
    ls.diagnostic_manager.handle_text_document_change(uri_to_path(params.text_document.uri), edits)


def code_action(ls: SfcaLanguageServer, params: CodeActionParams) -> List[CodeAction]:
    document = ls.workspace.get_text_document(params.text_document.uri)
    return ls.code_actions.provide(document, params.range)


def hover(ls: SfcaLanguageServer, params: HoverParams) -> Optional[Hover]:
    return resolve_hover(params.text_document.uri, params.position, ls.diagnostic_manager)


# --- Commands ---

@reported(COMMAND_RUN_ON_FILE)
async def run_on_file(ls: SfcaLanguageServer, *args) -> int:
    """Scan the given files. Returns the number of diagnostics published."""
    targets = [uri_to_path(uri) for uri in _command_args(args)]
    diagnostics = await ls.scan_action.run(targets, COMMAND_RUN_ON_FILE)
    return len(diagnostics)


@reported(COMMAND_REMOVE_DIAGNOSTICS_ON_FILE)
def remove_diagnostics_on_file(ls: SfcaLanguageServer, *args) -> None:
    uris = _command_args(args)
    ls.diagnostic_manager.clear_diagnostics_for_files([uri_to_path(uri) for uri in uris])


@reported(QF_COMMAND_DIAGNOSTICS_IN_RANGE)
def remove_diagnostics_in_range(ls: SfcaLanguageServer, *args) -> int:
    uri, rng = _leading_args(QF_COMMAND_DIAGNOSTICS_IN_RANGE, args, 2)
    removed = ls.diagnostic_manager.clear_diagnostics_in_range(uri_to_path(uri), _to_range(rng))
    return len(removed)


@reported(COMMAND_RUN_APEX_GURU_ON_FILE)
async def run_apex_guru_on_file(ls: SfcaLanguageServer, *args) -> None:
    [uri] = _leading_args(COMMAND_RUN_APEX_GURU_ON_FILE, args, 1)
    await ls.apex_guru_action.run(uri_to_path(uri), COMMAND_RUN_APEX_GURU_ON_FILE)


async def run_fix(ls: SfcaLanguageServer, command: str, args: Sequence[Any]) -> Optional[str]:
    """
    Run the fix workflow for the diagnostic named by `[uri, diagnostic_id]`.

    Returns:
        str | None: The workflow's final state, or None when the diagnostic
        or its generator no longer exists.
    """
    uri, diagnostic_id = _leading_args(command, args, 2)
    diagnostic = ls.diagnostic_manager.find_diagnostic(uri_to_path(uri), diagnostic_id)
    if diagnostic is None:
        logger.warning(f"{command}: no diagnostic {diagnostic_id} in {uri}")
        return None

    generator = ls.registry.find(diagnostic.engine, command)
    if generator is None:
        logger.warning(f"{command}: no fix generator for engine '{diagnostic.engine}'")
        return None

    document = ls.workspace.get_text_document(uri)
    outcome = await ls.fix_action.run(generator, diagnostic, document)
    logger.info(f"{command} for {diagnostic!r}: {outcome.state}")
    return str(outcome.state)


@reported(QF_COMMAND_APPLY_VIOLATION_FIXES)
async def apply_violation_fixes(ls: SfcaLanguageServer, *args):
    return await run_fix(ls, QF_COMMAND_APPLY_VIOLATION_FIXES, args)


@reported(QF_COMMAND_SUPPRESS_ON_CLASS)
async def suppress_on_class(ls: SfcaLanguageServer, *args):
    return await run_fix(ls, QF_COMMAND_SUPPRESS_ON_CLASS, args)


@reported(QF_COMMAND_A4D_FIX)
async def a4d_fix(ls: SfcaLanguageServer, *args):
    return await run_fix(ls, QF_COMMAND_A4D_FIX, args)


def build_server(
    settings: Optional[Settings] = None,
    root: Optional[Path] = None,
    *,
    scanner: Optional[Scanner] = None,
    telemetry: Optional[TelemetryService] = None,
    llm_service: Optional[LLMService] = None,
    apex_guru_service: Optional[ApexGuruService] = None,
) -> SfcaLanguageServer:
    """
    Build a fully wired language server.

    Args:
        settings: Workspace settings; loaded from `root` when omitted.
        root: Workspace root. Defaults to the current directory and is
            replaced by the client's root on initialize.
        scanner: Scanning engine; the Code Analyzer CLI by default.
        telemetry: Telemetry sink; chosen from settings by default.
        llm_service: Enables LLM fixes when given.
        apex_guru_service: ApexGuru client; built from settings by default.

    Returns:
        SfcaLanguageServer: A server ready for `start_io` or `start_tcp`.
    """
    root = (root or Path.cwd()).resolve()
    settings = settings or load_settings(root)
    server = SfcaLanguageServer(
        settings,
        root,
        scanner=scanner,
        telemetry=telemetry,
        llm_service=llm_service,
        apex_guru_service=apex_guru_service,
    )

    server.feature(INITIALIZE)(initialize)
    server.feature(TEXT_DOCUMENT_DID_OPEN)(did_open)
    server.feature(TEXT_DOCUMENT_DID_SAVE)(did_save)
    server.feature(TEXT_DOCUMENT_DID_CHANGE)(did_change)
    server.feature(
        TEXT_DOCUMENT_CODE_ACTION,
        CodeActionOptions(code_action_kinds=[CodeActionKind.QuickFix]),
    )(code_action)
    server.feature(TEXT_DOCUMENT_HOVER)(hover)

    server.command(COMMAND_RUN_ON_FILE)(run_on_file)
    server.command(COMMAND_REMOVE_DIAGNOSTICS_ON_FILE)(remove_diagnostics_on_file)
    server.command(QF_COMMAND_DIAGNOSTICS_IN_RANGE)(remove_diagnostics_in_range)
    server.command(COMMAND_RUN_APEX_GURU_ON_FILE)(run_apex_guru_on_file)
    server.command(QF_COMMAND_APPLY_VIOLATION_FIXES)(apply_violation_fixes)
    server.command(QF_COMMAND_SUPPRESS_ON_CLASS)(suppress_on_class)
    server.command(QF_COMMAND_A4D_FIX)(a4d_fix)

    return server


def configure_logging(level: str = "INFO") -> None:
    """Log to stderr; stdout carries the LSP stream."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )


def main():
    """Entry point for the LSP server."""
    root = Path.cwd()
    settings = load_settings(root)
    configure_logging(settings.log_level)
    build_server(settings, root).start_io()


if __name__ == "__main__":
    main()
