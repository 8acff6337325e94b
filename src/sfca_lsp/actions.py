"""
Code actions.

Builds the quick fixes offered for the diagnostics under the user's
selection. The line-level NOPMD suppression is a plain workspace edit; every
other fix runs through a command so it goes through the diff workflow.
"""

import logging
from typing import List, Set

from lsprotocol.types import (
    CodeAction,
    CodeActionKind,
    Command,
    Range,
    TextEdit,
    WorkspaceEdit,
)

from . import messages
from .constants import ENGINE_PMD, QF_COMMAND_DIAGNOSTICS_IN_RANGE
from .diagnostics import AnalyzerDiagnostic
from .documents import Document, language_of
from .fixes.registry import FixGeneratorRegistry
from .manager import DiagnosticManager
from .ranges import ranges_intersect
from .suppressions import line_level_edit
from .utils import uri_to_path

logger = logging.getLogger(__name__)


class CodeActionProvider:
    """
    Offers quick fixes for the diagnostics intersecting a selection.

    Attributes:
        diagnostic_manager: Source of the diagnostics for the document.
        registry: The fix generators, keyed by engine.
    """

    def __init__(self, diagnostic_manager: DiagnosticManager, registry: FixGeneratorRegistry):
        self.diagnostic_manager = diagnostic_manager
        self.registry = registry

    def diagnostics_in_selection(self, document: Document, selection: Range) -> List[AnalyzerDiagnostic]:
        return [
            d
            for d in self.diagnostic_manager.get_diagnostics_for_file(uri_to_path(document.uri))
            if not d.is_stale and ranges_intersect(d.range, selection)
        ]

    def provide(self, document: Document, selection: Range) -> List[CodeAction]:
        """
        Handle textDocument/codeAction request.

        Args:
            document: The open document.
            selection: The user's selection or cursor.

        Returns:
            List[CodeAction]: Actions in diagnostic order. The line-level
            suppression appears at most once per line.
        """
        actions: List[CodeAction] = []
        suppressed_lines: Set[int] = set()

        for diagnostic in self.diagnostics_in_selection(document, selection):
            if diagnostic.engine == ENGINE_PMD:
                # NOPMD goes on the violation's first line regardless of its span.
                line = diagnostic.range.start.line
                if line not in suppressed_lines:
                    action = self._line_level_suppression(document, diagnostic)
                    if action is not None:
                        actions.append(action)
                        suppressed_lines.add(line)

            for generator in self.registry.generators_for(diagnostic.engine):
                if not generator.is_relevant(diagnostic, document):
                    continue
                title = generator.title(diagnostic)
                actions.append(
                    CodeAction(
                        title=title,
                        kind=CodeActionKind.QuickFix,
                        diagnostics=[diagnostic.to_lsp()],
                        command=Command(
                            title=title,
                            command=generator.command,
                            arguments=[document.uri, diagnostic.id],
                        ),
                    )
                )

        logger.debug(f"{len(actions)} code actions for {document.uri}")
        return actions

    def _line_level_suppression(self, document: Document, diagnostic: AnalyzerDiagnostic) -> CodeAction | None:
        edit = line_level_edit(document.source, diagnostic.range.start.line, language_of(document))
        if edit is None:
            return None

        return CodeAction(
            title=messages.SUPPRESS_PMD_VIOLATIONS_ON_LINE,
            kind=CodeActionKind.QuickFix,
            diagnostics=[diagnostic.to_lsp()],
            edit=WorkspaceEdit(
                changes={document.uri: [TextEdit(range=edit.range, new_text=edit.new_text)]}
            ),
            command=Command(
                title="Clear diagnostics on this line",
                command=QF_COMMAND_DIAGNOSTICS_IN_RANGE,
                arguments=[document.uri, diagnostic.range],
            ),
        )
