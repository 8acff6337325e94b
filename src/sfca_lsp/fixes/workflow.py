"""
Fix-Suggestion/Diff workflow.

Drives one fix from proposal to decision:

    idle -> validating -> no_fix_available | suggestion_failed | diff_presented
    diff_presented -> accepted | rejected | stale_aborted | diff_tool_error

Every terminal transition sends exactly one telemetry call, and nothing
raises past `run`. The diagnostic stays in the store until the user accepts,
and accepting re-checks that the code under the fix has not moved.
"""

import logging
import time
from enum import StrEnum
from typing import Any, Callable, Dict, Optional, Set

from .. import messages
from ..constants import (
    NO_FIX_REASON_EMPTY,
    NO_FIX_REASON_SAME_CODE,
    TELEM_QF_DIFF_FAILED,
    TELEM_QF_FIX_STALE,
    TELEM_QF_NO_FIX_SUGGESTED,
)
from ..core.errors import (
    DiffPresentationError,
    StaleDiagnosticError,
    get_error_message,
    get_error_message_with_stack,
)
from ..core.telemetry import TelemetryService
from ..diagnostics import AnalyzerDiagnostic
from ..display import DiffPresenter, Display, EditApplier
from ..documents import Document, language_of
from ..manager import DiagnosticManager
from .generators import FixGenerator
from .suggestion import CodeFixData, FixSuggestion

logger = logging.getLogger(__name__)


class FixWorkflowState(StrEnum):
    IDLE = "idle"
    VALIDATING = "validating"
    NO_FIX_AVAILABLE = "no_fix_available"
    DIFF_PRESENTED = "diff_presented"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    DIFF_TOOL_ERROR = "diff_tool_error"
    SUGGESTION_FAILED = "suggestion_failed"
    STALE_ABORTED = "stale_aborted"
    BUSY = "busy"


class FixWorkflowOutcome:
    """
    Result of one workflow run.

    While the diff is on screen the state is `diff_presented`; the accept or
    reject callback moves it to its final state later.
    """

    def __init__(
        self,
        state: FixWorkflowState,
        reason: Optional[str] = None,
        suggestion: Optional[FixSuggestion] = None,
        error: Optional[BaseException] = None,
    ):
        self.state = state
        self.reason = reason
        self.suggestion = suggestion
        self.error = error

    def __repr__(self) -> str:
        return f"FixWorkflowOutcome({self.state}, reason={self.reason!r})"


class SuggestFixWithDiffAction:
    """
    Runs fix generators through the diff workflow.

    Only one workflow may be in flight per diagnostic; a second run for the
    same diagnostic returns `busy` and does nothing.
    """

    def __init__(
        self,
        diagnostic_manager: DiagnosticManager,
        diff_presenter: DiffPresenter,
        edit_applier: EditApplier,
        display: Display,
        telemetry: TelemetryService,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.diagnostic_manager = diagnostic_manager
        self.diff_presenter = diff_presenter
        self.edit_applier = edit_applier
        self.display = display
        self.telemetry = telemetry
        self.clock = clock
        self._in_flight: Set[str] = set()

    def is_in_flight(self, diagnostic: AnalyzerDiagnostic) -> bool:
        return diagnostic.id in self._in_flight

    async def run(
        self, generator: FixGenerator, diagnostic: AnalyzerDiagnostic, document: Document
    ) -> FixWorkflowOutcome:
        """
        Propose a fix for `diagnostic` and present it as a diff.

        Args:
            generator: The strategy that computes the fix.
            diagnostic: The diagnostic being fixed.
            document: The open document containing it.

        Returns:
            FixWorkflowOutcome: The state the workflow reached.
        """
        if diagnostic.id in self._in_flight:
            logger.info(f"Fix already in progress for {diagnostic!r}; ignoring")
            return FixWorkflowOutcome(FixWorkflowState.BUSY)

        self._in_flight.add(diagnostic.id)
        outcome: Optional[FixWorkflowOutcome] = None
        try:
            outcome = await self._run(generator, diagnostic, document)
            return outcome
        finally:
            # The accept/reject callback releases a presented diff.
            if outcome is None or outcome.state != FixWorkflowState.DIFF_PRESENTED:
                self._in_flight.discard(diagnostic.id)

    async def _run(
        self, generator: FixGenerator, diagnostic: AnalyzerDiagnostic, document: Document
    ) -> FixWorkflowOutcome:
        start = self.clock()

        if not generator.is_relevant(diagnostic, document):
            # Callers filter first; this only guards against a race with an edit.
            logger.debug(f"{generator.command} is not relevant for {diagnostic!r}")
            return FixWorkflowOutcome(FixWorkflowState.IDLE)

        try:
            proposal = await generator.compute_fix(diagnostic, document)
        except Exception as e:
            logger.error(f"Fix suggestion failed for {diagnostic!r}: {e}")
            self._report_error(e, generator.events.suggestion_failed, generator.command, start)
            return FixWorkflowOutcome(FixWorkflowState.SUGGESTION_FAILED, error=e)

        language = language_of(document)
        if proposal is None:
            return self._no_fix(generator, NO_FIX_REASON_EMPTY, language)

        suggestion = FixSuggestion(
            CodeFixData(
                document=document,
                diagnostic=diagnostic,
                range_to_replace=proposal.range,
                replacement_text=proposal.replacement_text,
            ),
            proposal.explanation,
        )
        if suggestion.is_same_code():
            return self._no_fix(generator, NO_FIX_REASON_SAME_CODE, language)

        logger.debug(
            f"Fix Diff:\n=== ORIGINAL CODE ===:\n{suggestion.original_code_to_be_fixed}\n\n"
            f"=== FIXED CODE ===:\n{suggestion.fixed_code}"
        )

        properties: Dict[str, Any] = {
            "commandSource": generator.command,
            "completionNumLines": str(len(suggestion.fixed_code_lines())),
            "languageType": language,
            "engineName": diagnostic.engine,
            "ruleName": diagnostic.rule,
        }
        outcome = FixWorkflowOutcome(FixWorkflowState.DIFF_PRESENTED, suggestion=suggestion)

        async def accept() -> None:
            await self._accept(generator, suggestion, outcome, properties)

        async def reject() -> None:
            self._reject(generator, suggestion, outcome, properties)

        diagnostic.pending_fix_range = suggestion.range
        try:
            await self.diff_presenter.show_diff(document, suggestion.fixed_document_code(), accept, reject)
        except Exception as e:
            diagnostic.pending_fix_range = None
            error = e if isinstance(e, DiffPresentationError) else DiffPresentationError(get_error_message(e))
            logger.error(f"Unable to present diff for {diagnostic!r}: {e}")
            self._report_error(error, TELEM_QF_DIFF_FAILED, generator.command, start)
            return FixWorkflowOutcome(FixWorkflowState.DIFF_TOOL_ERROR, suggestion=suggestion, error=error)

        self.telemetry.send_command_event(generator.events.suggested, properties)
        if suggestion.explanation:
            self.display.display_info(messages.explanation_of_fix(suggestion.explanation))
        return outcome

    def _no_fix(self, generator: FixGenerator, reason: str, language: str) -> FixWorkflowOutcome:
        self.display.display_info(messages.NO_FIX_SUGGESTED)
        self.telemetry.send_command_event(
            TELEM_QF_NO_FIX_SUGGESTED,
            {"commandSource": generator.command, "languageType": language, "reason": reason},
        )
        return FixWorkflowOutcome(FixWorkflowState.NO_FIX_AVAILABLE, reason=reason)

    async def _accept(
        self,
        generator: FixGenerator,
        suggestion: FixSuggestion,
        outcome: FixWorkflowOutcome,
        properties: Dict[str, Any],
    ) -> None:
        diagnostic = suggestion.code_fix_data.diagnostic
        document = suggestion.code_fix_data.document
        start = self.clock()
        try:
            # Edits made while the diff was open have moved the fix range.
            fix_range = diagnostic.pending_fix_range
            if diagnostic.is_stale or fix_range is None or not suggestion.is_unchanged_in(document, fix_range):
                error = StaleDiagnosticError(messages.FIX_IS_STALE)
                self._report_error(error, TELEM_QF_FIX_STALE, generator.command, start)
                outcome.state = FixWorkflowState.STALE_ABORTED
                outcome.error = error
                return

            applied = await self.edit_applier.apply_edit(document, fix_range, suggestion.fixed_code)
            if not applied:
                raise DiffPresentationError(messages.EDIT_NOT_APPLIED)

            self.diagnostic_manager.clear_diagnostic(diagnostic)
            self.telemetry.send_command_event(generator.events.accepted, properties)
            outcome.state = FixWorkflowState.ACCEPTED
        except Exception as e:
            logger.error(f"Unable to apply fix for {diagnostic!r}: {e}")
            self._report_error(e, TELEM_QF_DIFF_FAILED, generator.command, start)
            outcome.state = FixWorkflowState.DIFF_TOOL_ERROR
            outcome.error = e
        finally:
            diagnostic.pending_fix_range = None
            self._in_flight.discard(diagnostic.id)

    def _reject(
        self,
        generator: FixGenerator,
        suggestion: FixSuggestion,
        outcome: FixWorkflowOutcome,
        properties: Dict[str, Any],
    ) -> None:
        self.telemetry.send_command_event(generator.events.rejected, properties)
        outcome.state = FixWorkflowState.REJECTED
        diagnostic = suggestion.code_fix_data.diagnostic
        diagnostic.pending_fix_range = None
        self._in_flight.discard(diagnostic.id)

    def _report_error(self, err: BaseException, category: str, command: str, start: float) -> None:
        self.display.display_error(get_error_message(err))
        self.telemetry.send_exception(
            category,
            get_error_message_with_stack(err),
            {"executedCommand": command, "duration": str(int((self.clock() - start) * 1000))},
        )
