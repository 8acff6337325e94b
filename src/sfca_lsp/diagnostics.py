"""
Diagnostic Factory.

Builds editor diagnostics from engine violations. A diagnostic is always the
projection of exactly one violation; it carries a live range that the
reconciler keeps in step with edits, and a staleness flag that fix workflows
must honor before touching the document.
"""

import logging
import uuid
from typing import Callable, Iterable, List, Optional, Protocol

from lsprotocol.types import (
    CodeDescription,
    Diagnostic,
    DiagnosticRelatedInformation,
    DiagnosticSeverity,
    Location,
    Range,
)

from . import messages
from .constants import DIAGNOSTIC_SOURCE_SUFFIX, SINGLE_LINE_RULES
from .core.errors import MalformedViolationError
from .core.types import CodeLocation, SeverityBucket, Violation
from .ranges import collapse_to_start_line, copy_range, to_range
from .utils import file_key, path_to_uri

logger = logging.getLogger(__name__)

_LSP_SEVERITY = {
    SeverityBucket.ERROR: DiagnosticSeverity.Error,
    SeverityBucket.WARNING: DiagnosticSeverity.Warning,
    SeverityBucket.INFO: DiagnosticSeverity.Information,
}


class SeverityPolicy(Protocol):
    """Maps an engine severity (1 = most severe, 5 = least) onto a bucket."""

    def bucket_for(self, severity: int) -> SeverityBucket: ...


class ThresholdSeverityPolicy:
    """
    Threshold-based severity policy.

    Severities up to `error_max` are errors, up to `warning_max` are warnings,
    anything above is informational.
    """

    def __init__(self, error_max: int = 2, warning_max: int = 4):
        self.error_max = error_max
        self.warning_max = warning_max

    def bucket_for(self, severity: int) -> SeverityBucket:
        if severity <= self.error_max:
            return SeverityBucket.ERROR
        if severity <= self.warning_max:
            return SeverityBucket.WARNING
        return SeverityBucket.INFO


class RelatedInformation:
    """A secondary location shown alongside a diagnostic."""

    def __init__(self, file: str, range: Range, message: str):
        self.file = file_key(file)
        self.range = range
        self.message = message

    def to_lsp(self) -> DiagnosticRelatedInformation:
        return DiagnosticRelatedInformation(
            location=Location(uri=path_to_uri(self.file), range=self.range),
            message=self.message,
        )


class AnalyzerDiagnostic:
    """
    Editor-facing projection of a Violation.

    Only DiagnosticFactory constructs these. `range`, `fix_ranges`,
    `suggestion_ranges` and `pending_fix_range` are mutated by the reconciler;
    everything else is fixed at creation.
    """

    def __init__(
        self,
        violation: Violation,
        file: str,
        range: Range,
        severity_bucket: SeverityBucket,
        related_information: List[RelatedInformation],
        fix_ranges: List[Optional[Range]],
        suggestion_ranges: List[Optional[Range]],
    ):
        self._violation = violation
        self._is_stale = False
        self.id = uuid.uuid4().hex
        self.file = file_key(file)
        self.uri = path_to_uri(file)
        self.range = range
        self.severity_bucket = severity_bucket
        self.source = f"{violation.engine} {DIAGNOSTIC_SOURCE_SUFFIX}"
        self.message = messages.diagnostic_message(violation.severity, violation.message.strip())
        self.related_information = related_information
        # Aligned with violation.fixes / violation.suggestions; None for
        # locations that live in another file.
        self.fix_ranges = fix_ranges
        self.suggestion_ranges = suggestion_ranges
        # Where a fix under review would be applied; None once an edit overlaps it.
        self.pending_fix_range: Optional[Range] = None

    @property
    def violation(self) -> Violation:
        return self._violation

    @property
    def is_stale(self) -> bool:
        return self._is_stale

    def mark_stale(self) -> None:
        """Flag the diagnostic as stale. There is no way back."""
        self._is_stale = True

    @property
    def rule(self) -> str:
        return self._violation.rule

    @property
    def engine(self) -> str:
        return self._violation.engine

    @property
    def code_href(self) -> Optional[str]:
        return self._violation.resources[0] if self._violation.resources else None

    def to_lsp(self) -> Diagnostic:
        """Render for publishing. Stale diagnostics are shown dimmed."""
        message = self.message
        severity = _LSP_SEVERITY[self.severity_bucket]
        if self._is_stale:
            message = f"{messages.STALE_DIAGNOSTIC_PREFIX}\n{message}"
            severity = DiagnosticSeverity.Information

        return Diagnostic(
            range=self.range,
            message=message,
            severity=severity,
            code=self.rule,
            code_description=CodeDescription(href=self.code_href) if self.code_href else None,
            source=self.source,
            related_information=[info.to_lsp() for info in self.related_information] or None,
            data={"id": self.id},
        )

    def __repr__(self) -> str:
        return (
            f"AnalyzerDiagnostic({self.engine}:{self.rule} {self.file} "
            f"{self.range.start.line}:{self.range.start.character}"
            f"{' stale' if self._is_stale else ''})"
        )


class DiagnosticFactory:
    """Builds AnalyzerDiagnostics, applying severity and rule-specific range policy."""

    def __init__(self, severity_policy: Optional[SeverityPolicy] = None):
        self.severity_policy = severity_policy or ThresholdSeverityPolicy()

    def from_violation(self, violation: Violation) -> AnalyzerDiagnostic:
        """
        Build a diagnostic from a violation.

        Args:
            violation: The engine violation.

        Returns:
            AnalyzerDiagnostic: The diagnostic, positioned at the primary location.

        Raises:
            MalformedViolationError: If the violation has no usable primary location.
        """
        if not violation.locations:
            raise MalformedViolationError(
                f"Violation '{violation.engine}:{violation.rule}' has no code locations."
            )
        primary = violation.primary_location
        if primary is None:
            raise MalformedViolationError(
                f"Violation '{violation.engine}:{violation.rule}' has primary location index "
                f"{violation.primary_location_index} but only {len(violation.locations)} locations."
            )
        if not primary.file:
            raise MalformedViolationError(
                f"Violation '{violation.engine}:{violation.rule}' has a primary location without a file."
            )

        rng = to_range(primary)
        # Some engines report noisy multi-line spans for these rules.
        # Remove entries from SINGLE_LINE_RULES once the upstream issues are fixed.
        if violation.rule in SINGLE_LINE_RULES:
            rng = collapse_to_start_line(rng)

        primary_file = file_key(primary.file)
        return AnalyzerDiagnostic(
            violation=violation,
            file=primary.file,
            range=rng,
            severity_bucket=self.severity_policy.bucket_for(violation.severity),
            related_information=self._related_information(violation, primary.file),
            fix_ranges=[_range_in_file(f.location, primary_file) for f in violation.fixes],
            suggestion_ranges=[_range_in_file(s.location, primary_file) for s in violation.suggestions],
        )

    def from_violations(
        self,
        violations: Iterable[Violation],
        on_error: Optional[Callable[[Violation, MalformedViolationError], None]] = None,
    ) -> List[AnalyzerDiagnostic]:
        """
        Build diagnostics for a batch, skipping malformed violations.

        Args:
            violations: Violations from one scan.
            on_error: Called for each violation that could not be converted.

        Returns:
            List[AnalyzerDiagnostic]: Diagnostics for the well-formed violations.
        """
        diagnostics: List[AnalyzerDiagnostic] = []
        for violation in violations:
            try:
                diagnostics.append(self.from_violation(violation))
            except MalformedViolationError as e:
                logger.warning(f"Skipping malformed violation: {e}")
                if on_error:
                    on_error(violation, e)
        return diagnostics

    def _related_information(self, violation: Violation, primary_file: str) -> List[RelatedInformation]:
        related = [
            RelatedInformation(
                file=s.location.file or primary_file,
                range=to_range(s.location),
                message=s.message,
            )
            for s in violation.suggestions
        ]
        for i, location in enumerate(violation.locations):
            if i == violation.primary_location_index or not location.file:
                continue
            related.append(
                RelatedInformation(
                    file=location.file,
                    range=to_range(location),
                    message=location.comment or messages.DEFAULT_ALTERNATIVE_LOCATION_MESSAGE,
                )
            )
        return related


def _range_in_file(location: CodeLocation, primary_file: str) -> Optional[Range]:
    # A location without a file belongs to the primary file.
    if location.file and file_key(location.file) != primary_file:
        return None
    return copy_range(to_range(location))
