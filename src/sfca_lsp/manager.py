"""
Diagnostic State Manager.

Holds every diagnostic the server currently knows about, grouped per file.
All operations are synchronous, so no caller ever observes a half-updated
store. Listeners are told which file changed; the LSP layer republishes that
file's diagnostics from the listener.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from lsprotocol.types import Range

from .diagnostics import AnalyzerDiagnostic
from .reconciler import TextEdit, reconcile
from .utils import file_key

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]


class DiagnosticManager:
    """
    Per-file store of AnalyzerDiagnostics.

    Files are keyed by resolved path. A file with no diagnostics has no
    entry, so `has_violations` is a plain membership test. Diagnostics are
    kept in insertion order and never deduplicated.
    """

    def __init__(self):
        self._diagnostics: Dict[str, List[AnalyzerDiagnostic]] = {}
        self._listeners: List[ChangeListener] = []

    def on_change(self, listener: ChangeListener) -> None:
        """Register a callback invoked with the file key after every mutation."""
        self._listeners.append(listener)

    def _notify(self, file: str) -> None:
        for listener in self._listeners:
            try:
                listener(file)
            except Exception as e:
                logger.error(f"Diagnostic listener failed for {file}: {e}", exc_info=True)

    def _set(self, file: str, diagnostics: List[AnalyzerDiagnostic]) -> None:
        if diagnostics:
            self._diagnostics[file] = diagnostics
        else:
            self._diagnostics.pop(file, None)

    # --- Mutations ---

    def add_diagnostics(self, diagnostics: Iterable[AnalyzerDiagnostic]) -> None:
        """Append diagnostics to their files' collections."""
        touched: List[str] = []
        for diagnostic in diagnostics:
            self._diagnostics.setdefault(diagnostic.file, []).append(diagnostic)
            if diagnostic.file not in touched:
                touched.append(diagnostic.file)
        for file in touched:
            self._notify(file)

    def clear_all_diagnostics(self) -> None:
        files = list(self._diagnostics)
        self._diagnostics.clear()
        for file in files:
            self._notify(file)

    def clear_diagnostic(self, diagnostic: AnalyzerDiagnostic) -> None:
        """Remove one diagnostic instance. Structurally equal diagnostics are kept."""
        self.clear_diagnostics([diagnostic])

    def clear_diagnostics(self, diagnostics: Iterable[AnalyzerDiagnostic]) -> None:
        by_file: Dict[str, List[AnalyzerDiagnostic]] = {}
        for diagnostic in diagnostics:
            by_file.setdefault(diagnostic.file, []).append(diagnostic)

        for file, to_remove in by_file.items():
            current = self._diagnostics.get(file)
            if not current:
                continue
            remaining = [d for d in current if not any(d is r for r in to_remove)]
            if len(remaining) != len(current):
                self._set(file, remaining)
                self._notify(file)

    def clear_diagnostics_for_files(self, files: Iterable[str | Path]) -> None:
        """Remove every diagnostic of exactly the listed files. Idempotent."""
        for file in files:
            key = file_key(file)
            if self._diagnostics.pop(key, None) is not None:
                self._notify(key)

    def clear_diagnostics_in_range(self, file: str | Path, rng: Range) -> List[AnalyzerDiagnostic]:
        """
        Remove diagnostics whose lines lie within `rng`.

        Matching compares line numbers only: a diagnostic is removed when it
        starts on or after `rng`'s start line and ends on or before its end
        line. Columns are ignored, so every diagnostic on the same lines goes.

        Args:
            file: The file whose diagnostics are cleared.
            rng: The range selecting diagnostics.

        Returns:
            List[AnalyzerDiagnostic]: The removed diagnostics.
        """
        key = file_key(file)
        current = self._diagnostics.get(key)
        if not current:
            return []

        removed: List[AnalyzerDiagnostic] = []
        remaining: List[AnalyzerDiagnostic] = []
        for d in current:
            if d.range.start.line >= rng.start.line and d.range.end.line <= rng.end.line:
                removed.append(d)
            else:
                remaining.append(d)

        if removed:
            self._set(key, remaining)
            self._notify(key)
        return removed

    def handle_text_document_change(self, file: str | Path, edits: Iterable[TextEdit]) -> None:
        """Translate or invalidate the file's diagnostics for a batch of edits."""
        key = file_key(file)
        current = self._diagnostics.get(key)
        if not current:
            return
        reconcile(current, list(edits))
        self._notify(key)

    # --- Queries ---

    def get_diagnostics_for_file(self, file: str | Path) -> Tuple[AnalyzerDiagnostic, ...]:
        return tuple(self._diagnostics.get(file_key(file), ()))

    def find_diagnostic(self, file: str | Path, diagnostic_id: str) -> Optional[AnalyzerDiagnostic]:
        for d in self._diagnostics.get(file_key(file), ()):
            if d.id == diagnostic_id:
                return d
        return None

    def has_violations(self, file: str | Path) -> bool:
        return file_key(file) in self._diagnostics

    def files(self) -> List[str]:
        return list(self._diagnostics)
