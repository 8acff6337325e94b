"""
Shared fixtures: in-memory stand-ins for the editor host and telemetry.
"""

from typing import Any, Dict, List, Optional

import pytest
from lsprotocol.types import Range

from sfca_lsp.core.types import CodeLocation, Fix, Suggestion, Violation
from sfca_lsp.documents import replace_range
from sfca_lsp.utils import path_to_uri

APEX_FILE = "/workspace/force-app/main/default/classes/Account.cls"


class FakeTelemetry:
    def __init__(self):
        self.events: List[tuple] = []
        self.exceptions: List[tuple] = []

    def send_command_event(self, name: str, properties: Dict[str, Any]) -> None:
        self.events.append((name, properties))

    def send_exception(self, name: str, message: str, properties: Optional[Dict[str, Any]] = None) -> None:
        self.exceptions.append((name, message, properties or {}))

    @property
    def event_names(self) -> List[str]:
        return [name for name, _ in self.events]

    @property
    def exception_names(self) -> List[str]:
        return [name for name, _, _ in self.exceptions]


class FakeDisplay:
    def __init__(self):
        self.infos: List[str] = []
        self.warnings: List[str] = []
        self.errors: List[str] = []

    def display_info(self, message: str) -> None:
        self.infos.append(message)

    def display_warning(self, message: str) -> None:
        self.warnings.append(message)

    def display_error(self, message: str) -> None:
        self.errors.append(message)


class FakeDocument:
    """Mutable document, shaped like pygls' TextDocument."""

    def __init__(self, text: str, uri: str = path_to_uri(APEX_FILE), language_id: Optional[str] = "apex"):
        self.uri = uri
        self.language_id = language_id
        self.version = 1
        self.text = text

    @property
    def source(self) -> str:
        return self.text


class FakeDiffPresenter:
    """Records the last diff and lets the test play the user."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.shown: List[str] = []
        self.accept = None
        self.reject = None

    async def show_diff(self, document, new_text, accept, reject) -> None:
        if self.error:
            raise self.error
        self.shown.append(new_text)
        self.accept = accept
        self.reject = reject


class FakeEditApplier:
    def __init__(self, applied: bool = True):
        self.applied = applied
        self.calls: List[tuple] = []

    async def apply_edit(self, document, rng: Range, new_text: str) -> bool:
        self.calls.append((rng, new_text))
        if self.applied:
            document.text = replace_range(document.text, rng, new_text)
        return self.applied


@pytest.fixture
def apex_file() -> str:
    return APEX_FILE


@pytest.fixture
def telemetry() -> FakeTelemetry:
    return FakeTelemetry()


@pytest.fixture
def display() -> FakeDisplay:
    return FakeDisplay()


@pytest.fixture
def diff_presenter() -> FakeDiffPresenter:
    return FakeDiffPresenter()


@pytest.fixture
def edit_applier() -> FakeEditApplier:
    return FakeEditApplier()


@pytest.fixture
def make_document():
    """Factory for FakeDocuments."""
    def _make(text: str, file: str = APEX_FILE, language_id: Optional[str] = "apex") -> FakeDocument:
        return FakeDocument(text, uri=path_to_uri(file), language_id=language_id)
    return _make


@pytest.fixture
def make_violation():
    """
    Factory for Violations with a single primary location.

    Lines and columns are 1-based, as engines report them.
    """
    def _make(
        rule: str = "AvoidDebugStatements",
        engine: str = "pmd",
        message: str = "Avoid debug statements",
        severity: int = 3,
        file: Optional[str] = APEX_FILE,
        start_line: int = 3,
        start_column: int = 9,
        end_line: Optional[int] = 3,
        end_column: Optional[int] = 30,
        fixes: Optional[List[Fix]] = None,
        suggestions: Optional[List[Suggestion]] = None,
        resources: Optional[List[str]] = None,
        extra_locations: Optional[List[CodeLocation]] = None,
    ) -> Violation:
        primary = CodeLocation(
            file=file,
            start_line=start_line,
            start_column=start_column,
            end_line=end_line,
            end_column=end_column,
        )
        return Violation(
            rule=rule,
            engine=engine,
            message=message,
            severity=severity,
            locations=[primary] + list(extra_locations or []),
            fixes=fixes or [],
            suggestions=suggestions or [],
            resources=resources or [],
        )
    return _make
