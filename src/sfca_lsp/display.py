"""
Editor host interfaces.

The fix workflow and the actions talk to the editor only through these
protocols. `sfca_lsp.host.LspHost` implements all three over LSP; tests use
in-memory fakes.
"""

from typing import Awaitable, Callable, Protocol

from lsprotocol.types import Range

from .documents import Document

DiffCallback = Callable[[], Awaitable[None]]


class Display(Protocol):
    def display_info(self, message: str) -> None: ...

    def display_warning(self, message: str) -> None: ...

    def display_error(self, message: str) -> None: ...


class DiffPresenter(Protocol):
    """
    Shows a proposed document change.

    `show_diff` returns once the diff is on screen. Exactly one of `accept`
    or `reject` is awaited later, when the user decides.
    """

    async def show_diff(
        self, document: Document, new_text: str, accept: DiffCallback, reject: DiffCallback
    ) -> None: ...


class EditApplier(Protocol):
    async def apply_edit(self, document: Document, rng: Range, new_text: str) -> bool: ...
