"""
LSP editor host.

Implements the Display, DiffPresenter and EditApplier protocols on top of a
pygls LanguageServer. Diffs are shown as a unified diff inside a
`window/showMessageRequest` with Accept/Reject buttons; the user's answer is
awaited on a background task so `show_diff` returns as soon as the request
is on screen.
"""

import asyncio
import difflib
import logging
from typing import Awaitable, Set

from lsprotocol.types import (
    ApplyWorkspaceEditParams,
    MessageActionItem,
    MessageType,
    Range,
    ShowMessageParams,
    ShowMessageRequestParams,
    TextEdit,
    WorkspaceEdit,
)
from pygls.lsp.server import LanguageServer

from . import messages
from .core.errors import DiffPresentationError
from .display import DiffCallback
from .documents import Document
from .utils import uri_to_path

logger = logging.getLogger(__name__)

EDIT_LABEL = "Code Analyzer"


def unified_diff(old_text: str, new_text: str, name: str) -> str:
    """Render the change from `old_text` to `new_text` as a unified diff."""
    return "".join(
        difflib.unified_diff(
            old_text.splitlines(keepends=True),
            new_text.splitlines(keepends=True),
            fromfile=name,
            tofile=f"{name} (fixed)",
        )
    )


class LspHost:
    """Editor-facing side effects, routed through the language server."""

    def __init__(self, server: LanguageServer):
        self.server = server
        self._pending: Set[asyncio.Task] = set()

    # --- Display ---

    def _show(self, kind: MessageType, message: str) -> None:
        self.server.window_show_message(ShowMessageParams(type=kind, message=message))

    def display_info(self, message: str) -> None:
        logger.info(message)
        self._show(MessageType.Info, message)

    def display_warning(self, message: str) -> None:
        logger.warning(message)
        self._show(MessageType.Warning, message)

    def display_error(self, message: str) -> None:
        logger.error(message)
        self._show(MessageType.Error, message)

    # --- DiffPresenter ---

    async def show_diff(
        self, document: Document, new_text: str, accept: DiffCallback, reject: DiffCallback
    ) -> None:
        name = uri_to_path(document.uri).name
        diff_text = unified_diff(document.source, new_text, name)
        params = ShowMessageRequestParams(
            type=MessageType.Info,
            message=messages.review_fix(name, diff_text),
            actions=[
                MessageActionItem(title=messages.DIFF_ACCEPT),
                MessageActionItem(title=messages.DIFF_REJECT),
            ],
        )
        try:
            response = self.server.window_show_message_request_async(params)
        except Exception as e:
            raise DiffPresentationError(f"Unable to show the proposed change: {e}") from e

        task = asyncio.ensure_future(self._await_choice(response, accept, reject))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    @staticmethod
    async def _await_choice(response: Awaitable, accept: DiffCallback, reject: DiffCallback) -> None:
        try:
            item = await response
        except Exception as e:
            # A dismissed or failed request counts as a rejection.
            logger.warning(f"Diff request did not complete: {e}")
            item = None

        if item is not None and item.title == messages.DIFF_ACCEPT:
            await accept()
        else:
            await reject()

    # --- EditApplier ---

    async def apply_edit(self, document: Document, rng: Range, new_text: str) -> bool:
        edit = WorkspaceEdit(changes={document.uri: [TextEdit(range=rng, new_text=new_text)]})
        result = await self.server.workspace_apply_edit_async(
            ApplyWorkspaceEditParams(edit=edit, label=EDIT_LABEL)
        )
        if result is None or not result.applied:
            logger.warning(f"Client refused edit to {document.uri}: {getattr(result, 'failure_reason', None)}")
            return False
        return True
