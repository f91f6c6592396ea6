"""Routing of transcribed text to its destination.

Normal capture appends the text to the chat thread as a new user turn.
Clipboard capture pastes it into whatever application has focus, through
the native shell. Clipboard text never reaches the chat thread.
"""

from enum import Enum
from typing import Protocol

from murmur.logging import get_logger

logger = get_logger(__name__)


class CaptureMode(str, Enum):
    """Where a recording's transcript ends up."""

    NORMAL = "normal"
    CLIPBOARD = "clipboard"


class DispatchError(Exception):
    """Delivering the transcript failed."""

    pass


class ClipboardPaster(Protocol):
    """Native clipboard paste command (perform_clipboard_paste)."""

    async def paste(self, text: str) -> None: ...


class ChatComposer(Protocol):
    """Chat thread that accepts a new user turn."""

    async def append_user_turn(self, text: str) -> None: ...


class DispatchRouter:
    def __init__(self, clipboard: ClipboardPaster, composer: ChatComposer):
        self._clipboard = clipboard
        self._composer = composer

    async def dispatch(self, text: str, mode: CaptureMode) -> None:
        """Deliver text according to the capture mode.

        Empty or whitespace-only text is dropped.

        Raises:
            DispatchError: The clipboard paste or the chat request failed.
        """
        if not text.strip():
            logger.info("dispatch_skipped", reason="empty_text", mode=mode.value)
            return

        if mode == CaptureMode.CLIPBOARD:
            try:
                await self._clipboard.paste(text)
            except Exception as e:
                logger.error("clipboard_paste_failed", error=str(e))
                raise DispatchError(f"Clipboard paste failed: {e}") from e
            logger.info("dispatched", mode=mode.value, text_chars=len(text))
            return

        try:
            await self._composer.append_user_turn(text)
        except Exception as e:
            logger.error("chat_append_failed", error=str(e))
            raise DispatchError(f"Chat request failed: {e}") from e
        logger.info("dispatched", mode=mode.value, text_chars=len(text))
