"""
MessageCollector — Time-boxed collection of one author's multi-part submission.

Pure Python + asyncio. No Discord imports. The caller manages all I/O
(reactions, status messages) and passes opaque message objects in.

When a qualifying message arrives and the author has no open window of
that kind, a window opens and a timer starts. Every later message from
the same author in the same channel is appended as a fragment; the timer
is not restarted. When the timer expires the window is removed from the
shared state and handed to the close callback.

There is no cancel: once opened, a window always runs to completion.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from models.narration import WindowKind
from tools.collector_state import CollectorState

logger = logging.getLogger("MessageCollector")

DEFAULT_WINDOW_SECONDS = 20.0


def _message_text(message: Any) -> str:
    text = getattr(message, "clean_content", None)
    if text is None:
        text = getattr(message, "content", "")
    return text or ""


def message_image_urls(message: Any) -> List[str]:
    """URLs of the message's image attachments (by MIME prefix), in order."""
    urls = []
    for attachment in getattr(message, "attachments", None) or []:
        content_type = getattr(attachment, "content_type", None) or ""
        if content_type.startswith("image"):
            urls.append(attachment.url)
    return urls


@dataclass
class CollectionWindow:
    """An open collection window. The trigger message is not a fragment."""

    kind: WindowKind
    author_id: str
    channel_id: str
    trigger: Any  # discord.Message (opaque to this module)
    duration: float
    context: Dict[str, Any] = field(default_factory=dict)  # caller data (config, status message)
    fragments: List[Any] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    task: Optional[asyncio.Task] = None

    @property
    def expires_at(self) -> float:
        return self.started_at + self.duration

    @property
    def messages(self) -> List[Any]:
        """Trigger followed by the fragments in arrival order."""
        return [self.trigger] + self.fragments

    def text(self) -> str:
        """Trigger text, then each fragment on its own line."""
        return "\n".join(_message_text(m) for m in self.messages)

    def image_urls(self) -> List[str]:
        """Image attachments of the trigger and fragments, in arrival order. Not deduplicated."""
        urls: List[str] = []
        for message in self.messages:
            urls.extend(message_image_urls(message))
        return urls


class MessageCollector:
    """Opens, feeds and closes collection windows over a shared CollectorState.

    Usage:
        collector = MessageCollector(state, on_close=my_callback)

        # In on_message handler:
        window = collector.open(WindowKind.ACTION, message, author_id, channel_id, 20)
        # window is None if the author already had one open
        collector.join(author_id, channel_id, later_message)
    """

    def __init__(
        self,
        state: CollectorState,
        on_close: Optional[Callable[[CollectionWindow], Awaitable[None]]] = None,
    ):
        self.state = state
        self._on_close = on_close

    def open(
        self,
        kind: WindowKind,
        trigger: Any,
        author_id: str,
        channel_id: str,
        duration: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[CollectionWindow]:
        """Open a window and start its timer.

        Synchronous on purpose: the check and the registration happen with no
        suspension point in between, so two messages can never both open one.
        Returns None if the author already has an open window of this kind.
        """
        window = CollectionWindow(
            kind=kind,
            author_id=str(author_id),
            channel_id=str(channel_id),
            trigger=trigger,
            duration=duration or DEFAULT_WINDOW_SECONDS,
            context=dict(context or {}),
        )
        if not self.state.try_open(kind, window.author_id, window):
            logger.info(f"{kind.value} window already open for {author_id}")
            return None

        window.task = asyncio.create_task(self._window_timer(window))
        logger.info(f"{kind.value} window opened for {author_id} in {channel_id} ({window.duration}s)")
        return window

    def join(self, author_id: str, channel_id: str, message: Any) -> Optional[CollectionWindow]:
        """Append `message` to the author's open window in this channel.

        Returns the window, or None if there is no open window to join.
        """
        window = self.state.find_for_channel(str(author_id), str(channel_id))
        if window is None:
            return None
        window.fragments.append(message)
        logger.info(
            f"Fragment collected for {author_id} "
            f"(total: {len(window.fragments)})"
        )
        return window

    async def _window_timer(self, window: CollectionWindow):
        """Timer task. When it expires, the window is closed and handed off."""
        await asyncio.sleep(window.duration)
        await self._close(window)

    async def _close(self, window: CollectionWindow):
        # Clear state first so the author can open a new window while this one is processed
        self.state.close(window.kind, window.author_id)
        logger.info(
            f"{window.kind.value} window expired for {window.author_id}. "
            f"{len(window.fragments)} fragment(s)."
        )

        if self._on_close:
            try:
                await self._on_close(window)
            except Exception as e:
                logger.error(f"Window close callback error: {e}", exc_info=True)
