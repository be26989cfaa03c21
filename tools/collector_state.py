"""
CollectorState — In-memory registry of open collection windows and Q&A cooldowns.

Owned by the pipeline and injected into the classifier and the collector.
Every operation is synchronous, so under asyncio each check-and-set runs
without a suspension point in the middle. Keys never collide across
authors, so no lock is needed. State is process-local and lost on restart.
"""

import time
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from models.narration import WindowKind

logger = logging.getLogger("CollectorState")

# Mention Q&A cooldown per author
QA_COOLDOWN_SECONDS = 10 * 60


class CollectorState:
    """Open windows keyed by (kind, author_id) plus per-author cooldown expiries."""

    def __init__(
        self,
        cooldown_seconds: float = QA_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._windows: Dict[Tuple[WindowKind, str], Any] = {}
        self._cooldowns: Dict[str, float] = {}  # author_id → expiry (clock time)

    # ------------------------------------------------------------------
    # Collection windows
    # ------------------------------------------------------------------

    def has_open(self, kind: WindowKind, author_id: str) -> bool:
        return (kind, str(author_id)) in self._windows

    def try_open(self, kind: WindowKind, author_id: str, window: Any) -> bool:
        """Register `window` unless the author already has one of this kind.

        Returns True if registered, False if a window was already open.
        """
        key = (kind, str(author_id))
        if key in self._windows:
            return False
        self._windows[key] = window
        return True

    def get(self, kind: WindowKind, author_id: str) -> Optional[Any]:
        return self._windows.get((kind, str(author_id)))

    def find_for_channel(self, author_id: str, channel_id: str) -> Optional[Any]:
        """The author's open window in `channel_id`, of any kind, or None."""
        author_id = str(author_id)
        channel_id = str(channel_id)
        for (_, owner), window in self._windows.items():
            if owner == author_id and str(getattr(window, "channel_id", "")) == channel_id:
                return window
        return None

    def close(self, kind: WindowKind, author_id: str) -> Optional[Any]:
        """Remove and return the window, or None if none was open."""
        return self._windows.pop((kind, str(author_id)), None)

    @property
    def open_count(self) -> int:
        return len(self._windows)

    @property
    def windows_snapshot(self) -> List[Any]:
        return list(self._windows.values())

    # ------------------------------------------------------------------
    # Q&A cooldowns
    # ------------------------------------------------------------------

    def _prune(self, now: float) -> None:
        expired = [a for a, until in self._cooldowns.items() if until <= now]
        for author_id in expired:
            del self._cooldowns[author_id]

    def is_cooling_down(self, author_id: str) -> bool:
        now = self._clock()
        self._prune(now)
        return str(author_id) in self._cooldowns

    def try_start_cooldown(self, author_id: str) -> bool:
        """Start the author's cooldown.

        Returns False (and changes nothing) if the author is already cooling down.
        """
        now = self._clock()
        self._prune(now)
        author_id = str(author_id)
        if author_id in self._cooldowns:
            return False
        self._cooldowns[author_id] = now + self.cooldown_seconds
        logger.debug(f"Cooldown started for {author_id} ({self.cooldown_seconds}s)")
        return True

    @property
    def cooldown_count(self) -> int:
        self._prune(self._clock())
        return len(self._cooldowns)
