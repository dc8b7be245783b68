from __future__ import annotations

import asyncio
import logging
import os
from typing import Awaitable, Callable

logger = logging.getLogger("grillroom.session.debouncer")

ANALYSIS_QUIET_PERIOD_SEC = max(0.05, float(os.getenv("ANALYSIS_QUIET_PERIOD_SEC", "2.0")))


class UtteranceDebouncer:
    """Coalesces candidate speech fragments into one analysis unit.

    Every fragment restarts a single quiet-period timer. When the timer
    fires, the space-joined buffer is handed to ``on_flush`` and cleared.
    ``cancel()`` drops the buffer without flushing it.
    """

    IDLE = "idle"
    BUFFERING = "buffering"

    def __init__(
        self,
        on_flush: Callable[[str], Awaitable[None]],
        quiet_period_sec: float = ANALYSIS_QUIET_PERIOD_SEC,
    ):
        self._on_flush = on_flush
        self.quiet_period_sec = max(0.0, float(quiet_period_sec))
        self._fragments: list[str] = []
        self._timer: asyncio.Task | None = None
        self._deadline: float | None = None

    @property
    def state(self) -> str:
        return self.BUFFERING if self._fragments else self.IDLE

    @property
    def pending_text(self) -> str:
        return " ".join(self._fragments)

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def push(self, text: str) -> bool:
        fragment = " ".join(str(text or "").split())
        if not fragment:
            return False

        self._fragments.append(fragment)
        self._restart_timer()
        return True

    def _restart_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._deadline = loop.time() + self.quiet_period_sec
        self._timer = loop.create_task(self._wait_then_flush())

    async def _wait_then_flush(self) -> None:
        await asyncio.sleep(self.quiet_period_sec)
        text = self.pending_text
        self._fragments = []
        self._deadline = None
        # Detach before flushing so a fragment arriving mid-flush cannot cancel it.
        self._timer = None
        if not text:
            return
        try:
            await self._on_flush(text)
        except Exception as exc:
            logger.warning("debounce flush failed | err=%s", exc)

    def cancel(self) -> str:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
        self._deadline = None
        discarded = self.pending_text
        self._fragments = []
        return discarded
