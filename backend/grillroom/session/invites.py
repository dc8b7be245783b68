from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from grillroom.session.models import utc_now_iso

logger = logging.getLogger("grillroom.session.invites")


class InviteNotifier(Protocol):
    async def mark_completed(self, invite_id: str) -> None:
        ...


class LocalInviteNotifier:
    """Tracks invite completion in process.

    Invites are owned by the hiring workflow; this side only ever flips
    them to completed.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._completed: dict[str, str] = {}

    async def mark_completed(self, invite_id: str) -> None:
        key = str(invite_id or "").strip()
        if not key:
            return
        async with self._lock:
            self._completed.setdefault(key, utc_now_iso())
        logger.info("invite marked completed | invite_id=%s", key)

    async def completed_at(self, invite_id: str) -> str | None:
        async with self._lock:
            return self._completed.get(str(invite_id or "").strip())


invite_notifier = LocalInviteNotifier()
