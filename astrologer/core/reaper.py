from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from astrologer.core.models import utcnow
from astrologer.core.session_store import SessionStore


logger = logging.getLogger(__name__)


class SessionReaper:
    """Evicts sessions older than ``max_age`` every ``interval`` seconds."""

    def __init__(
        self,
        store: SessionStore,
        max_age: timedelta = timedelta(hours=24),
        interval: float = 3600.0,
    ) -> None:
        self.store = store
        self.max_age = max_age
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    def sweep(self, now: Optional[datetime] = None) -> int:
        try:
            cutoff = (now or utcnow()) - self.max_age
            expired = [sid for sid, session in self.store.all() if session.created_at < cutoff]
            for sid in expired:
                self.store.delete(sid)
        except Exception:
            logger.exception("Session sweep failed")
            return 0

        if expired:
            logger.info("Reaped %s expired sessions, %s active", len(expired), len(self.store))
        return len(expired)

    async def run(self) -> None:
        while True:
            self.sweep()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="session-reaper")
            logger.info(
                "Session reaper started: interval=%ss max_age=%s", self.interval, self.max_age
            )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Session reaper stopped")
