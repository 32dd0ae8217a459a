"""Session storage.

The orchestrator only talks to :class:`SessionStore`, so the in-memory map
used here can be swapped for an external keyed store without touching it.
Nothing here survives a process restart.
"""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Tuple

from astrologer.core.models import Session


class SessionStore(ABC):
    @abstractmethod
    def create(self) -> str:
        """Allocate a fresh session id. The record itself is stored later via put()."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[Session]:
        ...

    @abstractmethod
    def put(self, session_id: str, session: Session) -> None:
        ...

    @abstractmethod
    def delete(self, session_id: str) -> None:
        ...

    @abstractmethod
    def all(self) -> Iterable[Tuple[str, Session]]:
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def create(self) -> str:
        return uuid.uuid4().hex

    def get(self, session_id: str) -> Optional[Session]:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def put(self, session_id: str, session: Session) -> None:
        self._sessions[session_id] = session

    def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def all(self) -> Iterable[Tuple[str, Session]]:
        # Snapshot, so callers may delete while iterating.
        return list(self._sessions.items())

    def __len__(self) -> int:
        return len(self._sessions)
