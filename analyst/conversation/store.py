"""
Per-conversation turn history.

Storage is unbounded; only reads for prompt assembly are windowed to the
most recent K turns. Appends for the same key are serialized with a
per-key asyncio.Lock so a user/assistant pair always lands together and
in order. Different keys never share a lock.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from analyst.match_context import MatchContext
from analyst.models import ConversationTurnRecord

logger = logging.getLogger(__name__)

USER = "user"
ASSISTANT = "assistant"
DEFAULT_WINDOW = 12


@dataclass(frozen=True)
class ConversationTurn:
    role: str  # "user" | "assistant"
    content: str

    def __post_init__(self):
        if self.role not in (USER, ASSISTANT):
            raise ValueError(f"Invalid conversation role: {self.role!r}")


def conversation_key(room_id: Optional[str], match: MatchContext) -> str:
    """Room id when the question comes from a room, else the team-pair key."""
    return room_id or match.pair_key


class _KeyLocks:
    """asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str):
        # No await between lookup and count, so this is atomic within one event loop
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class ConversationStore(ABC):
    """Keyed conversation history."""

    def __init__(self, window: int = DEFAULT_WINDOW):
        self.window = window
        self._locks = _KeyLocks()

    async def append(self, key: str, turn: ConversationTurn) -> None:
        async with self._locks.hold(key):
            await self._write(key, [turn])

    async def append_exchange(self, key: str, question: str, answer: str) -> None:
        """Append the user question and assistant answer as one atomic step."""
        async with self._locks.hold(key):
            await self._write(key, [
                ConversationTurn(USER, question),
                ConversationTurn(ASSISTANT, answer),
            ])

    async def recent(self, key: str, k: Optional[int] = None) -> list[ConversationTurn]:
        """Most recent k turns (default: the configured window), oldest first."""
        k = self.window if k is None else k
        if k <= 0:
            return []
        return await self._read_last(key, k)

    @abstractmethod
    async def _write(self, key: str, turns: list[ConversationTurn]) -> None:
        """Persist turns in order. Called with the key's lock held."""
        pass

    @abstractmethod
    async def _read_last(self, key: str, k: int) -> list[ConversationTurn]:
        pass


class InMemoryConversationStore(ConversationStore):
    """Process-local history, used in tests and single-worker deployments."""

    def __init__(self, window: int = DEFAULT_WINDOW):
        super().__init__(window)
        self._turns: dict[str, list[ConversationTurn]] = defaultdict(list)

    async def _write(self, key: str, turns: list[ConversationTurn]) -> None:
        self._turns[key].extend(turns)

    async def _read_last(self, key: str, k: int) -> list[ConversationTurn]:
        return list(self._turns.get(key, [])[-k:])

    def total_turns(self, key: str) -> int:
        return len(self._turns.get(key, []))


class SQLConversationStore(ConversationStore):
    """History persisted in analyst_conversation_turns."""

    def __init__(self, session_factory: sessionmaker, window: int = DEFAULT_WINDOW):
        super().__init__(window)
        self.session_factory = session_factory

    async def _write(self, key: str, turns: list[ConversationTurn]) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.max(ConversationTurnRecord.seq)).where(
                    ConversationTurnRecord.conversation_key == key
                )
            )
            last_seq = result.scalar() or 0
            for offset, turn in enumerate(turns, start=1):
                session.add(ConversationTurnRecord(
                    conversation_key=key,
                    seq=last_seq + offset,
                    role=turn.role,
                    content=turn.content,
                ))
            await session.commit()

    async def _read_last(self, key: str, k: int) -> list[ConversationTurn]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ConversationTurnRecord)
                .where(ConversationTurnRecord.conversation_key == key)
                .order_by(ConversationTurnRecord.seq.desc())
                .limit(k)
            )
            rows = result.scalars().all()
        return [ConversationTurn(row.role, row.content) for row in reversed(rows)]
