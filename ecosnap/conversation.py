# ecosnap/conversation.py — per-user message log, bounded, with an optional system preamble
from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from .schemas import Message

DEFAULT_LIMIT = 30


class ConversationStore:
    """
    Ordered history per user key. After every append the history is trimmed to
    `limit` messages: a system message at index 0 is kept, then the newest
    limit-1 messages. `clear` resets to the system message when a preamble is
    configured, otherwise drops the key and its idle lock.

    Mutations are synchronous (no await between append and trim), so they are
    atomic on the event loop. `turn(user_key)` serializes whole turns for a key.
    """

    def __init__(self, limit: int = DEFAULT_LIMIT, system_prompt: Optional[str] = None):
        if limit < 2:
            raise ValueError("history limit must be at least 2")
        self.limit = limit
        self.system_prompt = system_prompt
        self._histories: Dict[str, List[Message]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._turns: Dict[str, int] = {}  # turns queued or running per key

    def _get_or_create(self, user_key: str) -> List[Message]:
        history = self._histories.get(user_key)
        if history is None:
            history = [Message(role="system", content=self.system_prompt)] if self.system_prompt else []
            self._histories[user_key] = history
        return history

    def lock(self, user_key: str) -> asyncio.Lock:
        lk = self._locks.get(user_key)
        if lk is None:
            lk = self._locks[user_key] = asyncio.Lock()
        return lk

    @asynccontextmanager
    async def turn(self, user_key: str):
        """Hold the key's lock for one turn; an idle lock for a cleared key is dropped after."""
        self._turns[user_key] = self._turns.get(user_key, 0) + 1
        try:
            async with self.lock(user_key):
                yield
        finally:
            self._turns[user_key] -= 1
            if not self._turns[user_key]:
                del self._turns[user_key]
                if user_key not in self._histories:
                    self._locks.pop(user_key, None)

    def append(self, user_key: str, message: Message) -> None:
        history = self._get_or_create(user_key)
        history.append(message)
        self._trim(user_key)

    def _trim(self, user_key: str) -> None:
        history = self._histories[user_key]
        if len(history) <= self.limit:
            return
        if history[0].role == "system":
            trimmed = [history[0]] + history[-(self.limit - 1):]
        else:
            trimmed = history[-self.limit:]
        self._histories[user_key] = trimmed
        assert len(trimmed) <= self.limit

    def get_history(self, user_key: str) -> List[Message]:
        return list(self._histories.get(user_key, []))

    def conversation_view(self, user_key: str) -> List[Message]:
        """History without the system preamble."""
        return [m for m in self._histories.get(user_key, []) if m.role != "system"]

    def clear(self, user_key: str) -> None:
        if self.system_prompt:
            self._histories[user_key] = [Message(role="system", content=self.system_prompt)]
            return
        self._histories.pop(user_key, None)
        lk = self._locks.get(user_key)
        if user_key not in self._turns and not (lk and lk.locked()):
            self._locks.pop(user_key, None)

    def __len__(self) -> int:
        return len(self._histories)
