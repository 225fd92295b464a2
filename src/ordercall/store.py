"""In-memory conversation store.

Sessions live for the duration of a call only. Every read-modify-write on a
call goes through ``store.lock(call_id)``, which serializes events for the
same call in the order they arrived while leaving other calls untouched.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from ordercall.session import CallSession
from ordercall.tools import Customer

logger = logging.getLogger(__name__)


class SessionExistsError(Exception):
    pass


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class ConversationStore:
    def __init__(self):
        self._sessions: dict[str, CallSession] = {}
        self._locks: dict[str, _KeyLock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, call_id: str) -> bool:
        return call_id in self._sessions

    def get(self, call_id: str) -> CallSession | None:
        return self._sessions.get(call_id)

    def create(self, call_id: str, customer_phone: str, customer: Customer) -> CallSession:
        if call_id in self._sessions:
            raise SessionExistsError(f"session already exists for call {call_id}")
        session = CallSession(
            call_id=call_id,
            customer_phone=customer_phone,
            customer=customer,
        )
        self._sessions[call_id] = session
        logger.info("Session created for %s (%d active)", call_id, len(self._sessions))
        return session

    def delete(self, call_id: str) -> CallSession | None:
        session = self._sessions.pop(call_id, None)
        if session is not None:
            logger.info("Session deleted for %s (%d active)", call_id, len(self._sessions))
        return session

    @asynccontextmanager
    async def lock(self, call_id: str):
        """Hold the per-call lock. Waiters are woken in arrival order."""
        entry = self._locks.get(call_id)
        if entry is None:
            entry = self._locks[call_id] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._locks.pop(call_id, None)

    def is_locked(self, call_id: str) -> bool:
        entry = self._locks.get(call_id)
        return entry is not None and entry.lock.locked()
