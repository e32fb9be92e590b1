"""Live call session registry."""
import asyncio
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from app.core.config import settings
from app.services.call_session.models import CallSession, CallStatus
from app.services.persistence.base import CallRecord, ConversationStore

logger = logging.getLogger(__name__)


def session_from_record(record: CallRecord) -> CallSession:
    """Materialize a live session from a durable record with empty history."""
    return CallSession(
        call_id=record.id,
        contact_id=record.contact_id,
        campaign_id=record.campaign_id or "",
        phone_number=record.phone_number,
        twilio_call_sid=record.twilio_call_sid,
        started_at=record.start_time,
    )


class SessionRegistry:
    """
    Cache of live sessions keyed by call ID.

    The store stays the source of truth: a miss is resolved by rebuilding the
    session from an active call record, so webhooks that land on a fresh
    process can keep the conversation going.

    Bookkeeping is bounded: per-call locks are dropped once no request holds
    or waits on them and the call is no longer tracked, and ended call IDs are
    kept only until the store records the final status (at most
    ``max_ended`` of them).
    """

    def __init__(self, store: ConversationStore, max_ended: int = settings.ended_calls_retained):
        self.store = store
        self.max_ended = max_ended
        self._sessions: Dict[str, CallSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        # Calls handed to completion whose final status may not be stored yet
        self._ended: "OrderedDict[str, None]" = OrderedDict()

    def get(self, call_id: str) -> Optional[CallSession]:
        return self._sessions.get(call_id)

    def register(self, session: CallSession) -> CallSession:
        """Track a session; an already tracked session for the same ID wins."""
        existing = self._sessions.get(session.call_id)
        if existing is not None:
            return existing
        self._sessions[session.call_id] = session
        return session

    def pop(self, call_id: str) -> Optional[CallSession]:
        """Stop tracking a call for good; None if it was not tracked."""
        session = self._sessions.pop(call_id, None)
        if session is not None:
            self._ended[call_id] = None
            while len(self._ended) > self.max_ended:
                self._ended.popitem(last=False)
        return session

    def is_ended(self, call_id: str) -> bool:
        return call_id in self._ended

    def forget_ended(self, call_id: str) -> None:
        """Drop an ended call once its record no longer reads as active."""
        self._ended.pop(call_id, None)

    def active_sessions(self) -> List[CallSession]:
        return list(self._sessions.values())

    @asynccontextmanager
    async def lock(self, call_id: str) -> AsyncIterator[None]:
        """Hold the per-call lock serializing work on one call."""
        lock = self._locks.get(call_id)
        if lock is None:
            lock = self._locks[call_id] = asyncio.Lock()
        self._lock_users[call_id] = self._lock_users.get(call_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[call_id] - 1
            if remaining:
                self._lock_users[call_id] = remaining
            else:
                del self._lock_users[call_id]
                if call_id not in self._sessions:
                    self._locks.pop(call_id, None)

    def ensure_tracked(self, record: CallRecord) -> Optional[CallSession]:
        """Track an active call record that is missing from memory."""
        if record.status != CallStatus.ACTIVE.value or record.id in self._ended:
            return None
        if record.id not in self._sessions:
            logger.info(f"[REGISTRY] Adding call {record.id} to active calls tracking")
        return self.register(session_from_record(record))

    async def resolve(self, call_id: str) -> Optional[CallSession]:
        """
        Return the live session for a call, rebuilding it if needed.

        Returns None when the call cannot be resumed: no record exists or the
        record is no longer active.

        Raises:
            asyncio.TimeoutError: The store did not answer within
                settings.persistence_timeout_seconds
        """
        session = self._sessions.get(call_id)
        if session is not None:
            return session
        if call_id in self._ended:
            logger.info(f"[REGISTRY] Call {call_id} already ended")
            return None

        logger.warning(
            f"[REGISTRY] Call {call_id} not in memory "
            f"({len(self._sessions)} tracked), reconstructing from database"
        )
        record = await asyncio.wait_for(
            self.store.get_call(call_id), timeout=settings.persistence_timeout_seconds
        )
        if record is None or record.status != CallStatus.ACTIVE.value:
            logger.info(
                f"[REGISTRY] Call {call_id} not resumable - "
                f"record status: {record.status if record else 'missing'}"
            )
            return None

        session = self.register(session_from_record(record))
        logger.info(f"[REGISTRY] Reconstructed call {call_id} from database")
        return session

    def bookkeeping_size(self) -> int:
        """Number of lock and ended-call entries still held."""
        return len(self._locks) + len(self._lock_users) + len(self._ended)

    def clear(self) -> None:
        self._sessions.clear()
        self._locks.clear()
        self._lock_users.clear()
        self._ended.clear()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, call_id: str) -> bool:
        return call_id in self._sessions
