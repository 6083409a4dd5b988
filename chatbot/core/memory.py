"""Server-side conversation history.

Conversations are keyed by the caller-supplied id and owned by the user
that started them. Each user keeps at most ``cap`` conversations; when an
append pushes the owner over the cap, the conversations with the oldest
``last_message_at`` are deleted whole.
"""

from __future__ import annotations

import itertools
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set

from chatbot.core.locks import KeyedLock
from chatbot.models import ChatContext, ChatTurn, ConversationRecord


logger = logging.getLogger("gemini_chatbot.memory")

DEFAULT_CONVERSATION_CAP = 100


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _turn_id(now: datetime) -> str:
    return f"msg_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


class ConversationStore:
    def __init__(self, cap: int = DEFAULT_CONVERSATION_CAP, clock: Callable[[], datetime] = utc_now) -> None:
        self.cap = cap
        self._clock = clock
        self._conversations: Dict[str, ConversationRecord] = {}
        self._by_user: Dict[str, Set[str]] = {}
        # Monotonic tiebreaker for equal timestamps.
        self._touched: Dict[str, int] = {}
        self._sequence = itertools.count()
        self._index_lock = threading.Lock()
        self._conversation_locks = KeyedLock()
        self._user_locks = KeyedLock()

    def append(
        self,
        conversation_id: str,
        user_id: str,
        message: str,
        response: str,
        context: Optional[ChatContext] = None,
    ) -> ChatTurn:
        with self._conversation_locks.hold(conversation_id):
            now = self._clock()
            turn = ChatTurn(
                id=_turn_id(now),
                message=message,
                response=response,
                timestamp=now,
                user_id=user_id,
                conversation_id=conversation_id,
            )
            record = self._conversations.get(conversation_id)
            if record is None:
                record = ConversationRecord(
                    id=conversation_id,
                    user_id=user_id,
                    messages=[turn],
                    started_at=now,
                    last_message_at=now,
                    context=context,
                )
                with self._index_lock:
                    self._conversations[conversation_id] = record
                    self._by_user.setdefault(user_id, set()).add(conversation_id)
                    self._touched[conversation_id] = next(self._sequence)
            else:
                record.messages.append(turn)
                record.last_message_at = now
                with self._index_lock:
                    self._touched[conversation_id] = next(self._sequence)
            owner = record.user_id

        self._evict(owner)
        return turn

    def get(self, conversation_id: str) -> Optional[ConversationRecord]:
        with self._conversation_locks.hold(conversation_id):
            record = self._conversations.get(conversation_id)
            return record.model_copy(deep=True) if record is not None else None

    def _sorted_ids(self, user_id: str) -> List[str]:
        with self._index_lock:
            ids = list(self._by_user.get(user_id, ()))
            keys = {
                conversation_id: (
                    self._conversations[conversation_id].last_message_at,
                    self._touched.get(conversation_id, 0),
                )
                for conversation_id in ids
                if conversation_id in self._conversations
            }
        return sorted(keys, key=keys.__getitem__, reverse=True)

    def list_by_user(self, user_id: str) -> List[ConversationRecord]:
        """The user's conversations, most recently active first."""
        records = []
        for conversation_id in self._sorted_ids(user_id):
            record = self.get(conversation_id)
            if record is not None:
                records.append(record)
        return records

    def delete(self, conversation_id: str) -> bool:
        with self._conversation_locks.hold(conversation_id):
            with self._index_lock:
                record = self._conversations.pop(conversation_id, None)
                if record is None:
                    return False
                self._touched.pop(conversation_id, None)
                owned = self._by_user.get(record.user_id)
                if owned is not None:
                    owned.discard(conversation_id)
                    if not owned:
                        del self._by_user[record.user_id]
        return True

    def _evict(self, user_id: str) -> None:
        with self._user_locks.hold(user_id):
            ordered = self._sorted_ids(user_id)
            if len(ordered) <= self.cap:
                return
            stale = ordered[self.cap:]
            for conversation_id in stale:
                self.delete(conversation_id)
        logger.info("Evicted %s old conversation(s) for user %s", len(stale), user_id)

    def stats(self) -> Dict[str, int]:
        with self._index_lock:
            records = list(self._conversations.values())
        return {
            "totalConversations": len(records),
            "totalUsers": len({record.user_id for record in records}),
            "totalMessages": sum(len(record.messages) for record in records),
        }
