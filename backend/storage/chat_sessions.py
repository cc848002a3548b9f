from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .database import SQLiteStoreDB
from .time_utils import parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

MESSAGE_SENDERS = {"user", "bot"}
MESSAGE_TYPES = {"text", "quick_reply", "suggestion"}


@dataclass
class ChatMessage:
    id: str
    message: str
    sender: str
    timestamp: str
    type: str | None = "text"

    def __post_init__(self) -> None:
        if self.sender not in MESSAGE_SENDERS:
            raise ValueError(f"unknown message sender: {self.sender}")
        if self.type is not None and self.type not in MESSAGE_TYPES:
            raise ValueError(f"unknown message type: {self.type}")

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "message": self.message,
            "sender": self.sender,
            "timestamp": self.timestamp,
        }
        if self.type:
            payload["type"] = self.type
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ChatMessage":
        return cls(
            id=str(payload.get("id") or ""),
            message=str(payload.get("message") or ""),
            sender=str(payload.get("sender") or "bot"),
            timestamp=str(payload.get("timestamp") or ""),
            type=payload.get("type"),
        )


@dataclass
class ChatSession:
    id: str
    messages: list[ChatMessage] = field(default_factory=list)
    context: str = ""
    created_at: str = ""
    last_activity: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "messages": [message.as_dict() for message in self.messages],
            "context": self.context,
            "createdAt": self.created_at,
            "lastActivity": self.last_activity,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ChatSession":
        return cls(
            id=str(payload["id"]),
            messages=[ChatMessage.from_dict(item) for item in payload.get("messages", []) if isinstance(item, dict)],
            context=str(payload.get("context") or ""),
            created_at=str(payload.get("createdAt") or ""),
            last_activity=str(payload.get("lastActivity") or ""),
        )

    def touch(self, when: datetime | None = None) -> None:
        self.last_activity = to_iso(when or utc_now())

    def is_stale(self, ttl: timedelta, now: datetime | None = None) -> bool:
        last = parse_iso(self.last_activity) or parse_iso(self.created_at)
        if last is None:
            return True
        return last < (now or utc_now()) - ttl


class ChatSessionStore(ABC):
    """Session store keyed by session id with an inactivity time-to-live."""

    def __init__(self, ttl_seconds: float = 3600.0) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)

    @abstractmethod
    def get(self, session_id: str) -> ChatSession | None:
        raise NotImplementedError

    @abstractmethod
    def put(self, session: ChatSession) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def sweep(self, now: datetime | None = None) -> int:
        raise NotImplementedError


class InMemoryChatSessionStore(ChatSessionStore):
    def __init__(self, ttl_seconds: float = 3600.0) -> None:
        super().__init__(ttl_seconds)
        self._sessions: dict[str, ChatSession] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> ChatSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def put(self, session: ChatSession) -> None:
        with self._lock:
            self._sessions[session.id] = session

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def sweep(self, now: datetime | None = None) -> int:
        with self._lock:
            stale = [key for key, session in self._sessions.items() if session.is_stale(self.ttl, now)]
            for key in stale:
                del self._sessions[key]
        if stale:
            logger.info("chat session sweep removed %d in-memory sessions", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class SQLiteChatSessionStore(ChatSessionStore):
    def __init__(self, db: SQLiteStoreDB, ttl_seconds: float = 3600.0) -> None:
        super().__init__(ttl_seconds)
        self._db = db

    def get(self, session_id: str) -> ChatSession | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT session_json FROM chat_sessions WHERE id = ?",
                (session_id,),
            ).fetchone()
        if row is None:
            return None
        return ChatSession.from_dict(json.loads(row["session_json"]))

    def put(self, session: ChatSession) -> None:
        with self._db.write_lock, self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO chat_sessions (id, session_json, created_at, last_activity)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  session_json = excluded.session_json,
                  last_activity = excluded.last_activity
                """,
                (
                    session.id,
                    json.dumps(session.as_dict(), separators=(",", ":")),
                    session.created_at,
                    session.last_activity,
                ),
            )

    def delete(self, session_id: str) -> bool:
        with self._db.write_lock, self._db.connection() as conn:
            removed = conn.execute("DELETE FROM chat_sessions WHERE id = ?", (session_id,)).rowcount
        return removed > 0

    def sweep(self, now: datetime | None = None) -> int:
        cutoff = to_iso((now or utc_now()) - self.ttl)
        with self._db.write_lock, self._db.connection() as conn:
            removed = conn.execute(
                "DELETE FROM chat_sessions WHERE last_activity < ?",
                (cutoff,),
            ).rowcount
        if removed:
            logger.info("chat session sweep removed %d stored sessions", removed)
        return removed
