"""Capped, persisted log of every tool execution."""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from flux.core.config import ACTION_LOG_CAPACITY, KEY_ACTION_LOGS, RECENT_ACTIONS_LIMIT

from .tools import ToolResult

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _new_id() -> str:
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"log-{millis}-{uuid.uuid4().hex[:9]}"


@dataclass
class ActionLogEntry:
    id: str
    action_type: str
    input_params: Dict[str, Any]
    result: Dict[str, Any]
    user_id: Optional[str] = None
    session_id: str = "default"
    # None until checked; set at most once.
    verified: Optional[bool] = None
    created_at: str = field(default_factory=_now)

    @property
    def success(self) -> bool:
        return bool(self.result.get("success"))

    @property
    def message(self) -> str:
        return str(self.result.get("message") or "")


class ActionLogger:
    """Ring buffer of ``ActionLogEntry`` records mirrored to storage.

    Appending beyond ``capacity`` evicts the oldest entry. Storage is any
    object with ``get_json``/``set_json`` (``RedisClient`` in production);
    without one the log lives in memory only.
    """

    def __init__(self, storage=None, capacity: int = ACTION_LOG_CAPACITY, key: str = KEY_ACTION_LOGS):
        self.storage = storage
        self.capacity = capacity
        self.key = key
        self._entries: Deque[ActionLogEntry] = deque(maxlen=capacity)

    def load(self) -> "ActionLogger":
        if self.storage is None:
            return self
        raw = self.storage.get_json(self.key, default=[]) or []
        entries = []
        for item in raw:
            try:
                entries.append(ActionLogEntry(**item))
            except TypeError:
                logger.warning("Skipping malformed action log entry: %r", item)
        self._entries = deque(entries, maxlen=self.capacity)
        logger.debug("Loaded %d action log entries", len(self._entries))
        return self

    def _persist(self) -> None:
        if self.storage is None:
            return
        self.storage.set_json(self.key, [asdict(entry) for entry in self._entries])

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> List[ActionLogEntry]:
        """All entries, oldest first."""
        return list(self._entries)

    def log(
        self,
        action_type: str,
        input_params: Dict[str, Any],
        result: ToolResult,
        session_id: str = "default",
        user_id: Optional[str] = None,
    ) -> ActionLogEntry:
        entry = ActionLogEntry(
            id=_new_id(),
            action_type=action_type,
            input_params=dict(input_params or {}),
            result=result.to_dict(),
            user_id=user_id,
            session_id=session_id,
        )
        self._entries.append(entry)
        self._persist()
        logger.info(
            "Logged action %s (%s)", action_type, "success" if result.success else "failed"
        )
        return entry

    def mark_verified(self, entry_id: str, verified: bool) -> bool:
        """Record the verification outcome. Returns False if unknown or already set."""
        for entry in self._entries:
            if entry.id != entry_id:
                continue
            if entry.verified is not None:
                logger.warning("Action %s already verified", entry_id)
                return False
            entry.verified = verified
            self._persist()
            return True
        return False

    def recent(self, limit: int = RECENT_ACTIONS_LIMIT) -> List[ActionLogEntry]:
        """The ``limit`` most recent entries, newest first."""
        if limit <= 0:
            return []
        return list(reversed(self._entries))[:limit]

    def clear(self) -> None:
        self._entries.clear()
        self._persist()
