"""Session state: provider selection, toggles, and command history."""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from flux.core.config import COMMAND_HISTORY_LIMIT, HISTORY_PAIRS, KEY_SESSION_CONFIG

from .models.base import ChatMessage

logger = logging.getLogger(__name__)

TTS_RATE_MIN = 0.5
TTS_RATE_MAX = 2.0


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class SessionConfig:
    llm_provider: Optional[str] = None
    voice_enabled: bool = False
    continuous_listening: bool = False
    wake_word: str = "hey nanocoder"
    tts_enabled: bool = False
    tts_voice: Optional[str] = None
    tts_rate: float = 1.0

    def __post_init__(self):
        rate = min(TTS_RATE_MAX, max(TTS_RATE_MIN, float(self.tts_rate)))
        object.__setattr__(self, "tts_rate", rate)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "SessionConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in payload.items() if k in known})


@dataclass
class CommandHistoryEntry:
    input: str
    response: str
    success: bool
    source: str = "terminal"
    provider: Optional[str] = None
    tools_called: List[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: f"cmd-{uuid.uuid4().hex[:12]}")
    timestamp: str = field(default_factory=_now)


class SessionManager:
    """Holds the process-wide agent session.

    Lifecycle: construct, ``load()`` from storage, then every mutation is
    persisted immediately. History is most-recent first and capped.
    """

    def __init__(
        self,
        storage=None,
        key: str = KEY_SESSION_CONFIG,
        history_limit: int = COMMAND_HISTORY_LIMIT,
        session_id: str = "default",
    ) -> None:
        self.storage = storage
        self.key = key
        self.history_limit = history_limit
        self.session_id = session_id
        self.config = SessionConfig()
        self._history: List[CommandHistoryEntry] = []
        self.is_processing = False
        self.last_error: Optional[str] = None

    def load(self) -> "SessionManager":
        if self.storage is None:
            return self
        payload = self.storage.get_json(self.key, default={}) or {}
        try:
            self.config = SessionConfig.from_dict(payload.get("config") or {})
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring stored session config: %s", e)
            self.config = SessionConfig()
        history = []
        for item in payload.get("history") or []:
            try:
                history.append(CommandHistoryEntry(**item))
            except TypeError:
                logger.warning("Skipping malformed history entry: %r", item)
        self._history = history[: self.history_limit]
        return self

    def persist(self) -> None:
        if self.storage is None:
            return
        self.storage.set_json(
            self.key,
            {"config": asdict(self.config), "history": [asdict(e) for e in self._history]},
        )

    @property
    def history(self) -> List[CommandHistoryEntry]:
        return list(self._history)

    def set_provider(self, provider_id: Optional[str]) -> None:
        self.update_config(llm_provider=provider_id)

    def update_config(self, **changes: Any) -> SessionConfig:
        self.config = replace(self.config, **changes)
        self.persist()
        return self.config

    def add_command(self, entry: CommandHistoryEntry) -> None:
        self._history.insert(0, entry)
        del self._history[self.history_limit:]
        self.persist()

    def clear_history(self) -> None:
        self._history = []
        self.persist()

    def recent_history(self, pairs: int = HISTORY_PAIRS) -> List[ChatMessage]:
        """Last ``pairs`` exchanges as alternating user/assistant messages, oldest first."""
        messages: List[ChatMessage] = []
        for entry in reversed(self._history[:pairs]):
            messages.append(ChatMessage("user", entry.input))
            messages.append(ChatMessage("assistant", entry.response))
        return messages

    def begin_processing(self) -> None:
        self.is_processing = True
        self.last_error = None

    def finish_processing(self, error: Optional[str] = None) -> None:
        self.is_processing = False
        self.last_error = error
