"""Small persisted key/value memory the agent can refer back to."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from flux.core.config import KEY_AGENT_MEMORY

logger = logging.getLogger(__name__)


@dataclass
class MemoryItem:
    value: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None


class AgentMemory:
    def __init__(self, storage=None, key: str = KEY_AGENT_MEMORY):
        self.storage = storage
        self.key = key
        self._items: Dict[str, MemoryItem] = {}

    def load(self) -> "AgentMemory":
        if self.storage is None:
            return self
        raw = self.storage.get_json(self.key, default={}) or {}
        self._items = {}
        for name, item in raw.items():
            if isinstance(item, dict) and "value" in item:
                self._items[name] = MemoryItem(**item)
        return self

    def _persist(self) -> None:
        if self.storage is not None:
            self.storage.set_json(self.key, {k: asdict(v) for k, v in self._items.items()})

    def remember(self, key: str, value: str, entity_type: Optional[str] = None,
                 entity_id: Optional[str] = None) -> None:
        self._items[key] = MemoryItem(str(value), entity_type, entity_id)
        self._persist()
        logger.debug("Remembered %s", key)

    def recall(self, key: str) -> Optional[MemoryItem]:
        return self._items.get(key)

    def forget(self, key: str) -> bool:
        if self._items.pop(key, None) is None:
            return False
        self._persist()
        return True

    def snapshot(self) -> Dict[str, MemoryItem]:
        return dict(self._items)
