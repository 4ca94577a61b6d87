"""Action Event Bus.

UI side effects requested by the agent are published as typed ``Action``
values. Subscribers (normally an ``ActionBridge``) perform the visible
effect. Publishing is synchronous: every subscriber has been notified, in
registration order, by the time ``publish`` returns.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Literal, Optional

logger = logging.getLogger(__name__)

ActionSource = Literal["voice", "terminal", "api", "internal"]
ACTION_SOURCES = ("voice", "terminal", "api", "internal")


@dataclass(frozen=True)
class NoPayload:
    pass


@dataclass(frozen=True)
class NavigatePayload:
    path: str
    replace: bool = False


@dataclass(frozen=True)
class ThemePayload:
    theme: Literal["light", "dark", "system"]


@dataclass(frozen=True)
class ToastPayload:
    message: str
    type: Literal["success", "error", "info", "warning"] = "info"


@dataclass(frozen=True)
class ScrollPayload:
    element_id: str


@dataclass(frozen=True)
class WorkflowPayload:
    workflow: str


@dataclass(frozen=True)
class MoveTaskPayload:
    task_id: str
    column_id: str


@dataclass(frozen=True)
class HighlightTaskPayload:
    task_id: str
    duration_ms: int = 2000


@dataclass(frozen=True)
class SelectionPayload:
    id: Optional[str]


ACTION_PAYLOADS: Dict[str, type] = {
    "navigate": NavigatePayload,
    "go_back": NoPayload,
    "open_terminal": NoPayload,
    "close_terminal": NoPayload,
    "set_theme": ThemePayload,
    "toggle_sidebar": NoPayload,
    "show_toast": ToastPayload,
    "scroll_to": ScrollPayload,
    "change_workflow": WorkflowPayload,
    "move_task": MoveTaskPayload,
    "highlight_task": HighlightTaskPayload,
    "select_task": SelectionPayload,
    "select_email": SelectionPayload,
    "select_incident": SelectionPayload,
}


@dataclass(frozen=True)
class Action:
    """A UI side effect. ``payload``'s type is fixed by ``type``."""

    type: str
    payload: Any = field(default_factory=NoPayload)
    timestamp: float = field(default_factory=time.time)
    source: ActionSource = "internal"

    def __post_init__(self):
        expected = ACTION_PAYLOADS.get(self.type)
        if expected is None:
            raise ValueError(f"Unknown action type: {self.type}")
        if not isinstance(self.payload, expected):
            raise TypeError(
                f"Action {self.type} expects {expected.__name__}, got {type(self.payload).__name__}"
            )
        if self.source not in ACTION_SOURCES:
            raise ValueError(f"Unknown action source: {self.source}")

    def to_dict(self) -> Dict[str, Any]:
        payload = {f.name: getattr(self.payload, f.name) for f in fields(self.payload)}
        return {
            "type": self.type,
            "payload": payload,
            "timestamp": self.timestamp,
            "source": self.source,
        }


def make_action(action_type: str, source: ActionSource = "internal", **payload: Any) -> Action:
    """Build an ``Action`` of ``action_type`` from keyword payload fields."""
    payload_cls = ACTION_PAYLOADS.get(action_type)
    if payload_cls is None:
        raise ValueError(f"Unknown action type: {action_type}")
    return Action(type=action_type, payload=payload_cls(**payload), source=source)


ActionHandler = Callable[[Action], None]


class ActionBus:
    """Synchronous publish/subscribe channel for ``Action`` values.

    Handler errors are logged and do not stop delivery to later handlers.
    """

    def __init__(self):
        self._handlers: List[ActionHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: ActionHandler) -> Callable[[], None]:
        """Register ``handler``. Returns a callable that unsubscribes it."""
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(handler)

        return unsubscribe

    def unsubscribe(self, handler: ActionHandler) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def publish(self, action: Action) -> int:
        """Deliver ``action`` to every current subscriber; returns how many were called."""
        with self._lock:
            handlers = list(self._handlers)
        if not handlers:
            logger.debug("No subscribers for action %s", action.type)
            return 0
        for handler in handlers:
            try:
                handler(action)
            except Exception:
                logger.exception("Action handler failed for %s", action.type)
        return len(handlers)
