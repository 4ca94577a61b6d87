"""Bridge between the Action Event Bus and the host UI."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Protocol

from .dispatcher import Action, ActionBus
from .workflows import get_workflow

logger = logging.getLogger(__name__)


class UIHost(Protocol):
    """Operations the host application exposes for agent-driven effects."""

    def current_path(self) -> str: ...

    def navigate(self, path: str, replace: bool = False) -> None: ...

    def set_theme(self, theme: str) -> None: ...

    def toggle_sidebar(self) -> None: ...

    def set_workflow_mode(self, mode: str) -> None: ...

    def open_terminal(self) -> None: ...

    def close_terminal(self) -> None: ...

    def show_toast(self, message: str, kind: str = "info") -> None: ...

    def scroll_to(self, element_id: str) -> None: ...

    def highlight_task(self, task_id: str, duration_ms: int) -> None: ...

    def move_task(self, task_id: str, column_id: str) -> None: ...

    def select(self, kind: str, item_id: Optional[str]) -> None: ...


class ActionBridge:
    """Performs published actions against a ``UIHost``.

    The bridge only reacts to actions; it never calls back into the agent.
    """

    HISTORY_LIMIT = 50

    def __init__(self, host: UIHost):
        self.host = host
        self._history: List[str] = []

    def mount(self, bus: ActionBus) -> Callable[[], None]:
        return bus.subscribe(self.handle)

    @property
    def history(self) -> List[str]:
        return list(self._history)

    def handle(self, action: Action) -> None:
        handler = getattr(self, f"_on_{action.type}", None)
        if handler is None:
            logger.warning("Unhandled action type: %s", action.type)
            return
        handler(action.payload)

    def _on_navigate(self, payload) -> None:
        current = self.host.current_path()
        if current == payload.path:
            self.host.show_toast(f"Already on {payload.path}", "info")
            return
        if current and not payload.replace:
            self._history.append(current)
            self._history = self._history[-self.HISTORY_LIMIT:]
        self.host.navigate(payload.path, payload.replace)

    def _on_go_back(self, payload) -> None:
        if not self._history:
            self.host.show_toast("No previous page", "info")
            return
        self.host.navigate(self._history.pop(), True)

    def _on_set_theme(self, payload) -> None:
        self.host.set_theme(payload.theme)
        self.host.show_toast(f"Switched to {payload.theme} mode", "success")

    def _on_toggle_sidebar(self, payload) -> None:
        self.host.toggle_sidebar()

    def _on_change_workflow(self, payload) -> None:
        self.host.set_workflow_mode(payload.workflow)
        self.host.show_toast(f"Switched to {get_workflow(payload.workflow).name}", "success")

    def _on_open_terminal(self, payload) -> None:
        self.host.open_terminal()

    def _on_close_terminal(self, payload) -> None:
        self.host.close_terminal()

    def _on_show_toast(self, payload) -> None:
        self.host.show_toast(payload.message, payload.type)

    def _on_scroll_to(self, payload) -> None:
        self.host.scroll_to(payload.element_id)

    def _on_highlight_task(self, payload) -> None:
        self.host.highlight_task(payload.task_id, payload.duration_ms)

    def _on_move_task(self, payload) -> None:
        self.host.move_task(payload.task_id, payload.column_id)

    def _on_select_task(self, payload) -> None:
        self.host.select("task", payload.id)

    def _on_select_email(self, payload) -> None:
        self.host.select("email", payload.id)

    def _on_select_incident(self, payload) -> None:
        self.host.select("incident", payload.id)
