"""
Context Provider - builds the immutable snapshot the prompt is compiled from.

The domain store is read through ``get_state()``, which returns a mapping.
Recognised keys (all optional):

    tasks               list of {id, title, status, priority, archived, created_at}
    projects            list of {id, name}
    current_project_id  id of the active project
    emails              list of {id, subject, is_read, is_starred, is_archived}
    incidents           list of {id, title, status, severity}
    selection           {task_id, email_id, incident_id}
    auth                {is_authenticated, user: {id, name, email, role}}
    workflow_mode       "agile" | "ccaas" | "itsm"
    current_page        page id or /app/<page> route
    unread_count        unread notification count
    storage_mode        "local" | "cloud" | ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple

from flux.core.config import RECENT_ACTIONS_LIMIT, RECENT_TASKS_LIMIT

from .tools import get_unavailable_tools
from .workflows import DEFAULT_WORKFLOW, HIGH_PRIORITIES, PAGE_ROUTES, Column, get_workflow, page_from_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserInfo:
    id: str
    name: str = ""
    email: str = ""
    role: str = ""


@dataclass(frozen=True)
class TaskSummary:
    id: str
    title: str
    status: str
    priority: str = "medium"


@dataclass(frozen=True)
class ProjectSummary:
    id: str
    name: str


@dataclass(frozen=True)
class SelectionState:
    task_id: Optional[str] = None
    task_title: Optional[str] = None
    email_id: Optional[str] = None
    email_subject: Optional[str] = None
    incident_id: Optional[str] = None
    incident_title: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.task_id or self.email_id or self.incident_id)


@dataclass(frozen=True)
class RecentAction:
    action_type: str
    success: bool
    message: str
    verified: Optional[bool] = None


@dataclass(frozen=True)
class MemoryEntry:
    key: str
    value: str
    entity_type: Optional[str] = None


@dataclass(frozen=True)
class AgentContext:
    """Point-in-time view of the application handed to the Prompt Compiler."""

    current_page: str = "dashboard"
    workflow_mode: str = DEFAULT_WORKFLOW
    workflow_name: str = "Agile Development"
    available_columns: Tuple[Column, ...] = ()
    total_tasks: int = 0
    tasks_by_status: Tuple[Tuple[str, int], ...] = ()
    high_priority_count: int = 0
    recent_tasks: Tuple[TaskSummary, ...] = ()
    unread_notifications: int = 0
    projects: Tuple[ProjectSummary, ...] = ()
    current_project: Optional[str] = None
    available_pages: Tuple[str, ...] = tuple(PAGE_ROUTES)
    is_authenticated: bool = False
    current_user: Optional[UserInfo] = None
    storage_mode: str = "local"
    selection: SelectionState = field(default_factory=SelectionState)
    recent_actions: Tuple[RecentAction, ...] = ()
    memory: Tuple[MemoryEntry, ...] = ()
    unavailable_tools: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()

    @classmethod
    def minimal(cls) -> "AgentContext":
        workflow = get_workflow(DEFAULT_WORKFLOW)
        return cls(
            workflow_mode=workflow.mode,
            workflow_name=workflow.name,
            available_columns=workflow.columns,
            tasks_by_status=tuple((c.id, 0) for c in workflow.columns),
            unavailable_tools=tuple(get_unavailable_tools(workflow.mode)),
        )


def _as_list(value: Any) -> List[Mapping[str, Any]]:
    if not value:
        return []
    return [item for item in value if isinstance(item, Mapping)]


def _is_archived(task: Mapping[str, Any]) -> bool:
    return bool(task.get("archived") or task.get("is_archived"))


class ContextProvider:
    """Builds ``AgentContext`` snapshots. Never raises."""

    def __init__(self, store, action_logger=None, memory=None):
        self.store = store
        self.action_logger = action_logger
        self.memory = memory

    def build_context(self) -> AgentContext:
        try:
            state = self.store.get_state()
            if not isinstance(state, Mapping):
                logger.warning("Store returned %s instead of a mapping", type(state).__name__)
                return AgentContext.minimal()
            return self._build(state)
        except Exception:
            logger.exception("Failed to build agent context, using minimal context")
            return AgentContext.minimal()

    def _build(self, state: Mapping[str, Any]) -> AgentContext:
        workflow = get_workflow(state.get("workflow_mode"))

        tasks = [t for t in _as_list(state.get("tasks")) if not _is_archived(t)]
        by_status = tuple(
            (column.id, sum(1 for t in tasks if t.get("status") == column.id))
            for column in workflow.columns
        )
        high_priority = sum(1 for t in tasks if t.get("priority") in HIGH_PRIORITIES)

        projects = tuple(
            ProjectSummary(str(p.get("id", "")), str(p.get("name", "")))
            for p in _as_list(state.get("projects"))
        )
        current_project_id = state.get("current_project_id")
        current_project = next((p.name for p in projects if p.id == current_project_id), None)

        auth = state.get("auth") or {}
        user = auth.get("user") if isinstance(auth, Mapping) else None
        current_user = None
        if isinstance(user, Mapping) and user.get("id"):
            current_user = UserInfo(
                id=str(user["id"]),
                name=str(user.get("name") or ""),
                email=str(user.get("email") or ""),
                role=str(user.get("role") or ""),
            )

        return AgentContext(
            current_page=page_from_path(state.get("current_page")),
            workflow_mode=workflow.mode,
            workflow_name=workflow.name,
            available_columns=workflow.columns,
            total_tasks=len(tasks),
            tasks_by_status=by_status,
            high_priority_count=high_priority,
            recent_tasks=self._recent_tasks(tasks),
            unread_notifications=int(state.get("unread_count") or 0),
            projects=projects,
            current_project=current_project,
            is_authenticated=bool(auth.get("is_authenticated")) if isinstance(auth, Mapping) else False,
            current_user=current_user,
            storage_mode=str(state.get("storage_mode") or "local"),
            selection=self._selection(state, tasks),
            recent_actions=self._recent_actions(),
            memory=self._memory(),
            unavailable_tools=tuple(get_unavailable_tools(workflow.mode)),
        )

    def _recent_tasks(self, tasks: List[Mapping[str, Any]]) -> Tuple[TaskSummary, ...]:
        if any(t.get("created_at") for t in tasks):
            tasks = sorted(tasks, key=lambda t: str(t.get("created_at") or ""), reverse=True)
        return tuple(
            TaskSummary(
                id=str(t.get("id", "")),
                title=str(t.get("title", "")),
                status=str(t.get("status", "")),
                priority=str(t.get("priority") or "medium"),
            )
            for t in tasks[:RECENT_TASKS_LIMIT]
        )

    def _selection(self, state: Mapping[str, Any], tasks: List[Mapping[str, Any]]) -> SelectionState:
        selection = state.get("selection") or {}
        if not isinstance(selection, Mapping):
            return SelectionState()

        def lookup(items, item_id, label):
            if not item_id:
                return None
            for item in _as_list(items):
                if str(item.get("id")) == str(item_id):
                    return item.get(label)
            return None

        task_id = selection.get("task_id")
        email_id = selection.get("email_id")
        incident_id = selection.get("incident_id")
        return SelectionState(
            task_id=task_id,
            task_title=lookup(tasks, task_id, "title"),
            email_id=email_id,
            email_subject=lookup(state.get("emails"), email_id, "subject"),
            incident_id=incident_id,
            incident_title=lookup(state.get("incidents"), incident_id, "title"),
        )

    def _recent_actions(self) -> Tuple[RecentAction, ...]:
        if self.action_logger is None:
            return ()
        return tuple(
            RecentAction(e.action_type, e.success, e.message, e.verified)
            for e in self.action_logger.recent(RECENT_ACTIONS_LIMIT)
        )

    def _memory(self) -> Tuple[MemoryEntry, ...]:
        if self.memory is None:
            return ()
        return tuple(
            MemoryEntry(key, item.value, item.entity_type)
            for key, item in self.memory.snapshot().items()
        )
