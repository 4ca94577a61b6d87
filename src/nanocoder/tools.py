"""Tool catalogue and the Tool Executor.

Tools fall into two groups: UI control tools, which are turned into
``Action`` values on the event bus, and domain tools, which are forwarded
unchanged to the host application's tool registry.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, List, Optional, Protocol, Tuple

from .dispatcher import ActionBus, make_action
from .workflows import PAGE_ROUTES, PRIORITIES, THEMES, WORKFLOWS, get_workflow

logger = logging.getLogger(__name__)

# Parameters whose allowed values are the active workflow's column ids.
COLUMN_ENUM = "workflow_columns"


@dataclass(frozen=True)
class ToolParameter:
    name: str
    type: str
    description: str = ""
    required: bool = False
    enum: Optional[Tuple[str, ...]] = None
    items_type: Optional[str] = None
    enum_source: Optional[str] = None

    def json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": self.type}
        if self.description:
            schema["description"] = self.description
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.items_type:
            schema["items"] = {"type": self.items_type}
        return schema


@dataclass(frozen=True)
class ToolDefinition:
    """Provider-neutral description of a callable tool."""

    name: str
    description: str
    parameters: Tuple[ToolParameter, ...] = ()
    workflows: Optional[FrozenSet[str]] = None

    @property
    def required(self) -> List[str]:
        return [p.name for p in self.parameters if p.required]

    def is_available_in(self, mode: str) -> bool:
        return self.workflows is None or mode in self.workflows

    def parameter(self, name: str) -> Optional[ToolParameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {p.name: p.json_schema() for p in self.parameters},
        }
        if self.required:
            schema["required"] = self.required
        return schema

    @classmethod
    def from_schema(cls, name: str, description: str, schema: Optional[Dict[str, Any]]) -> "ToolDefinition":
        schema = schema or {}
        required = set(schema.get("required") or [])
        params = []
        for param_name, prop in (schema.get("properties") or {}).items():
            enum = prop.get("enum")
            items = prop.get("items") or {}
            params.append(
                ToolParameter(
                    name=param_name,
                    type=prop.get("type", "string"),
                    description=prop.get("description", ""),
                    required=param_name in required,
                    enum=tuple(enum) if enum is not None else None,
                    items_type=items.get("type"),
                )
            )
        return cls(name=name, description=description or "", parameters=tuple(params))

    def for_workflow(self, mode: str) -> "ToolDefinition":
        """Resolve column-valued parameters against ``mode``'s columns."""
        if not any(p.enum_source == COLUMN_ENUM for p in self.parameters):
            return self
        columns = tuple(get_workflow(mode).column_ids())
        params = tuple(
            replace(p, enum=columns) if p.enum_source == COLUMN_ENUM else p
            for p in self.parameters
        )
        return replace(self, parameters=params)


@dataclass
class ToolCall:
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None


@dataclass
class ToolResult:
    success: bool
    message: str
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ToolResult":
        return cls(
            success=bool(payload.get("success")),
            message=str(payload.get("message") or payload.get("error") or ""),
            data=payload.get("data"),
        )

    def annotated(self, note: str) -> "ToolResult":
        return ToolResult(self.success, f"{self.message} ({note})", self.data)


def _param(name, type_="string", description="", required=False, enum=None, items_type=None, enum_source=None):
    return ToolParameter(
        name=name,
        type=type_,
        description=description,
        required=required,
        enum=tuple(enum) if enum is not None else None,
        items_type=items_type,
        enum_source=enum_source,
    )


_AGILE = frozenset({"agile"})
_ITSM = frozenset({"itsm"})

TOOL_CATALOG: Tuple[ToolDefinition, ...] = (
    # UI control
    ToolDefinition(
        "navigate_to_page",
        "Navigate to a page of the application.",
        (_param("page", description="Page to open", required=True, enum=PAGE_ROUTES.keys()),),
    ),
    ToolDefinition("go_back", "Return to the previously viewed page."),
    ToolDefinition("open_terminal", "Open the command terminal panel."),
    ToolDefinition("close_terminal", "Close the command terminal panel."),
    ToolDefinition(
        "change_workflow_mode",
        "Switch the board to a different workflow mode.",
        (_param("workflow", description="Workflow mode", required=True, enum=WORKFLOWS.keys()),),
    ),
    ToolDefinition(
        "set_theme",
        "Change the application colour theme.",
        (_param("theme", description="Theme to apply", required=True, enum=THEMES),),
    ),
    ToolDefinition("toggle_sidebar", "Show or hide the navigation sidebar."),
    # Tasks
    ToolDefinition(
        "create_task",
        "Create a new task on the board.",
        (
            _param("title", description="Task title", required=True),
            _param("description", description="Longer description"),
            _param("priority", description="Task priority", enum=PRIORITIES),
            _param("status", description="Board column for the task", enum_source=COLUMN_ENUM),
            _param("tags", "array", "Tags to attach", items_type="string"),
        ),
    ),
    ToolDefinition(
        "update_task_status",
        "Move a task to another board column.",
        (
            _param("task_title", description="Title (or part of it) of the task", required=True),
            _param("new_status", description="Target column", required=True, enum_source=COLUMN_ENUM),
        ),
    ),
    ToolDefinition(
        "update_task",
        "Edit fields of an existing task.",
        (
            _param("task_title", description="Title (or part of it) of the task", required=True),
            _param("title", description="New title"),
            _param("description", description="New description"),
            _param("priority", description="New priority", enum=PRIORITIES),
            _param("status", description="New column", enum_source=COLUMN_ENUM),
        ),
    ),
    ToolDefinition(
        "delete_task",
        "Delete a task permanently.",
        (_param("task_title", description="Title (or part of it) of the task", required=True),),
    ),
    ToolDefinition(
        "list_tasks",
        "List tasks, optionally filtered by column or priority.",
        (
            _param("status", description="Only tasks in this column", enum_source=COLUMN_ENUM),
            _param("priority", description="Only tasks with this priority", enum=PRIORITIES),
        ),
    ),
    ToolDefinition(
        "search_tasks",
        "Search tasks by text.",
        (_param("query", description="Text to search for", required=True),),
    ),
    ToolDefinition("archive_completed_tasks", "Archive every task in a done column."),
    ToolDefinition("read_selected_task", "Read the full details of the currently selected task."),
    # Projects
    ToolDefinition("list_projects", "List all projects."),
    ToolDefinition(
        "switch_project",
        "Make another project the current one.",
        (_param("project_name", description="Project name", required=True),),
    ),
    ToolDefinition("summarize_project", "Summarize progress of the current project."),
    # Notifications
    ToolDefinition("get_unread_count", "Get the number of unread notifications."),
    ToolDefinition(
        "clear_notifications",
        "Mark all notifications read or delete them.",
        (_param("action", description="What to do", required=True, enum=("mark_read", "delete_all")),),
    ),
    # Email
    ToolDefinition(
        "list_emails",
        "List inbox emails.",
        (_param("filter", description="Which emails", enum=("all", "unread", "starred")),),
    ),
    ToolDefinition("read_selected_email", "Read the currently selected email."),
    ToolDefinition(
        "mark_email_read",
        "Mark an email read or unread. Defaults to the selected email.",
        (
            _param("email_id", description="Email id"),
            _param("read", "boolean", "True for read, false for unread"),
        ),
    ),
    ToolDefinition(
        "star_email",
        "Star or unstar an email. Defaults to the selected email.",
        (
            _param("email_id", description="Email id"),
            _param("starred", "boolean", "True to star, false to unstar"),
        ),
    ),
    ToolDefinition(
        "archive_email",
        "Archive an email. Defaults to the selected email.",
        (_param("email_id", description="Email id"),),
    ),
    ToolDefinition(
        "create_task_from_email",
        "Create a task from an email. Defaults to the selected email.",
        (
            _param("email_id", description="Email id"),
            _param("priority", description="Task priority", enum=PRIORITIES),
        ),
    ),
    # Incidents
    ToolDefinition(
        "create_incident",
        "Open a new incident.",
        (
            _param("title", description="Incident title", required=True),
            _param("description", description="What happened"),
            _param("severity", description="Severity", enum=("critical", "high", "medium", "low")),
        ),
        workflows=_ITSM,
    ),
    ToolDefinition(
        "update_incident",
        "Update an incident's status or severity.",
        (
            _param("incident_title", description="Title (or part of it) of the incident", required=True),
            _param("status", description="Incident status", enum=("open", "investigating", "mitigated", "resolved", "closed")),
            _param("severity", description="Severity", enum=("critical", "high", "medium", "low")),
        ),
        workflows=_ITSM,
    ),
    ToolDefinition(
        "resolve_incident",
        "Resolve an incident.",
        (
            _param("incident_title", description="Title (or part of it) of the incident", required=True),
            _param("resolution", description="Resolution notes"),
        ),
        workflows=_ITSM,
    ),
    ToolDefinition(
        "list_incidents",
        "List incidents.",
        (_param("status", description="Only incidents with this status", enum=("open", "investigating", "mitigated", "resolved", "closed")),),
        workflows=_ITSM,
    ),
    ToolDefinition("read_selected_incident", "Read the currently selected incident.", workflows=_ITSM),
    # Sprints
    ToolDefinition("list_sprints", "List sprints.", workflows=_AGILE),
    ToolDefinition(
        "add_task_to_sprint",
        "Add a task to a sprint.",
        (
            _param("task_title", description="Title (or part of it) of the task", required=True),
            _param("sprint_name", description="Sprint name; defaults to the active sprint"),
        ),
        workflows=_AGILE,
    ),
    ToolDefinition("get_sprint_summary", "Summarize the active sprint.", workflows=_AGILE),
)

TOOLS_BY_NAME: Dict[str, ToolDefinition] = {tool.name: tool for tool in TOOL_CATALOG}

# Tools handled locally by publishing an Action; never sent to the registry.
INTERNAL_CONTROL_TOOLS = frozenset(
    {
        "navigate_to_page",
        "go_back",
        "open_terminal",
        "close_terminal",
        "change_workflow_mode",
        "set_theme",
        "toggle_sidebar",
    }
)
TOOL_ALIASES = {"navigate": "navigate_to_page"}


def canonical_tool_name(name: str) -> str:
    return TOOL_ALIASES.get(name, name)


def is_control_tool(name: str) -> bool:
    return canonical_tool_name(name) in INTERNAL_CONTROL_TOOLS


def get_tool_definitions(mode: str) -> List[ToolDefinition]:
    """Tools valid in ``mode``, with column enums resolved for that mode."""
    return [tool.for_workflow(mode) for tool in TOOL_CATALOG if tool.is_available_in(mode)]


def get_unavailable_tools(mode: str) -> List[Tuple[str, Tuple[str, ...]]]:
    """(name, valid modes) for each tool that cannot be used in ``mode``."""
    return [
        (tool.name, tuple(sorted(tool.workflows or ())))
        for tool in TOOL_CATALOG
        if not tool.is_available_in(mode)
    ]


class ToolRegistry(Protocol):
    """Host-side executor for domain tools. May be sync or async.

    Receives ``{"function": name, "arguments": {...}}`` and returns a
    ``ToolResult`` or a ``{"success", "message", "data"}`` dict.
    """

    def execute_tool(self, request: Dict[str, Any]) -> Any: ...


class ToolExecutor:
    """Runs tool calls requested by a model.

    Control tools are published on the bus; everything else is forwarded to
    the registry. Each execution is logged to the action log, and results of
    allow-listed tools are checked by the verifier when one is configured.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        bus: ActionBus,
        action_logger,
        verifier=None,
        workflow_mode: str = "agile",
        session_id: str = "default",
        user_id: Optional[str] = None,
        source: str = "internal",
    ):
        self.registry = registry
        self.bus = bus
        self.action_logger = action_logger
        self.verifier = verifier
        self.workflow_mode = get_workflow(workflow_mode).mode
        self.session_id = session_id
        self.user_id = user_id
        self.source = source

    async def execute(self, call: ToolCall) -> ToolResult:
        name = canonical_tool_name(call.name)
        arguments = dict(call.arguments or {})
        try:
            if name in INTERNAL_CONTROL_TOOLS:
                result = self._dispatch_control(name, arguments)
            else:
                result = self._check_workflow(name, arguments) or await self._forward(name, arguments)
        except Exception as e:
            logger.exception("Tool %s raised", name)
            result = ToolResult(False, f"Tool {name} failed: {e}")

        entry = self.action_logger.log(
            name, arguments, result, session_id=self.session_id, user_id=self.user_id
        )

        if self.verifier is not None and result.success and self.verifier.applies_to(name):
            verification = await self.verifier.verify(name, arguments, result)
            self.action_logger.mark_verified(entry.id, verification.verified)
            if not verification.verified:
                result = result.annotated(f"Note: {verification.message}")
        return result

    async def _forward(self, name: str, arguments: Dict[str, Any]) -> ToolResult:
        outcome = self.registry.execute_tool({"function": name, "arguments": arguments})
        if inspect.isawaitable(outcome):
            outcome = await outcome
        if isinstance(outcome, ToolResult):
            return outcome
        if isinstance(outcome, dict):
            return ToolResult.from_dict(outcome)
        return ToolResult(False, f"Tool {name} returned an unexpected result: {outcome!r}")

    def _check_workflow(self, name: str, arguments: Dict[str, Any]) -> Optional[ToolResult]:
        """Reject calls that do not fit the active workflow before forwarding."""
        tool = TOOLS_BY_NAME.get(name)
        if tool is None:
            return None
        workflow = get_workflow(self.workflow_mode)
        if not tool.is_available_in(workflow.mode):
            modes = ", ".join(get_workflow(m).name for m in sorted(tool.workflows or ()))
            return ToolResult(
                False,
                f"{name} is not available in the {workflow.name} workflow. It requires: {modes}.",
            )
        for param in tool.parameters:
            if param.enum_source != COLUMN_ENUM:
                continue
            value = arguments.get(param.name)
            if value is None or workflow.has_column(value):
                continue
            return ToolResult(
                False,
                f"The '{value}' column doesn't exist in the {workflow.name} workflow. "
                f"Valid columns: {workflow.describe_columns()}.",
                {"valid_columns": workflow.column_ids()},
            )
        return None

    def _publish(self, action_type: str, **payload: Any) -> None:
        self.bus.publish(make_action(action_type, source=self.source, **payload))

    def _dispatch_control(self, name: str, arguments: Dict[str, Any]) -> ToolResult:
        if name == "navigate_to_page":
            page = arguments.get("page")
            if page not in PAGE_ROUTES:
                return ToolResult(
                    False,
                    f"Unknown page '{page}'. Available pages: {', '.join(PAGE_ROUTES)}.",
                )
            self._publish("navigate", path=PAGE_ROUTES[page])
            return ToolResult(True, f"Navigated to {page}")

        if name == "change_workflow_mode":
            mode = arguments.get("workflow")
            if mode not in WORKFLOWS:
                return ToolResult(
                    False,
                    f"Unknown workflow '{mode}'. Available workflows: {', '.join(WORKFLOWS)}.",
                )
            self._publish("change_workflow", workflow=mode)
            self.workflow_mode = mode
            return ToolResult(True, f"Switched to the {WORKFLOWS[mode].name} workflow")

        if name == "set_theme":
            theme = arguments.get("theme")
            if theme not in THEMES:
                return ToolResult(False, f"Unknown theme '{theme}'. Use one of: {', '.join(THEMES)}.")
            self._publish("set_theme", theme=theme)
            return ToolResult(True, f"Theme set to {theme} mode")

        messages = {
            "go_back": "Navigated back",
            "open_terminal": "Terminal opened",
            "close_terminal": "Terminal closed",
            "toggle_sidebar": "Sidebar toggled",
        }
        self._publish(name)
        return ToolResult(True, messages[name])
