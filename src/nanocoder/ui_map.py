"""What the user can do on each page, for the page-specific prompt section."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

from .workflows import Workflow


@dataclass(frozen=True)
class PageAction:
    tool: str
    description: str
    required: Tuple[str, ...] = ()
    optional: Tuple[str, ...] = ()
    uses_columns: bool = False


@dataclass(frozen=True)
class PageInfo:
    title: str
    purpose: str
    actions: Tuple[PageAction, ...] = ()


UI_MAP: Dict[str, PageInfo] = {
    "board": PageInfo(
        "Board",
        "Kanban board of tasks grouped by workflow column",
        (
            PageAction("create_task", "Add a task to the board", ("title",), ("description", "priority", "status", "tags"), True),
            PageAction("update_task_status", "Move a task between columns", ("task_title", "new_status"), (), True),
            PageAction("update_task", "Edit a task", ("task_title",), ("title", "description", "priority", "status"), True),
            PageAction("delete_task", "Delete a task", ("task_title",)),
            PageAction("archive_completed_tasks", "Archive every completed task"),
        ),
    ),
    "sprints": PageInfo(
        "Sprints",
        "Sprint planning and progress",
        (
            PageAction("list_sprints", "Show sprints"),
            PageAction("add_task_to_sprint", "Pull a task into a sprint", ("task_title",), ("sprint_name",)),
            PageAction("get_sprint_summary", "Summarize the active sprint"),
        ),
    ),
    "inbox": PageInfo(
        "Inbox",
        "Email inbox linked to the workspace",
        (
            PageAction("read_selected_email", "Read the selected email"),
            PageAction("mark_email_read", "Mark an email read or unread", (), ("email_id", "read")),
            PageAction("star_email", "Star an email", (), ("email_id", "starred")),
            PageAction("archive_email", "Archive an email", (), ("email_id",)),
            PageAction("create_task_from_email", "Turn an email into a task", (), ("email_id", "priority")),
        ),
    ),
    "service-desk": PageInfo(
        "Service Desk",
        "Incident queue",
        (
            PageAction("create_incident", "Open an incident", ("title",), ("description", "severity")),
            PageAction("update_incident", "Change incident status or severity", ("incident_title",), ("status", "severity")),
            PageAction("resolve_incident", "Resolve an incident", ("incident_title",), ("resolution",)),
        ),
    ),
    "projects": PageInfo(
        "Projects",
        "Project list; pick the project the board and reports work on",
        (
            PageAction("list_projects", "Show all projects"),
            PageAction("switch_project", "Make another project current", ("project_name",)),
            PageAction("summarize_project", "Summarize the current project"),
        ),
    ),
    "dashboard": PageInfo(
        "Dashboard",
        "Overview of tasks, projects and notifications",
        (
            PageAction("summarize_project", "Summarize the current project"),
            PageAction("get_unread_count", "Count unread notifications"),
        ),
    ),
}


def describe_page_actions(page: str, workflow: Workflow) -> List[str]:
    """Prompt lines for ``page``; empty when the page has no mapped actions."""
    info = UI_MAP.get(page)
    if info is None:
        return []
    lines = [f"{info.title}: {info.purpose}"]
    for action in info.actions:
        line = f"- {action.tool}: {action.description}"
        if action.required:
            line += f" (required: {', '.join(action.required)})"
        if action.optional:
            line += f" (optional: {', '.join(action.optional)})"
        if action.uses_columns:
            line += f" [status values: {workflow.describe_columns()}]"
        lines.append(line)
    return lines
