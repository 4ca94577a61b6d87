"""Workflow modes, their board columns, and other fixed UI vocabularies."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Tuple

logger = logging.getLogger(__name__)

ColumnCategory = Literal["backlog", "active", "review", "done"]


@dataclass(frozen=True)
class Column:
    id: str
    title: str
    category: ColumnCategory


@dataclass(frozen=True)
class Workflow:
    mode: str
    name: str
    description: str
    columns: Tuple[Column, ...]

    def column_ids(self) -> List[str]:
        return [column.id for column in self.columns]

    def has_column(self, column_id: str) -> bool:
        return any(column.id == column_id for column in self.columns)

    def describe_columns(self) -> str:
        return ", ".join(column.id for column in self.columns)


WORKFLOWS: Dict[str, Workflow] = {
    "agile": Workflow(
        mode="agile",
        name="Agile Development",
        description="Sprint-based software delivery",
        columns=(
            Column("backlog", "Backlog", "backlog"),
            Column("ready", "Ready", "backlog"),
            Column("todo", "Sprint Backlog", "active"),
            Column("in-progress", "In Progress", "active"),
            Column("code-review", "Code Review", "review"),
            Column("testing", "QA Testing", "review"),
            Column("done", "Done", "done"),
        ),
    ),
    "ccaas": Workflow(
        mode="ccaas",
        name="Contact Center",
        description="Customer case handling",
        columns=(
            Column("new", "New", "backlog"),
            Column("queued", "Queued", "backlog"),
            Column("assigned", "Assigned", "active"),
            Column("in-progress", "In Progress", "active"),
            Column("pending-customer", "Pending Customer", "review"),
            Column("escalated", "Escalated", "active"),
            Column("resolved", "Resolved", "done"),
            Column("closed", "Closed", "done"),
        ),
    ),
    "itsm": Workflow(
        mode="itsm",
        name="IT Service Management",
        description="Incident and change management",
        columns=(
            Column("new", "New", "backlog"),
            Column("triaged", "Triaged", "backlog"),
            Column("assigned", "Assigned", "active"),
            Column("investigating", "Investigating", "active"),
            Column("pending-vendor", "Pending Vendor", "review"),
            Column("pending-approval", "Pending Approval", "review"),
            Column("implementing", "Implementing", "active"),
            Column("resolved", "Resolved", "done"),
            Column("closed", "Closed", "done"),
        ),
    ),
}

DEFAULT_WORKFLOW = "agile"

PRIORITIES = ("low", "medium", "high", "urgent")
HIGH_PRIORITIES = frozenset({"high", "urgent"})

THEMES = ("light", "dark", "system")

PAGE_ROUTES: Dict[str, str] = {
    page: f"/app/{page}"
    for page in (
        "dashboard",
        "projects",
        "board",
        "sprints",
        "inbox",
        "documents",
        "assets",
        "analytics",
        "service-desk",
        "automation",
        "integrations",
        "import",
        "ai",
        "nanocoder",
        "appearance",
        "settings",
        "editor",
    )
}


def get_workflow(mode: Optional[str]) -> Workflow:
    """Return the workflow for ``mode``; unknown modes resolve to Agile."""
    workflow = WORKFLOWS.get(mode or "")
    if workflow is None:
        if mode:
            logger.warning("Unknown workflow mode %r, using %s", mode, DEFAULT_WORKFLOW)
        return WORKFLOWS[DEFAULT_WORKFLOW]
    return workflow


def workflows_with_column(column_id: str) -> List[Workflow]:
    return [wf for wf in WORKFLOWS.values() if wf.has_column(column_id)]


def page_from_path(path: Optional[str]) -> str:
    """Map an ``/app/<page>`` route (or bare page id) to a page id."""
    if not path:
        return "dashboard"
    page = path.strip("/").split("/")[-1] if path.startswith("/") else path
    return page if page in PAGE_ROUTES else "dashboard"
