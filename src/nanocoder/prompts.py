"""System prompts for the command agent."""

from __future__ import annotations

from typing import List

from .context_provider import AgentContext
from .ui_map import describe_page_actions
from .workflows import WORKFLOWS, get_workflow, workflows_with_column

FALLBACK_SYSTEM_PROMPT = """You are Nanocoder, the command assistant of the Flux workspace.
You help users manage tasks, projects, email and incidents, and you control the
application UI (navigation, theme, terminal, workflow mode) through tools.
Be concise. Only report an action as done when its tool returned success."""

AGENT_INTRO = """You are Nanocoder, the command assistant of the Flux workspace.
Use the available tools to carry out requests. Reply in one or two short sentences."""

CAPABILITIES = """CAPABILITIES:
- Tasks: create, move between columns, edit, delete, list, search, archive completed.
- Projects: list, switch, summarize.
- Notifications: count unread, mark read, clear.
- Email: list, read the selected email, mark read, star, archive, turn into a task.
- UI: navigate to a page, go back, open or close the terminal, change theme,
  toggle the sidebar, switch workflow mode."""

ERROR_HANDLING = """ERROR HANDLING:
- Every tool returns success true or false with a message.
- NEVER claim an action succeeded when its tool returned success: false.
  Tell the user what failed and why, using the tool's message.
- If a result carries a verification note, mention the discrepancy.
- If a request is ambiguous, ask one short clarifying question instead of guessing."""

EXAMPLES = """EXAMPLES:
User: "switch to dark mode" -> call set_theme with theme "dark".
User: "go to the inbox" -> call navigate_to_page with page "inbox".
User: "add a task to fix the login bug, high priority" -> call create_task with
  title "Fix the login bug" and priority "high".
User: "move the login bug to done" -> call update_task_status with
  task_title "login bug" and new_status "done"."""


def _section(title: str, lines: List[str]) -> str:
    return "\n".join([f"{title}:"] + lines)


def _context_section(context: AgentContext) -> str:
    lines = [f"- Page: {context.current_page}"]
    if context.is_authenticated and context.current_user:
        user = context.current_user
        lines.append(f"- User: {user.name or user.email or user.id}" + (f" ({user.role})" if user.role else ""))
    else:
        lines.append("- User: not signed in")
    lines.append(f"- Storage: {context.storage_mode}")
    lines.append(f"- Workflow: {context.workflow_name} ({context.workflow_mode})")
    counts = ", ".join(f"{status}={count}" for status, count in context.tasks_by_status)
    lines.append(f"- Tasks: {context.total_tasks} active" + (f" ({counts})" if counts else ""))
    lines.append(f"- High priority tasks: {context.high_priority_count}")
    lines.append(f"- Unread notifications: {context.unread_notifications}")
    if context.current_project:
        lines.append(f"- Current project: {context.current_project}")
    if context.projects:
        lines.append("- Projects: " + ", ".join(p.name for p in context.projects))
    if context.recent_tasks:
        lines.append("- Recent tasks:")
        for task in context.recent_tasks:
            lines.append(f"  * {task.title} [{task.status}, {task.priority}]")
    lines.append(
        "- Board columns: "
        + ", ".join(f"{c.id} ({c.title})" for c in context.available_columns)
    )
    lines.append("- Pages: " + ", ".join(context.available_pages))
    return _section("CURRENT CONTEXT", lines)


def _selection_section(context: AgentContext) -> str:
    selection = context.selection
    if selection.is_empty:
        return _section("SELECTION", ["- Nothing is selected."])
    lines = []
    if selection.task_id:
        lines.append(f'- Task: "{selection.task_title or "unknown"}" (id {selection.task_id})')
    if selection.email_id:
        lines.append(f'- Email: "{selection.email_subject or "unknown"}" (id {selection.email_id})')
    if selection.incident_id:
        lines.append(f'- Incident: "{selection.incident_title or "unknown"}" (id {selection.incident_id})')
    lines.append('- "this", "it" and "the selected one" refer to the selection above.')
    return _section("SELECTION", lines)


def _recent_actions_section(context: AgentContext) -> str:
    lines = []
    for action in context.recent_actions:
        mark = "✓" if action.success else "✗"
        message = action.message if len(action.message) <= 50 else action.message[:47] + "..."
        lines.append(f"- {mark} {action.action_type}: {message}")
    return _section("RECENT ACTIONS (newest first)", lines)


def _memory_section(context: AgentContext) -> str:
    lines = []
    for entry in context.memory:
        label = f"{entry.key} ({entry.entity_type})" if entry.entity_type else entry.key
        lines.append(f"- {label}: {entry.value}")
    return _section("REMEMBERED CONTEXT", lines)


def _workflow_section(context: AgentContext) -> str:
    workflow = get_workflow(context.workflow_mode)
    lines = [f"- Active workflow: {workflow.name}. Valid status values: {workflow.describe_columns()}."]
    other_columns = []
    for other in WORKFLOWS.values():
        if other.mode == workflow.mode:
            continue
        lines.append(f"- {other.name} ({other.mode}) columns: {other.describe_columns()}.")
        other_columns.extend(c.id for c in other.columns if not workflow.has_column(c.id))
    for column_id in dict.fromkeys(other_columns):
        owners = ", ".join(wf.name for wf in workflows_with_column(column_id))
        lines.append(f'- "{column_id}" only exists in {owners}.')
    lines.append(
        "- If the user names a column that does not exist in the active workflow, "
        "say so and suggest the closest valid column instead of calling a tool."
    )
    if context.unavailable_tools:
        lines.append("- Tools unavailable in this workflow:")
        for name, modes in context.unavailable_tools:
            names = ", ".join(get_workflow(m).name for m in modes)
            lines.append(f"  * {name} (only in {names})")
    return _section("WORKFLOW AWARENESS", lines)


def build_system_prompt(context: AgentContext) -> str:
    """Compile ``context`` into the system prompt.

    Pure and deterministic: equal contexts always give identical text.
    """
    sections = [AGENT_INTRO, _context_section(context), _selection_section(context)]

    page_lines = describe_page_actions(context.current_page, get_workflow(context.workflow_mode))
    if page_lines:
        sections.append(_section("PAGE-SPECIFIC ACTIONS", page_lines))
    if context.recent_actions:
        sections.append(_recent_actions_section(context))
    if context.memory:
        sections.append(_memory_section(context))

    sections.extend([CAPABILITIES, _workflow_section(context), ERROR_HANDLING, EXAMPLES])
    return "\n\n".join(sections)
