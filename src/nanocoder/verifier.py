"""Post-action verification against the domain store.

After an allow-listed tool reports success, the store is read back to
confirm the change is visible. A discrepancy is attached to the result
message; the success flag reported by the tool is left untouched.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from flux.core.config import VERIFIED_TOOLS, VERIFY_RETRIES, VERIFY_RETRY_DELAY

from .tools import ToolResult

logger = logging.getLogger(__name__)

TASK_TOOLS = frozenset({"create_task", "update_task_status", "update_task", "delete_task"})
EMAIL_TOOLS = frozenset({"archive_email", "mark_email_read", "star_email"})


class VerificationOutcome(str, Enum):
    VERIFIED = "verified"
    MISMATCH = "mismatch"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class VerificationResult:
    outcome: VerificationOutcome
    message: str
    actual: Optional[Dict[str, Any]] = None

    @property
    def verified(self) -> bool:
        return self.outcome is VerificationOutcome.VERIFIED


def _ok(message: str, actual=None) -> VerificationResult:
    return VerificationResult(VerificationOutcome.VERIFIED, message, actual)


def _mismatch(message: str, actual=None) -> VerificationResult:
    return VerificationResult(VerificationOutcome.MISMATCH, message, actual)


def _missing(message: str) -> VerificationResult:
    return VerificationResult(VerificationOutcome.NOT_FOUND, message)


def _rows(value: Any) -> List[Mapping[str, Any]]:
    if not value:
        return []
    return [row for row in value if isinstance(row, Mapping)]


class Verifier:
    def __init__(
        self,
        store,
        tools: Iterable[str] = VERIFIED_TOOLS,
        retries: int = VERIFY_RETRIES,
        retry_delay: float = VERIFY_RETRY_DELAY,
    ):
        self.store = store
        self.tools = frozenset(tools)
        self.retries = max(0, retries)
        self.retry_delay = retry_delay

    def applies_to(self, tool_name: str) -> bool:
        return tool_name in self.tools and tool_name in (TASK_TOOLS | EMAIL_TOOLS)

    async def verify(self, tool_name: str, arguments: Dict[str, Any], result: ToolResult) -> VerificationResult:
        """Re-read the store until the change is visible or retries run out."""
        verification = self._check(tool_name, arguments, result)
        attempt = 0
        while not verification.verified and attempt < self.retries:
            attempt += 1
            await asyncio.sleep(self.retry_delay)
            verification = self._check(tool_name, arguments, result)

        if verification.verified:
            logger.info("Verified %s: %s", tool_name, verification.message)
        else:
            logger.warning(
                "Verification of %s failed (%s): %s",
                tool_name, verification.outcome.value, verification.message,
            )
        return verification

    def _state(self) -> Mapping[str, Any]:
        state = self.store.get_state()
        return state if isinstance(state, Mapping) else {}

    def _check(self, tool_name: str, arguments: Dict[str, Any], result: ToolResult) -> VerificationResult:
        try:
            state = self._state()
        except Exception as e:
            logger.warning("Could not read store for verification: %s", e)
            return _missing(f"Verification could not read the store: {e}")

        if tool_name in EMAIL_TOOLS:
            return self._check_email(tool_name, arguments, result, state)
        tasks = _rows(state.get("tasks"))
        if tool_name == "create_task":
            return self._check_created(arguments, result, tasks)
        if tool_name == "delete_task":
            return self._check_deleted(arguments, result, tasks)
        return self._check_updated(arguments, result, tasks)

    @staticmethod
    def _result_id(result: ToolResult, *keys: str) -> Optional[str]:
        if isinstance(result.data, dict):
            for key in keys:
                if result.data.get(key):
                    return str(result.data[key])
        return None

    @staticmethod
    def _field_mismatches(task: Mapping[str, Any], expected: Dict[str, Any]) -> List[str]:
        problems = []
        for name, value in expected.items():
            if value is not None and task.get(name) != value:
                problems.append(f"{name} is '{task.get(name)}' instead of '{value}'")
        return problems

    def _check_created(self, arguments, result, tasks) -> VerificationResult:
        title = arguments.get("title") or ""
        task_id = self._result_id(result, "taskId", "task_id", "id")
        task = None
        if task_id:
            task = next((t for t in tasks if str(t.get("id")) == task_id), None)
        if task is None:
            task = next((t for t in tasks if t.get("title") == title), None)
        if task is None:
            return _missing(f'Task "{title}" was not found in the store. Creation may have failed.')

        problems = self._field_mismatches(
            task, {"status": arguments.get("status"), "priority": arguments.get("priority")}
        )
        if problems:
            return _mismatch(f'Task "{title}" was created but ' + "; ".join(problems), dict(task))
        return _ok(f'Task "{title}" exists', dict(task))

    @staticmethod
    def _find_by_id(tasks, task_id: Optional[str]):
        if not task_id:
            return None
        return next((t for t in tasks if str(t.get("id")) == task_id), None)

    @staticmethod
    def _find_by_title(tasks, title: str, exact: bool = False):
        needle = title.casefold()
        if not needle:
            return None
        if exact:
            return next((t for t in tasks if str(t.get("title", "")).casefold() == needle), None)
        return next((t for t in tasks if needle in str(t.get("title", "")).casefold()), None)

    def _check_updated(self, arguments, result, tasks) -> VerificationResult:
        fragment = arguments.get("task_title") or ""
        task = (
            self._find_by_id(tasks, self._result_id(result, "taskId", "task_id", "id"))
            or self._find_by_title(tasks, fragment)
        )
        if task is None and arguments.get("title"):
            # Renamed: the old title no longer matches.
            task = self._find_by_title(tasks, arguments["title"], exact=True)
        if task is None:
            return _missing(f'Task "{fragment}" was not found in the store after the update.')

        expected = {
            "status": arguments.get("new_status") or arguments.get("status"),
            "priority": arguments.get("priority"),
        }
        if arguments.get("title"):
            expected["title"] = arguments["title"]
        problems = self._field_mismatches(task, expected)
        if problems:
            return _mismatch(f'Task "{task.get("title")}" ' + "; ".join(problems), dict(task))
        return _ok(f'Task "{task.get("title")}" updated', dict(task))

    def _check_deleted(self, arguments, result, tasks) -> VerificationResult:
        fragment = arguments.get("task_title") or ""
        task_id = self._result_id(result, "taskId", "task_id", "id")
        if task_id:
            task = self._find_by_id(tasks, task_id)
        else:
            task = self._find_by_title(tasks, fragment, exact=True)
        if task is not None:
            return _mismatch(f'Task "{task.get("title")}" still exists in the store.', dict(task))
        return _ok(f'Task "{fragment}" is gone')

    def _check_email(self, tool_name, arguments, result, state) -> VerificationResult:
        selection = state.get("selection")
        email_id = (
            arguments.get("email_id")
            or self._result_id(result, "emailId", "email_id", "id")
            or (selection.get("email_id") if isinstance(selection, Mapping) else None)
        )
        emails = _rows(state.get("emails"))
        email = next((e for e in emails if str(e.get("id")) == str(email_id)), None)
        if email is None:
            return _missing(f"Email {email_id} was not found in the store.")

        if tool_name == "archive_email":
            field_name, expected = "is_archived", True
        elif tool_name == "mark_email_read":
            field_name, expected = "is_read", arguments.get("read", True)
        else:
            field_name, expected = "is_starred", arguments.get("starred", True)

        actual = bool(email.get(field_name))
        if actual != bool(expected):
            return _mismatch(f"Email {email_id} has {field_name}={actual}, expected {expected}.", dict(email))
        return _ok(f"Email {email_id} has {field_name}={actual}", dict(email))
