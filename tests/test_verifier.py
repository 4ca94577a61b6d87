import pytest

from conftest import FakeStore
from nanocoder.tools import ToolResult
from nanocoder.verifier import EMAIL_TOOLS, VerificationOutcome, Verifier


def _store():
    return FakeStore(
        tasks=[
            {"id": "t1", "title": "Fix login bug", "status": "in-progress", "priority": "high"},
            {"id": "t2", "title": "Write release notes", "status": "backlog", "priority": "low"},
        ],
        emails=[{"id": "e1", "subject": "Invoice", "is_read": True, "is_starred": False, "is_archived": False}],
        selection={"email_id": "e1"},
    )


@pytest.mark.asyncio
async def test_created_task_found_by_id():
    verifier = Verifier(_store(), retries=0)

    result = await verifier.verify(
        "create_task", {"title": "Something else"}, ToolResult(True, "Created", {"taskId": "t2"})
    )

    assert result.outcome is VerificationOutcome.VERIFIED


@pytest.mark.asyncio
async def test_created_task_missing():
    verifier = Verifier(_store(), retries=0)

    result = await verifier.verify("create_task", {"title": "Deploy"}, ToolResult(True, "Created"))

    assert result.outcome is VerificationOutcome.NOT_FOUND
    assert result.message == 'Task "Deploy" was not found in the store. Creation may have failed.'


@pytest.mark.asyncio
async def test_created_task_status_mismatch():
    verifier = Verifier(_store(), retries=0)

    result = await verifier.verify(
        "create_task", {"title": "Write release notes", "status": "todo"}, ToolResult(True, "Created")
    )

    assert result.outcome is VerificationOutcome.MISMATCH
    assert "status is 'backlog' instead of 'todo'" in result.message


@pytest.mark.asyncio
async def test_update_matches_partial_title_case_insensitively():
    verifier = Verifier(_store(), retries=0)

    result = await verifier.verify(
        "update_task_status", {"task_title": "LOGIN", "new_status": "in-progress"}, ToolResult(True, "Moved")
    )

    assert result.verified


@pytest.mark.asyncio
async def test_update_mismatch_reported():
    verifier = Verifier(_store(), retries=0)

    result = await verifier.verify(
        "update_task_status", {"task_title": "login", "new_status": "done"}, ToolResult(True, "Moved")
    )

    assert result.outcome is VerificationOutcome.MISMATCH


@pytest.mark.asyncio
async def test_retry_sees_late_propagation(monkeypatch):
    store = _store()
    verifier = Verifier(store, retries=2, retry_delay=0)
    reads = {"count": 0}
    original = store.get_state

    def lagging_state():
        reads["count"] += 1
        if reads["count"] == 2:
            store.state["tasks"].append({"id": "t3", "title": "Late task", "status": "backlog"})
        return original()

    monkeypatch.setattr(store, "get_state", lagging_state)

    result = await verifier.verify("create_task", {"title": "Late task"}, ToolResult(True, "Created"))

    assert result.verified
    assert reads["count"] == 2


@pytest.mark.asyncio
async def test_delete_requires_absence():
    verifier = Verifier(_store(), tools=["delete_task"], retries=0)

    still_there = await verifier.verify(
        "delete_task", {"task_title": "Write release notes"}, ToolResult(True, "Deleted")
    )
    gone = await verifier.verify("delete_task", {"task_title": "nonexistent"}, ToolResult(True, "Deleted"))

    assert still_there.outcome is VerificationOutcome.MISMATCH
    assert gone.verified


@pytest.mark.asyncio
async def test_delete_ignores_sibling_with_similar_title():
    store = FakeStore(tasks=[{"id": "t2", "title": "Fix bug 2", "status": "todo"}])
    verifier = Verifier(store, tools=["delete_task"], retries=0)

    result = await verifier.verify("delete_task", {"task_title": "Fix bug"}, ToolResult(True, "Deleted"))

    assert result.verified


@pytest.mark.asyncio
async def test_delete_checks_returned_id():
    verifier = Verifier(_store(), tools=["delete_task"], retries=0)

    result = await verifier.verify(
        "delete_task", {"task_title": "login"}, ToolResult(True, "Deleted", {"taskId": "t1"})
    )

    assert result.outcome is VerificationOutcome.MISMATCH
    assert "Fix login bug" in result.message


@pytest.mark.asyncio
async def test_renamed_task_found_by_new_title():
    store = FakeStore(tasks=[{"id": "t1", "title": "New name", "status": "todo", "priority": "high"}])
    verifier = Verifier(store, retries=0)

    result = await verifier.verify(
        "update_task", {"task_title": "Old name", "title": "New name"}, ToolResult(True, "Updated")
    )

    assert result.verified
    assert result.actual["id"] == "t1"


@pytest.mark.asyncio
async def test_malformed_rows_are_skipped():
    store = FakeStore(
        tasks=["garbage", None, {"id": "t1", "title": "Real", "status": "todo"}],
        emails=[42, {"id": "e1", "is_read": True}],
        selection="not-a-mapping",
    )
    verifier = Verifier(store, tools=["create_task", "mark_email_read"], retries=0)

    created = await verifier.verify("create_task", {"title": "Real"}, ToolResult(True, "Created"))
    read = await verifier.verify("mark_email_read", {"email_id": "e1"}, ToolResult(True, "Read"))

    assert created.verified
    assert read.verified


@pytest.mark.asyncio
async def test_email_flags_checked_against_selection():
    verifier = Verifier(_store(), tools=EMAIL_TOOLS, retries=0)

    read = await verifier.verify("mark_email_read", {}, ToolResult(True, "Marked read"))
    starred = await verifier.verify("star_email", {"email_id": "e1"}, ToolResult(True, "Starred"))
    missing = await verifier.verify("archive_email", {"email_id": "nope"}, ToolResult(True, "Archived"))

    assert read.verified
    assert starred.outcome is VerificationOutcome.MISMATCH
    assert missing.outcome is VerificationOutcome.NOT_FOUND


@pytest.mark.asyncio
async def test_store_errors_reported_as_not_found():
    class _BrokenStore:
        def get_state(self):
            raise RuntimeError("locked")

    result = await Verifier(_BrokenStore(), retries=0).verify("create_task", {"title": "x"}, ToolResult(True, "ok"))

    assert result.outcome is VerificationOutcome.NOT_FOUND
    assert "locked" in result.message


def test_allow_list():
    verifier = Verifier(_store(), tools=["create_task", "list_tasks"])
    assert verifier.applies_to("create_task")
    assert not verifier.applies_to("update_task_status")
    # Only tools with a known check can be verified.
    assert not verifier.applies_to("list_tasks")
