import sys
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import fakeredis
import pytest

# --- PATH SETUP ---
# Ensure src is in the Python path for imports
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from flux.core.redis_client import RedisClient
from nanocoder.dispatcher import ActionBus
from nanocoder.models import config as provider_config
from nanocoder.models.base import ChatResult, ModelTurn, run_tool_loop
from nanocoder.tools import ToolCall, ToolResult


def pytest_addoption(parser):
    parser.addoption(
        "--run-e2e", action="store_true", default=False, help="run end-to-end tests"
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "e2e: mark test as end-to-end")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="need --run-e2e option to run")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


# --- REDIS ---

@pytest.fixture
def fake_redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(fake_redis_server):
    return fakeredis.FakeRedis(server=fake_redis_server, decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis_client(fake_redis):
    RedisClient._instance = None
    with patch("redis.Redis", return_value=fake_redis):
        yield
    RedisClient._instance = None
    fake_redis.flushall()


@pytest.fixture
def storage(patch_redis_client):
    """The application's RedisClient, backed by fakeredis."""
    return RedisClient()


# --- PROVIDER CREDENTIALS ---

@pytest.fixture(autouse=True)
def no_provider_credentials(monkeypatch):
    """Keep real credentials and local hosts out of tests."""
    for spec in provider_config.list_providers():
        if spec.api_key_env:
            monkeypatch.delenv(spec.api_key_env, raising=False)
    ollama = provider_config.PROVIDER_REGISTRY["ollama"]
    monkeypatch.setitem(provider_config.PROVIDER_REGISTRY, "ollama", replace(ollama, base_url=None))

    saved = {}
    monkeypatch.setattr(provider_config.keyring, "get_password", lambda service, name: saved.get((service, name)))
    monkeypatch.setattr(
        provider_config.keyring,
        "set_password",
        lambda service, name, value: saved.__setitem__((service, name), value),
    )
    return saved


# --- DOMAIN FAKES ---

class FakeStore:
    def __init__(self, **state):
        self.state = {
            "workflow_mode": "agile",
            "tasks": [],
            "projects": [],
            "current_page": "board",
        }
        self.state.update(state)

    def get_state(self):
        return self.state


class FakeRegistry:
    """Records forwarded calls; optionally applies task tools to a FakeStore."""

    def __init__(self, store=None, results=None):
        self.store = store
        self.results = dict(results or {})
        self.calls = []

    def execute_tool(self, request):
        name, arguments = request["function"], request.get("arguments") or {}
        self.calls.append((name, dict(arguments)))
        if name in self.results:
            outcome = self.results[name]
            return outcome(arguments) if callable(outcome) else outcome
        if name == "create_task" and self.store is not None:
            task = {
                "id": f"task-{len(self.store.state['tasks']) + 1}",
                "title": arguments["title"],
                "status": arguments.get("status", "backlog"),
                "priority": arguments.get("priority", "medium"),
            }
            self.store.state["tasks"].append(task)
            return ToolResult(True, f"Created task \"{task['title']}\"", {"taskId": task["id"]})
        return ToolResult(True, f"{name} done")

    def names(self):
        return [name for name, _ in self.calls]


class ScriptedProvider:
    """LLMProvider stand-in that replays scripted model turns.

    Each script item is either reply text or a list of ToolCall.
    """

    def __init__(self, script, name="stub", configured=True):
        self.name = name
        self.script = list(script)
        self.configured = configured
        self.requests = []

    def is_configured(self):
        return self.configured

    def configure(self, **changes):
        self.configured = True

    def get_model(self):
        return "stub-model"

    def _next_turn(self):
        item = self.script.pop(0) if self.script else ""
        if isinstance(item, list):
            return ModelTurn(tool_calls=item)
        return ModelTurn(text=item)

    async def chat(self, message, tools=None, history=None, *, system_prompt=None, tool_runner=None):
        if not self.configured:
            return ChatResult.failure("configuration", "stub API key not configured")
        self.requests.append(
            {"message": message, "tools": list(tools or []), "history": list(history or []), "system_prompt": system_prompt}
        )

        async def send_results(turn, results):
            return self._next_turn()

        return await run_tool_loop(self.name, self._next_turn(), send_results, tool_runner)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def registry(store):
    return FakeRegistry(store)


@pytest.fixture
def bus():
    return ActionBus()


@pytest.fixture
def recorded_actions(bus):
    actions = []
    bus.subscribe(actions.append)
    return actions


@pytest.fixture
def call():
    """Shorthand for building ToolCall objects."""
    return lambda name, **arguments: ToolCall(name, arguments, id=f"call-{name}")
