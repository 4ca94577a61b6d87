import copy
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import anthropic
import ollama
import openai
import pytest

from flux.core.config import KEYRING_SERVICE, MAX_TOOL_ITERATIONS
from nanocoder.models.anthropic_client import AnthropicProvider
from nanocoder.models.base import ChatMessage, ModelTurn, ProviderConfig, format_tool_result, run_tool_loop
from nanocoder.models.config import get_provider_spec
from nanocoder.models.factory import ProviderFactory
from nanocoder.models.gemini_client import GeminiProvider
from nanocoder.models.ollama_client import OllamaProvider
from nanocoder.models.openai_client import OpenAIProvider
from nanocoder.tools import ToolCall, ToolResult, get_tool_definitions


class _ClientFactory:
    """Records configs and hands out a prepared fake client."""

    def __init__(self, client=None):
        self.client = client or MagicMock()
        self.configs = []

    def __call__(self, config):
        self.configs.append(config)
        return self.client


async def _ok_runner(call):
    return ToolResult(True, f"{call.name} done")


# --- OpenAI ---

def _openai_response(text=None, calls=()):
    tool_calls = [
        SimpleNamespace(id=f"call-{i}", function=SimpleNamespace(name=name, arguments=json.dumps(args)))
        for i, (name, args) in enumerate(calls)
    ]
    message = SimpleNamespace(content=text, tool_calls=tool_calls or None)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class _FakeOpenAI:
    def __init__(self, responses=None, always=None, error=None):
        self.responses = list(responses or [])
        self.always = always
        self.error = error
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs):
        self.requests.append(copy.deepcopy(kwargs))
        if self.error is not None:
            raise self.error
        if self.always is not None:
            return self.always
        return self.responses.pop(0)


@pytest.mark.asyncio
async def test_unconfigured_provider_fails_before_network():
    factory = _ClientFactory()
    provider = OpenAIProvider(client_factory=factory)

    result = await provider.chat("hello")

    assert not provider.is_configured()
    assert not result.ok
    assert result.error.kind == "configuration"
    assert factory.configs == []


def test_configure_supplies_credential():
    factory = _ClientFactory()
    provider = OpenAIProvider(client_factory=factory)

    provider.configure(api_key="sk-test", model="gpt-4o")

    assert provider.is_configured()
    assert factory.configs[-1].api_key == "sk-test"
    assert provider.get_model() == "gpt-4o"


@pytest.mark.parametrize(
    "provider_cls,provider_id",
    [
        (OpenAIProvider, "openai"),
        (AnthropicProvider, "claude"),
        (GeminiProvider, "gemini"),
        (OllamaProvider, "ollama"),
    ],
)
def test_get_model_reports_default_model(provider_cls, provider_id):
    provider = provider_cls(client_factory=_ClientFactory())

    assert provider.get_model() == get_provider_spec(provider_id).default_model


def test_unknown_setting_rejected():
    with pytest.raises(ValueError):
        ProviderConfig(model="m").merge(colour="blue")


def test_credentials_from_environment_and_keyring(monkeypatch, no_provider_credentials):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    no_provider_credentials[(KEYRING_SERVICE, "anthropic_api_key")] = "sk-ring"

    openai_factory = _ClientFactory()
    anthropic_factory = _ClientFactory()
    OpenAIProvider(client_factory=openai_factory)
    AnthropicProvider(client_factory=anthropic_factory)

    assert openai_factory.configs[0].api_key == "sk-env"
    assert anthropic_factory.configs[0].api_key == "sk-ring"


@pytest.mark.asyncio
async def test_openai_tool_loop_and_message_shape():
    fake = _FakeOpenAI([
        _openai_response(calls=[("set_theme", {"theme": "dark"})]),
        _openai_response(text="Switched to dark mode."),
    ])
    provider = OpenAIProvider(api_key="sk", client_factory=_ClientFactory(fake))
    history = [ChatMessage("user", "hi"), ChatMessage("assistant", "hello")]

    result = await provider.chat(
        "dark mode please",
        get_tool_definitions("agile"),
        history,
        system_prompt="SYSTEM",
        tool_runner=_ok_runner,
    )

    assert result.ok
    assert result.response == "Switched to dark mode."
    assert result.tools_called == ["set_theme"]
    first, second = fake.requests
    assert first["messages"][0] == {"role": "system", "content": "SYSTEM"}
    assert [m["role"] for m in first["messages"]] == ["system", "user", "assistant", "user"]
    assert first["tool_choice"] == "auto"
    assert second["messages"][-2]["tool_calls"][0]["function"]["name"] == "set_theme"
    assert second["messages"][-1] == {
        "role": "tool",
        "tool_call_id": "call-0",
        "content": "Success: set_theme done",
    }


@pytest.mark.asyncio
async def test_tool_loop_capped_at_five_iterations():
    fake = _FakeOpenAI(always=_openai_response(calls=[("list_tasks", {})]))
    provider = OpenAIProvider(api_key="sk", client_factory=_ClientFactory(fake))

    result = await provider.chat("loop forever", get_tool_definitions("agile"), tool_runner=_ok_runner)

    assert result.ok
    assert result.exhausted
    assert result.iterations == MAX_TOOL_ITERATIONS
    assert len(fake.requests) == MAX_TOOL_ITERATIONS + 1
    assert len(result.tools_called) == MAX_TOOL_ITERATIONS
    assert f"Executed {MAX_TOOL_ITERATIONS} action(s)" in result.response


@pytest.mark.asyncio
async def test_openai_transport_error_is_tagged():
    error = openai.APIConnectionError(request=MagicMock())
    provider = OpenAIProvider(api_key="sk", client_factory=_ClientFactory(_FakeOpenAI(error=error)))

    result = await provider.chat("hello")

    assert result.error.kind == "transport"
    assert "Connection error" in result.error.message


@pytest.mark.asyncio
async def test_programming_errors_propagate():
    provider = OpenAIProvider(api_key="sk", client_factory=_ClientFactory(_FakeOpenAI(error=KeyError("bug"))))

    with pytest.raises(KeyError):
        await provider.chat("hello")


# --- Anthropic / GLM ---

def _anthropic_response(text=None, calls=()):
    content = []
    if text:
        content.append(SimpleNamespace(type="text", text=text))
    for i, (name, args) in enumerate(calls):
        content.append(SimpleNamespace(type="tool_use", id=f"toolu_{i}", name=name, input=args))
    return SimpleNamespace(content=content, stop_reason="tool_use" if calls else "end_turn")


class _FakeAnthropic:
    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.requests = []
        self.messages = SimpleNamespace(create=self._create)

    async def _create(self, **kwargs):
        self.requests.append(copy.deepcopy(kwargs))
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)


@pytest.mark.asyncio
async def test_anthropic_tool_loop():
    fake = _FakeAnthropic([
        _anthropic_response("On it.", calls=[("create_task", {"title": "Ship it"})]),
        _anthropic_response("Created the task."),
    ])
    provider = AnthropicProvider(api_key="sk", client_factory=_ClientFactory(fake))

    result = await provider.chat("add task ship it", get_tool_definitions("agile"), system_prompt="SYS", tool_runner=_ok_runner)

    assert result.response == "Created the task."
    first, second = fake.requests
    assert first["system"] == "SYS"
    assert "input_schema" in first["tools"][0]
    assert second["messages"][1]["content"][1]["type"] == "tool_use"
    tool_result = second["messages"][2]["content"][0]
    assert tool_result == {
        "type": "tool_result",
        "tool_use_id": "toolu_0",
        "content": "Success: create_task done",
        "is_error": False,
    }


@pytest.mark.asyncio
async def test_glm_uses_anthropic_dialect_with_own_endpoint():
    fake = _FakeAnthropic([_anthropic_response("hi")])
    factory = _ClientFactory(fake)
    provider = AnthropicProvider(spec=get_provider_spec("glm"), api_key="glm-key", client_factory=factory)

    await provider.chat("hello", history=[ChatMessage("user", ""), ChatMessage("assistant", "x")])

    assert provider.name == "glm"
    assert factory.configs[0].base_url == "https://api.z.ai/api/anthropic"
    assert fake.requests[0]["max_tokens"] == 4096
    assert fake.requests[0]["model"] == "glm-4.6"
    # empty turns are dropped
    assert fake.requests[0]["messages"][0] == {"role": "assistant", "content": "x"}


@pytest.mark.asyncio
async def test_anthropic_transport_error_is_tagged():
    error = anthropic.APIConnectionError(request=MagicMock())
    provider = AnthropicProvider(api_key="sk", client_factory=_ClientFactory(_FakeAnthropic(error=error)))

    result = await provider.chat("hello")

    assert result.error.kind == "transport"


# --- Gemini ---

def _gemini_response(text=None, calls=()):
    parts = []
    if text:
        parts.append(SimpleNamespace(text=text, function_call=None))
    for name, args in calls:
        parts.append(SimpleNamespace(text=None, function_call=SimpleNamespace(name=name, args=args)))
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])


class _FakeGemini:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []
        self.aio = SimpleNamespace(models=SimpleNamespace(generate_content=self._generate))

    async def _generate(self, model, contents, config):
        self.requests.append({"model": model, "contents": list(contents), "config": config})
        return self.responses.pop(0)


@pytest.mark.asyncio
async def test_gemini_tool_loop_and_roles():
    fake = _FakeGemini([
        _gemini_response(calls=[("navigate_to_page", {"page": "inbox"})]),
        _gemini_response("Opened the inbox."),
    ])
    provider = GeminiProvider(api_key="g", client_factory=_ClientFactory(fake))

    result = await provider.chat(
        "open inbox",
        get_tool_definitions("agile"),
        [ChatMessage("user", "hi"), ChatMessage("assistant", "hello")],
        system_prompt="SYS",
        tool_runner=_ok_runner,
    )

    assert result.response == "Opened the inbox."
    assert result.tools_called == ["navigate_to_page"]
    first, second = fake.requests
    assert [c.role for c in first["contents"]] == ["user", "model", "user"]
    assert first["config"].system_instruction == "SYS"
    declared = [d.name for d in first["config"].tools[0].function_declarations]
    assert "navigate_to_page" in declared
    response_part = second["contents"][-1].parts[0]
    assert response_part.function_response.name == "navigate_to_page"
    assert response_part.function_response.response["success"] is True


@pytest.mark.asyncio
async def test_gemini_unconfigured():
    result = await GeminiProvider(client_factory=_ClientFactory()).chat("hi")
    assert result.error.kind == "configuration"


# --- Ollama ---

class _FakeOllama:
    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.requests = []

    async def chat(self, **kwargs):
        self.requests.append(copy.deepcopy(kwargs))
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)


def _ollama_response(text="", calls=()):
    tool_calls = [SimpleNamespace(function=SimpleNamespace(name=n, arguments=a)) for n, a in calls]
    return SimpleNamespace(message=SimpleNamespace(content=text, tool_calls=tool_calls or None))


@pytest.mark.asyncio
async def test_ollama_configured_by_host():
    fake = _FakeOllama([_ollama_response(calls=[("toggle_sidebar", {})]), _ollama_response("Done.")])
    factory = _ClientFactory(fake)

    assert not OllamaProvider(client_factory=factory).is_configured()
    provider = OllamaProvider(host="http://localhost:11434", client_factory=factory)

    result = await provider.chat("hide sidebar", get_tool_definitions("agile"), tool_runner=_ok_runner)

    assert result.response == "Done."
    assert fake.requests[1]["messages"][-1]["role"] == "tool"
    assert fake.requests[0]["tools"][0]["type"] == "function"


@pytest.mark.asyncio
async def test_ollama_response_error_is_tagged():
    fake = _FakeOllama(error=ollama.ResponseError("model 'llama9' not found", 404))
    provider = OllamaProvider(host="http://localhost:11434", client_factory=_ClientFactory(fake))

    result = await provider.chat("hi")

    assert result.error.kind == "transport"


# --- Shared loop ---

@pytest.mark.asyncio
async def test_loop_without_runner_reports_failed_tools():
    turns = [ModelTurn(text="")]

    async def send_results(turn, results):
        assert results[0][1].success is False
        return turns.pop()

    result = await run_tool_loop("stub", ModelTurn(tool_calls=[ToolCall("list_tasks")]), send_results, None)

    assert result.tools_called == ["list_tasks"]
    assert result.response.startswith("Executed 1 action(s).")


@pytest.mark.asyncio
async def test_loop_fallback_text_when_nothing_happens():
    async def send_results(turn, results):
        raise AssertionError("no tools were requested")

    result = await run_tool_loop("stub", ModelTurn(), send_results, _ok_runner)

    assert result.response.startswith("I processed your request.")


def test_format_tool_result():
    assert format_tool_result(ToolResult(False, "nope")) == "Error: nope"
    assert format_tool_result(ToolResult(True, "ok", {"n": 1})) == 'Success: ok\nData: {"n": 1}'


# --- Factory ---

class _Stub:
    def __init__(self, name, configured):
        self.name = name
        self.configured = configured

    def is_configured(self):
        return self.configured

    def configure(self, **changes):
        self.configured = True


def _factory(**configured):
    providers = {
        pid: _Stub(pid, configured.get(pid, False))
        for pid in ("gemini", "openai", "claude", "glm", "ollama")
    }
    return ProviderFactory(providers)


def test_resolve_prefers_configured_choice():
    provider_id, provider = _factory(claude=True, gemini=True).resolve("claude")
    assert provider_id == "claude"


def test_resolve_falls_back_in_order():
    assert _factory(glm=True, claude=True).resolve("openai")[0] == "claude"
    assert _factory(glm=True).resolve("not-a-provider")[0] == "glm"


def test_resolve_defaults_when_nothing_configured():
    provider_id, provider = _factory().resolve(None)
    assert provider_id == "openai"
    assert not provider.is_configured()


def test_factory_creates_real_adapters_lazily():
    factory = ProviderFactory()

    provider = factory.get("glm")

    assert isinstance(provider, AnthropicProvider)
    assert factory.get("glm") is provider
    assert ("openai", False) in factory.available()


def test_configure_can_remember_key(no_provider_credentials):
    factory = _factory()

    factory.configure("openai", remember=True, api_key="sk-new")

    assert factory.get("openai").is_configured()
    assert no_provider_credentials[(KEYRING_SERVICE, "openai_api_key")] == "sk-new"
