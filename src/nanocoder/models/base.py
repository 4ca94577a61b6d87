"""Shared types for provider adapters and the bounded tool-calling loop."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Protocol, Sequence, Tuple

from flux.core.config import LLM_MAX_TOKENS, LLM_REQUEST_TIMEOUT, LLM_TEMPERATURE, MAX_TOOL_ITERATIONS

from ..tools import ToolCall, ToolDefinition, ToolResult

logger = logging.getLogger(__name__)

ToolRunner = Callable[[ToolCall], Awaitable[ToolResult]]


@dataclass(frozen=True)
class ProviderConfig:
    """Per-provider settings. ``merge`` returns a copy with overrides applied."""

    model: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_tokens: int = LLM_MAX_TOKENS
    temperature: float = LLM_TEMPERATURE
    timeout: float = LLM_REQUEST_TIMEOUT

    def merge(self, **changes: Any) -> "ProviderConfig":
        unknown = set(changes) - set(self.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown provider settings: {', '.join(sorted(unknown))}")
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


@dataclass(frozen=True)
class ChatMessage:
    role: Literal["user", "assistant"]
    content: str


@dataclass
class ToolOutcome:
    call: ToolCall
    result: ToolResult


@dataclass(frozen=True)
class ProviderFailure:
    kind: Literal["configuration", "transport"]
    message: str


@dataclass
class ChatResult:
    """Outcome of one ``chat`` call.

    ``error`` is set for expected failures (no credential, transport
    errors); everything else is a completed exchange.
    """

    response: str = ""
    tools_called: List[str] = field(default_factory=list)
    tool_outcomes: List[ToolOutcome] = field(default_factory=list)
    iterations: int = 0
    exhausted: bool = False
    raw: Any = None
    error: Optional[ProviderFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, kind: str, message: str, raw: Any = None) -> "ChatResult":
        return cls(error=ProviderFailure(kind, message), raw=raw)


class LLMProvider(Protocol):
    """Contract every provider adapter implements."""

    name: str

    def is_configured(self) -> bool: ...

    def get_model(self) -> str: ...

    def configure(self, **changes: Any) -> None: ...

    async def chat(
        self,
        message: str,
        tools: Optional[Sequence[ToolDefinition]] = None,
        history: Optional[Sequence[ChatMessage]] = None,
        *,
        system_prompt: Optional[str] = None,
        tool_runner: Optional[ToolRunner] = None,
    ) -> ChatResult: ...


@dataclass
class ModelTurn:
    """One model reply normalised across dialects."""

    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    raw: Any = None


SendResults = Callable[[ModelTurn, List[Tuple[ToolCall, ToolResult]]], Awaitable[ModelTurn]]


def format_tool_result(result: ToolResult) -> str:
    """Text form of a tool result as fed back to the model."""
    text = f"Success: {result.message}" if result.success else f"Error: {result.message}"
    if result.data is not None:
        text += f"\nData: {json.dumps(result.data, default=str)}"
    return text


def parse_arguments(raw: Any) -> Dict[str, Any]:
    """Decode tool-call arguments that may arrive as JSON text or a mapping."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning("Failed to parse tool arguments: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def cap_summary(iterations: int, tools_called: Sequence[str], text: str = "") -> str:
    summary = (
        f"I stopped after {iterations} rounds of tool calls without finishing. "
        f"Executed {len(tools_called)} action(s): {', '.join(tools_called)}."
    )
    return f"{text}\n\n{summary}" if text else summary


async def run_tool_loop(
    provider_name: str,
    first_turn: ModelTurn,
    send_results: SendResults,
    tool_runner: Optional[ToolRunner],
    max_iterations: int = MAX_TOOL_ITERATIONS,
) -> ChatResult:
    """Execute requested tools and feed results back until the model stops.

    Each round runs every tool the model asked for, then asks the model to
    continue. At most ``max_iterations`` rounds are run.
    """
    turn = first_turn
    text = turn.text
    tools_called: List[str] = []
    outcomes: List[ToolOutcome] = []
    iterations = 0

    while turn.tool_calls and iterations < max_iterations:
        results: List[Tuple[ToolCall, ToolResult]] = []
        for call in turn.tool_calls:
            logger.info("[%s] Executing tool: %s %s", provider_name, call.name, call.arguments)
            if tool_runner is None:
                result = ToolResult(False, f"No tool executor available to run {call.name}")
            else:
                result = await tool_runner(call)
            tools_called.append(call.name)
            outcomes.append(ToolOutcome(call, result))
            results.append((call, result))
        turn = await send_results(turn, results)
        iterations += 1
        text = turn.text or text

    exhausted = bool(turn.tool_calls)
    if exhausted:
        logger.warning("[%s] Tool loop stopped after %d iterations", provider_name, iterations)
        response = cap_summary(iterations, tools_called, turn.text)
    elif text:
        response = text
    elif tools_called:
        response = (
            f"Executed {len(tools_called)} action(s). "
            "Please check the tool results above for details."
        )
    else:
        response = (
            "I processed your request. If you expected a specific action, "
            "please check if it completed successfully."
        )

    return ChatResult(
        response=response,
        tools_called=tools_called,
        tool_outcomes=outcomes,
        iterations=iterations,
        exhausted=exhausted,
        raw=turn.raw,
    )
