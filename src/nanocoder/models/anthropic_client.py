"""Anthropic messages-API adapter. Also serves Anthropic-compatible endpoints such as GLM."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import anthropic

from ..prompts import FALLBACK_SYSTEM_PROMPT
from ..tools import ToolCall, ToolDefinition
from .base import (
    ChatMessage,
    ChatResult,
    ModelTurn,
    ProviderConfig,
    ToolRunner,
    format_tool_result,
    parse_arguments,
    run_tool_loop,
)
from .config import ProviderSpec, get_provider_spec, resolve_api_key
from .schema import ANTHROPIC_DIALECT

logger = logging.getLogger(__name__)


def _default_client(config: ProviderConfig):
    return anthropic.AsyncAnthropic(api_key=config.api_key, base_url=config.base_url, timeout=config.timeout)


def _block_to_dict(block) -> Dict[str, Any]:
    if block.type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    return {"type": "text", "text": getattr(block, "text", "")}


class AnthropicProvider:
    """Claude models (and GLM through its Anthropic-compatible endpoint)."""

    def __init__(
        self,
        spec: Optional[ProviderSpec] = None,
        api_key: Optional[str] = None,
        client_factory: Optional[Callable[[ProviderConfig], Any]] = None,
    ) -> None:
        self.spec = spec or get_provider_spec("claude")
        self.name = self.spec.id
        self.config = ProviderConfig(
            model=self.spec.default_model,
            base_url=self.spec.base_url,
            max_tokens=self.spec.max_tokens,
        )
        self._client_factory = client_factory or _default_client
        self._client = None
        key = api_key or resolve_api_key(self.spec)
        if key:
            self.configure(api_key=key)

    def is_configured(self) -> bool:
        return self._client is not None

    def get_model(self) -> str:
        return self.config.model

    def configure(self, **changes: Any) -> None:
        self.config = self.config.merge(**changes)
        if self.config.api_key:
            self._client = self._client_factory(self.config)

    @staticmethod
    def _to_turn(response) -> ModelTurn:
        text = "".join(b.text for b in response.content if b.type == "text")
        calls: List[ToolCall] = []
        if response.stop_reason == "tool_use":
            calls = [
                ToolCall(b.name, parse_arguments(b.input), b.id)
                for b in response.content
                if b.type == "tool_use"
            ]
        return ModelTurn(text=text, tool_calls=calls, raw=response)

    async def chat(
        self,
        message: str,
        tools: Optional[Sequence[ToolDefinition]] = None,
        history: Optional[Sequence[ChatMessage]] = None,
        *,
        system_prompt: Optional[str] = None,
        tool_runner: Optional[ToolRunner] = None,
    ) -> ChatResult:
        if self._client is None:
            return ChatResult.failure("configuration", f"{self.spec.display_name} API key not configured")

        # The messages API rejects empty turns.
        messages: List[Dict[str, Any]] = [
            {"role": item.role, "content": item.content} for item in history or [] if item.content
        ]
        messages.append({"role": "user", "content": message})
        wire_tools = ANTHROPIC_DIALECT.encode_all(tools) if tools else None

        async def request():
            kwargs: Dict[str, Any] = {
                "model": self.config.model,
                "max_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
                "system": system_prompt or FALLBACK_SYSTEM_PROMPT,
                "messages": messages,
            }
            if wire_tools:
                kwargs["tools"] = wire_tools
            return self._to_turn(await self._client.messages.create(**kwargs))

        async def send_results(turn: ModelTurn, results) -> ModelTurn:
            messages.append({
                "role": "assistant",
                "content": [_block_to_dict(block) for block in turn.raw.content],
            })
            messages.append({
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": call.id,
                        "content": format_tool_result(result),
                        "is_error": not result.success,
                    }
                    for call, result in results
                ],
            })
            return await request()

        try:
            first = await request()
            return await run_tool_loop(self.name, first, send_results, tool_runner)
        except anthropic.APIError as e:
            logger.error("%s request failed: %s", self.spec.display_name, e)
            return ChatResult.failure("transport", str(e), raw=e)
