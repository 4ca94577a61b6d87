"""Local Ollama adapter. Speaks the OpenAI tool dialect."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import ollama

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
from .config import ProviderSpec, get_provider_spec
from .schema import OPENAI_DIALECT

logger = logging.getLogger(__name__)


def _default_client(config: ProviderConfig):
    return ollama.AsyncClient(host=config.base_url, timeout=config.timeout)


class OllamaProvider:
    """Ollama chat API. Configured by host; no credential is needed."""

    def __init__(
        self,
        spec: Optional[ProviderSpec] = None,
        host: Optional[str] = None,
        client_factory: Optional[Callable[[ProviderConfig], Any]] = None,
    ) -> None:
        self.spec = spec or get_provider_spec("ollama")
        self.name = self.spec.id
        self.config = ProviderConfig(model=self.spec.default_model, max_tokens=self.spec.max_tokens)
        self._client_factory = client_factory or _default_client
        self._client = None
        base_url = host or self.spec.base_url
        if base_url:
            self.configure(base_url=base_url)

    def is_configured(self) -> bool:
        return self._client is not None

    def get_model(self) -> str:
        return self.config.model

    def configure(self, **changes: Any) -> None:
        self.config = self.config.merge(**changes)
        if self.config.base_url:
            self._client = self._client_factory(self.config)

    @staticmethod
    def _to_turn(response) -> ModelTurn:
        message = response.message
        calls = [
            ToolCall(tc.function.name, parse_arguments(tc.function.arguments))
            for tc in (message.tool_calls or [])
        ]
        return ModelTurn(text=message.content or "", tool_calls=calls, raw=response)

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
            return ChatResult.failure("configuration", "Ollama host not configured")

        messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt or FALLBACK_SYSTEM_PROMPT}]
        messages.extend({"role": item.role, "content": item.content} for item in history or [])
        messages.append({"role": "user", "content": message})
        wire_tools = OPENAI_DIALECT.encode_all(tools) if tools else None

        async def request():
            response = await self._client.chat(
                model=self.config.model,
                messages=messages,
                tools=wire_tools,
                options={"temperature": self.config.temperature, "num_predict": self.config.max_tokens},
            )
            return self._to_turn(response)

        async def send_results(turn: ModelTurn, results) -> ModelTurn:
            messages.append({
                "role": "assistant",
                "content": turn.text,
                "tool_calls": [
                    {"function": {"name": call.name, "arguments": call.arguments}}
                    for call in turn.tool_calls
                ],
            })
            for call, result in results:
                messages.append({"role": "tool", "content": format_tool_result(result), "tool_name": call.name})
            return await request()

        try:
            first = await request()
            return await run_tool_loop(self.name, first, send_results, tool_runner)
        except (ollama.ResponseError, ConnectionError) as e:
            logger.error("Ollama request failed: %s", e)
            return ChatResult.failure("transport", str(e), raw=e)
