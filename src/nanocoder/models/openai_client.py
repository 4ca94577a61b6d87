"""OpenAI chat-completions adapter."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import openai

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
from .schema import OPENAI_DIALECT

logger = logging.getLogger(__name__)


def _default_client(config: ProviderConfig):
    return openai.AsyncOpenAI(api_key=config.api_key, base_url=config.base_url, timeout=config.timeout)


class OpenAIProvider:
    """OpenAI GPT models over the chat-completions API."""

    def __init__(
        self,
        spec: Optional[ProviderSpec] = None,
        api_key: Optional[str] = None,
        client_factory: Optional[Callable[[ProviderConfig], Any]] = None,
    ) -> None:
        self.spec = spec or get_provider_spec("openai")
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

    def _build_messages(self, message: str, history: Optional[Sequence[ChatMessage]], system_prompt: Optional[str]) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt or FALLBACK_SYSTEM_PROMPT}]
        for item in history or []:
            messages.append({"role": item.role, "content": item.content})
        messages.append({"role": "user", "content": message})
        return messages

    @staticmethod
    def _to_turn(response) -> ModelTurn:
        choice = response.choices[0].message
        calls = [
            ToolCall(tc.function.name, parse_arguments(tc.function.arguments), tc.id)
            for tc in (choice.tool_calls or [])
        ]
        return ModelTurn(text=choice.content or "", tool_calls=calls, raw=response)

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

        messages = self._build_messages(message, history, system_prompt)
        wire_tools = OPENAI_DIALECT.encode_all(tools) if tools else None

        async def request():
            kwargs: Dict[str, Any] = {
                "model": self.config.model,
                "messages": messages,
                "max_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
            }
            if wire_tools:
                kwargs["tools"] = wire_tools
                kwargs["tool_choice"] = "auto"
            return self._to_turn(await self._client.chat.completions.create(**kwargs))

        async def send_results(turn: ModelTurn, results) -> ModelTurn:
            messages.append({
                "role": "assistant",
                "content": turn.text or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                    }
                    for call in turn.tool_calls
                ],
            })
            for call, result in results:
                messages.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": format_tool_result(result),
                })
            return await request()

        try:
            first = await request()
            return await run_tool_loop(self.name, first, send_results, tool_runner)
        except openai.APIError as e:
            logger.error("%s request failed: %s", self.spec.display_name, e)
            return ChatResult.failure("transport", str(e), raw=e)
