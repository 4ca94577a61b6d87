"""Google Gemini adapter (google-genai SDK)."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..prompts import FALLBACK_SYSTEM_PROMPT
from ..tools import ToolCall, ToolDefinition
from .base import (
    ChatMessage,
    ChatResult,
    ModelTurn,
    ProviderConfig,
    ToolRunner,
    parse_arguments,
    run_tool_loop,
)
from .config import ProviderSpec, get_provider_spec, resolve_api_key
from .schema import GEMINI_DIALECT

logger = logging.getLogger(__name__)

# Gemini names the assistant role "model".
_ROLES = {"user": "user", "assistant": "model"}


def _default_client(config: ProviderConfig):
    return genai.Client(
        api_key=config.api_key,
        http_options=types.HttpOptions(timeout=int(config.timeout * 1000)),
    )


class GeminiProvider:
    def __init__(
        self,
        spec: Optional[ProviderSpec] = None,
        api_key: Optional[str] = None,
        client_factory: Optional[Callable[[ProviderConfig], Any]] = None,
    ) -> None:
        self.spec = spec or get_provider_spec("gemini")
        self.name = self.spec.id
        self.config = ProviderConfig(model=self.spec.default_model, max_tokens=self.spec.max_tokens)
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
        parts = []
        if response.candidates and response.candidates[0].content:
            parts = response.candidates[0].content.parts or []
        text = "".join(p.text for p in parts if getattr(p, "text", None))
        calls = [
            ToolCall(p.function_call.name, parse_arguments(p.function_call.args), getattr(p.function_call, "id", None))
            for p in parts
            if getattr(p, "function_call", None) and p.function_call.name
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

        contents: List[types.Content] = [
            types.Content(role=_ROLES[item.role], parts=[types.Part(text=item.content)])
            for item in history or []
            if item.content
        ]
        contents.append(types.Content(role="user", parts=[types.Part(text=message)]))

        config_kwargs: Dict[str, Any] = {
            "system_instruction": system_prompt or FALLBACK_SYSTEM_PROMPT,
            "temperature": self.config.temperature,
            "max_output_tokens": self.config.max_tokens,
        }
        if tools:
            declarations = [types.FunctionDeclaration.model_validate(d) for d in GEMINI_DIALECT.encode_all(tools)]
            config_kwargs["tools"] = [types.Tool(function_declarations=declarations)]
            config_kwargs["tool_config"] = types.ToolConfig(
                function_calling_config=types.FunctionCallingConfig(mode="AUTO")
            )
        config = types.GenerateContentConfig(**config_kwargs)

        async def request():
            response = await self._client.aio.models.generate_content(
                model=self.config.model, contents=contents, config=config
            )
            return self._to_turn(response)

        async def send_results(turn: ModelTurn, results) -> ModelTurn:
            model_parts = []
            if turn.text:
                model_parts.append(types.Part(text=turn.text))
            model_parts.extend(
                types.Part(function_call=types.FunctionCall(name=call.name, args=call.arguments))
                for call in turn.tool_calls
            )
            contents.append(types.Content(role="model", parts=model_parts))
            contents.append(types.Content(role="user", parts=[
                types.Part(function_response=types.FunctionResponse(name=call.name, response=result.to_dict()))
                for call, result in results
            ]))
            return await request()

        try:
            first = await request()
            return await run_tool_loop(self.name, first, send_results, tool_runner)
        except genai_errors.APIError as e:
            logger.error("%s request failed: %s", self.spec.display_name, e)
            return ChatResult.failure("transport", str(e), raw=e)
