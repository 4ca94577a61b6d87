"""
Agent Service - runs a natural-language command through the active provider.

One ``process_command`` call builds a context snapshot, compiles the
system prompt, selects the tools valid for the active workflow, and lets
the provider drive the bounded tool loop. Tool effects go to the event
bus or the host's tool registry through a ``ToolExecutor``.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from flux.core.config import HISTORY_PAIRS

from .action_logger import ActionLogger
from .context_provider import ContextProvider
from .dispatcher import ACTION_SOURCES, ActionBus
from .memory import AgentMemory
from .models.base import ChatResult, ProviderFailure
from .models.factory import ProviderFactory
from .prompts import build_system_prompt
from .session_manager import CommandHistoryEntry, SessionManager
from .tools import ToolExecutor, get_tool_definitions
from .verifier import Verifier

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    UNKNOWN = "unknown"


FRIENDLY_ERRORS = {
    ErrorCategory.MISSING_CREDENTIAL: "LLM provider API key is not configured. Please check your settings.",
    ErrorCategory.NETWORK: "Network error. Please check your internet connection and try again.",
    ErrorCategory.RATE_LIMITED: "Rate limit exceeded. Please wait a moment and try again.",
}

_CREDENTIAL_MARKERS = ("api key", "not configured", "authentication", "unauthorized", "401")
_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "429", "quota", "resource_exhausted")
_NETWORK_MARKERS = ("network", "fetch", "connect", "timed out", "timeout", "unreachable")


def classify_error(failure: ProviderFailure) -> ErrorCategory:
    if failure.kind == "configuration":
        return ErrorCategory.MISSING_CREDENTIAL
    text = failure.message.lower()
    if any(marker in text for marker in _CREDENTIAL_MARKERS):
        return ErrorCategory.MISSING_CREDENTIAL
    if any(marker in text for marker in _RATE_LIMIT_MARKERS):
        return ErrorCategory.RATE_LIMITED
    if any(marker in text for marker in _NETWORK_MARKERS):
        return ErrorCategory.NETWORK
    return ErrorCategory.UNKNOWN


@dataclass
class CommandResult:
    """What the user sees for one command."""

    response: str
    success: bool
    provider: Optional[str] = None
    tools_called: List[str] = field(default_factory=list)
    error_category: Optional[ErrorCategory] = None
    raw_error: Optional[str] = None


def report_unmentioned_issues(chat: ChatResult) -> str:
    """Append failed tool results and verification notes the model left out."""
    response = chat.response
    missing = []
    for outcome in chat.tool_outcomes:
        result = outcome.result
        if result.success and "(Note: " not in result.message:
            continue
        if result.message and result.message.lower() not in response.lower():
            status = "failed" if not result.success else "needs attention"
            missing.append(f"- {outcome.call.name} {status}: {result.message}")
    if not missing:
        return response
    return (response + "\n\n" if response else "") + "\n".join(missing)


class AgentService:
    """Coordinates one command end to end."""

    def __init__(
        self,
        store,
        registry,
        session: Optional[SessionManager] = None,
        factory: Optional[ProviderFactory] = None,
        bus: Optional[ActionBus] = None,
        action_logger: Optional[ActionLogger] = None,
        memory: Optional[AgentMemory] = None,
        verifier: Optional[Verifier] = None,
    ):
        self.store = store
        self.registry = registry
        self.session = session or SessionManager()
        self.factory = factory or ProviderFactory()
        self.bus = bus or ActionBus()
        self.action_logger = action_logger or ActionLogger()
        self.memory = memory or AgentMemory()
        self.verifier = verifier if verifier is not None else Verifier(store)
        self.context_provider = ContextProvider(store, self.action_logger, self.memory)

    async def process_command(self, user_input: str, source: str = "terminal") -> CommandResult:
        """
        Run ``user_input`` through the active provider.

        Args:
            user_input: Natural language command
            source: Where the command came from (voice, terminal, api, internal)

        Returns:
            CommandResult; never raises for provider or tool failures
        """
        self.session.begin_processing()
        try:
            result = await self._run(user_input, source)
        except Exception as e:
            logger.exception("Command processing failed")
            result = CommandResult(
                response=f"I encountered an error: {e}",
                success=False,
                error_category=ErrorCategory.UNKNOWN,
                raw_error=str(e),
            )
            self.session.add_command(
                CommandHistoryEntry(user_input, result.response, False, source=source)
            )
        self.session.finish_processing(result.raw_error)
        return result

    async def _run(self, user_input: str, source: str) -> CommandResult:
        provider_id, provider = self.factory.resolve(self.session.config.llm_provider)
        context = self.context_provider.build_context()
        system_prompt = build_system_prompt(context)
        tools = get_tool_definitions(context.workflow_mode)
        history = self.session.recent_history(HISTORY_PAIRS)

        executor = ToolExecutor(
            self.registry,
            self.bus,
            self.action_logger,
            verifier=self.verifier,
            workflow_mode=context.workflow_mode,
            session_id=self.session.session_id,
            user_id=context.current_user.id if context.current_user else None,
            source=source if source in ACTION_SOURCES else "internal",
        )
        logger.info("Processing command via %s (%d tools, %d history messages)",
                    provider_id, len(tools), len(history))
        chat = await provider.chat(
            user_input,
            tools,
            history,
            system_prompt=system_prompt,
            tool_runner=executor.execute,
        )

        if chat.ok:
            response = report_unmentioned_issues(chat)
            self.session.add_command(
                CommandHistoryEntry(
                    user_input, response, True,
                    source=source, provider=provider_id, tools_called=chat.tools_called,
                )
            )
            return CommandResult(response, True, provider_id, chat.tools_called)

        category = classify_error(chat.error)
        friendly = FRIENDLY_ERRORS.get(category, chat.error.message)
        response = f"I encountered an error: {friendly}"
        logger.warning("Provider %s failed (%s): %s", provider_id, category.value, chat.error.message)
        self.session.add_command(
            CommandHistoryEntry(user_input, response, False, source=source, provider=provider_id)
        )
        return CommandResult(
            response,
            False,
            provider_id,
            chat.tools_called,
            error_category=category,
            raw_error=chat.error.message,
        )


def create_agent_service(store, registry, storage=None, bus: Optional[ActionBus] = None) -> AgentService:
    """Wire an ``AgentService`` with persisted session, action log and memory.

    ``storage`` defaults to the shared ``RedisClient``.
    """
    if storage is None:
        from flux.core.redis_client import RedisClient

        storage = RedisClient()
    return AgentService(
        store,
        registry,
        session=SessionManager(storage).load(),
        bus=bus,
        action_logger=ActionLogger(storage).load(),
        memory=AgentMemory(storage).load(),
    )
