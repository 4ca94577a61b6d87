"""Natural-language command agent for the Flux workspace."""

from .action_logger import ActionLogEntry, ActionLogger
from .agent_service import AgentService, CommandResult, ErrorCategory, classify_error, create_agent_service
from .bridge import ActionBridge, UIHost
from .context_provider import AgentContext, ContextProvider
from .dispatcher import Action, ActionBus, make_action
from .memory import AgentMemory
from .prompts import FALLBACK_SYSTEM_PROMPT, build_system_prompt
from .session_manager import CommandHistoryEntry, SessionConfig, SessionManager
from .tools import ToolCall, ToolDefinition, ToolExecutor, ToolResult, get_tool_definitions
from .verifier import VerificationOutcome, VerificationResult, Verifier

__all__ = [
    "ActionLogEntry",
    "ActionLogger",
    "AgentService",
    "CommandResult",
    "ErrorCategory",
    "classify_error",
    "create_agent_service",
    "ActionBridge",
    "UIHost",
    "AgentContext",
    "ContextProvider",
    "Action",
    "ActionBus",
    "make_action",
    "AgentMemory",
    "FALLBACK_SYSTEM_PROMPT",
    "build_system_prompt",
    "CommandHistoryEntry",
    "SessionConfig",
    "SessionManager",
    "ToolCall",
    "ToolDefinition",
    "ToolExecutor",
    "ToolResult",
    "get_tool_definitions",
    "VerificationOutcome",
    "VerificationResult",
    "Verifier",
]
