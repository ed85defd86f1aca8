"""Chat module - the turn pipeline.

Key Components:
- TurnOrchestrator (chat.orchestrator): Runs one message through the pipeline
- SessionResolver (chat.sessions): Finds or creates sessions
- ContextAssembler (chat.context): Builds the prompt
- CompletionInvoker (chat.completion): Calls the model
- TranslationExtractor (chat.translation): Splits word translations off replies
- WordParser (chat.translation): Model-assisted word split for replies without a block
- RequestLogger (chat.request_log): Audit log of model calls with token usage

Only leaf modules are re-exported here; import pipeline components from
their modules, which depend on the memory package.
"""

from persona_chat.chat.persona import Agent, AgentConfig, AgentType, ResponseLength
from persona_chat.chat.types import (
    ChatMessage,
    CompletionRequest,
    CompletionResult,
    ExtractedTranslation,
    RequestContext,
    RequestKind,
    RequestLogEntry,
    Role,
    Session,
    Turn,
    TurnRequest,
    TurnResult,
    TurnState,
    WordTranslation,
)

__all__ = [
    "Agent",
    "AgentConfig",
    "AgentType",
    "ChatMessage",
    "CompletionRequest",
    "CompletionResult",
    "ExtractedTranslation",
    "RequestContext",
    "RequestKind",
    "RequestLogEntry",
    "ResponseLength",
    "Role",
    "Session",
    "Turn",
    "TurnRequest",
    "TurnResult",
    "TurnState",
    "WordTranslation",
]
