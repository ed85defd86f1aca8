"""Turn orchestration: one user message in, one persisted reply out.

A turn moves through TurnState stages:

    RESOLVING -> RETRIEVING -> ASSEMBLING -> INVOKING -> EXTRACTING
    -> PERSISTING -> CONSOLIDATING -> DONE

Only RESOLVING (credential, agent or session missing) and INVOKING
(model failure) can fail a turn. Memory retrieval, translation handling
and consolidation degrade: their failures are logged and the turn goes
on. The user turn is stored before the model is called, so a failed
call still leaves a record of what was asked.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from persona_chat.chat.agents import AgentDirectory
from persona_chat.chat.completion import CompletionInvoker, build_request
from persona_chat.chat.context import ContextAssembler
from persona_chat.chat.credentials import CredentialProvider
from persona_chat.chat.persona import is_language_assistant
from persona_chat.chat.sessions import SessionResolver
from persona_chat.chat.translation import TranslationExtractor, TranslationRecorder, WordParser
from persona_chat.chat.types import (
    ExtractedTranslation,
    RequestContext,
    Role,
    Session,
    Turn,
    TurnRequest,
    TurnResult,
    TurnState,
    WordTranslation,
)
from persona_chat.errors import AgentNotFoundError, CredentialMissingError, PersonaChatError
from persona_chat.memory.consolidator import MemoryConsolidator
from persona_chat.memory.queue import SummarizationQueue
from persona_chat.memory.retrieval import MemoryRetriever
from persona_chat.storage.sqlite_store import SQLiteChatStore
from persona_chat.utils.logging import bind_context, get_logger, turn_context

log = get_logger(__name__)


@dataclass
class History:
    """Recent turns of a session."""

    session: Session | None
    turns: list[Turn] = field(default_factory=list)
    has_more: bool = False


class TurnOrchestrator:
    """Runs the chat pipeline for one message at a time.

    Holds no per-turn state, so concurrent turns only share the stores.

    Args:
        credentials: Source of per-user model credentials.
        agents: Source of agent personas.
        store: Store for sessions, turns and translations.
        invoker: Language model client.
        assembler: Prompt builder.
        retriever: Memory retrieval; None disables memory lookup.
        consolidator: Memory creation; None disables consolidation.
        summary_queue: Background compaction queue; None disables it.
        word_parser: Splits language-assistant replies that carry no
            words; None disables the fallback.
    """

    def __init__(
        self,
        credentials: CredentialProvider,
        agents: AgentDirectory,
        store: SQLiteChatStore,
        invoker: CompletionInvoker,
        assembler: ContextAssembler | None = None,
        retriever: MemoryRetriever | None = None,
        consolidator: MemoryConsolidator | None = None,
        summary_queue: SummarizationQueue | None = None,
        word_parser: WordParser | None = None,
    ) -> None:
        self.credentials = credentials
        self.agents = agents
        self.store = store
        self.invoker = invoker
        self.assembler = assembler or ContextAssembler()
        self.retriever = retriever
        self.consolidator = consolidator
        self.summary_queue = summary_queue
        self.sessions = SessionResolver(store)
        self.extractor = TranslationExtractor()
        self.recorder = TranslationRecorder(store, word_parser)

    async def send_message(self, request: TurnRequest) -> TurnResult:
        """Process one user message.

        Args:
            request: Agent, user, message text and optional session.

        Returns:
            The reply and everything persisted for it.

        Raises:
            CredentialMissingError: The user has no model credential.
            AgentNotFoundError: The agent is missing or not visible.
            SessionNotFoundError: The explicit session isn't usable.
            ModelInvocationError: The model call failed.
            NoModelResponseError: The model returned no text.
        """
        with turn_context(agent_id=request.agent_id, user_id=request.user_id):
            state = TurnState.RESOLVING
            try:
                log.info("Processing turn", session_id=request.session_id)

                credential = await self.credentials.get_credential(request.user_id)
                if not credential:
                    raise CredentialMissingError(request.user_id)

                agent = await self.agents.get_agent(request.agent_id, request.user_id)
                if agent is None:
                    raise AgentNotFoundError(request.agent_id)
                config = agent.config()

                session = await self.sessions.resolve(
                    request.agent_id, request.user_id, request.session_id
                )
                bind_context(session_id=session.id)
                history = await self.store.get_turns(session.id)

                state = TurnState.RETRIEVING
                memories: list[str] = []
                if self.retriever is not None:
                    memories = await self.retriever.retrieve_for_context(
                        request.agent_id, request.user_id, request.message, credential
                    )

                state = TurnState.ASSEMBLING
                messages = self.assembler.assemble(history, config, request.message, memories)
                completion_request = build_request(messages, config)
                raw_request = completion_request.to_dict()

                user_turn = await self.store.add_turn(
                    session.id, Role.USER, request.message, raw_request=raw_request
                )

                state = TurnState.INVOKING
                request_context = RequestContext(user_id=request.user_id, agent_id=request.agent_id)
                completion = await self.invoker.invoke(credential, completion_request, request_context)

                state = TurnState.EXTRACTING
                extraction = self._extract(completion.text)

                state = TurnState.PERSISTING
                assistant_turn = await self.store.add_turn(
                    session.id,
                    Role.ASSISTANT,
                    extraction.cleaned_response,
                    metadata={"model": config.model, "temperature": config.temperature},
                    raw_response=completion.raw_completion,
                )

                language_assistant = is_language_assistant(agent)
                words: list[WordTranslation] = []
                if language_assistant:
                    words = await self.recorder.record(
                        assistant_turn.id, extraction, credential, request_context
                    )

                state = TurnState.CONSOLIDATING
                created = await self._consolidate(request, session, credential)

                state = TurnState.DONE
                log.info(
                    "Turn completed",
                    user_message_id=user_turn.id,
                    assistant_message_id=assistant_turn.id,
                    memories_used=len(memories),
                    memories_created=created,
                )

                return TurnResult(
                    response=extraction.cleaned_response,
                    session=session,
                    raw_request=raw_request,
                    raw_response=completion.raw_completion,
                    user_message_id=user_turn.id,
                    assistant_message_id=assistant_turn.id,
                    translation=(
                        extraction.full_translation
                        if language_assistant and extraction.extracted
                        else None
                    ),
                    word_translations=words if language_assistant and words else None,
                    memories_created=created,
                    state=state,
                )
            except PersonaChatError as e:
                log.error(
                    "Turn failed",
                    stage=state.value,
                    state=TurnState.FAILED.value,
                    code=e.code.value,
                    error=str(e),
                )
                raise

    def _extract(self, reply: str) -> ExtractedTranslation:
        try:
            return self.extractor.extract(reply)
        except Exception as e:
            log.warning("Translation extraction failed", error=str(e))
            return ExtractedTranslation(cleaned_response=reply)

    async def _consolidate(self, request: TurnRequest, session: Session, credential: str) -> int:
        """Create memories if due and queue compaction if needed."""
        if self.consolidator is None:
            return 0

        try:
            turns = await self.store.get_turns(session.id)
            created = await self.consolidator.maybe_create_memory(
                request.agent_id,
                request.user_id,
                session.id,
                session.display_name,
                turns,
                credential,
            )
            if created and self.summary_queue is not None:
                if await self.consolidator.should_summarize(request.agent_id, request.user_id):
                    self.summary_queue.submit(request.agent_id, request.user_id, credential)
            return created
        except Exception as e:
            log.error("Memory consolidation failed", error=str(e), error_type=type(e).__name__)
            return 0

    async def get_history(
        self,
        agent_id: int,
        user_id: str,
        session_id: int | None = None,
        limit: int = 20,
    ) -> History:
        """Recent turns of a session without creating one.

        Args:
            agent_id: Agent of the conversation.
            user_id: Requesting user.
            session_id: Explicit session; the latest one when omitted.
            limit: Maximum number of turns.

        Raises:
            SessionNotFoundError: If the explicit session isn't usable.
        """
        if session_id is not None:
            session = await self.sessions.resolve(agent_id, user_id, session_id)
        else:
            session = await self.store.get_latest_session(agent_id, user_id)
            if session is None:
                return History(session=None)

        turns, has_more = await self.store.get_recent_turns(session.id, limit)
        return History(session=session, turns=turns, has_more=has_more)
