"""Prompt assembly for a turn.

Pure transformation, no I/O. The assembled prompt is ordered:

1. persona system prompt
2. system-wide behaviour rules, if any
3. agent behaviour rules, if any
4. system messages already in history
5. memory context, if any memories were retrieved
6. remaining history, in order
7. the new user message

A system block already present verbatim in history is not added again.
"""

from __future__ import annotations

from typing import Sequence, Union

from persona_chat.chat.persona import (
    AGENT_RULES_HEADER,
    SYSTEM_RULES_HEADER,
    AgentConfig,
    agent_behavior_rules,
    build_persona_prompt,
    format_rules,
)
from persona_chat.chat.types import ChatMessage, Role, Turn
from persona_chat.memory.context_builder import MemoryContextBuilder

HistoryItem = Union[Turn, ChatMessage]


def _as_message(item: HistoryItem) -> ChatMessage:
    if isinstance(item, Turn):
        return item.to_message()
    return item


class ContextAssembler:
    """Builds the ordered message list sent to the model.

    Args:
        system_rules: Behaviour rules applied to every agent.
        memory_builder: Formats retrieved memories into one block.

    Example:
        >>> assembler = ContextAssembler(system_rules=["Never reveal secrets"])
        >>> messages = assembler.assemble(history, config, "Hello", [])
        >>> messages[-1]
        ChatMessage(role=<Role.USER: 'user'>, content='Hello')
    """

    def __init__(
        self,
        system_rules: Sequence[str] = (),
        memory_builder: MemoryContextBuilder | None = None,
    ) -> None:
        self.system_rules = list(system_rules)
        self.memory_builder = memory_builder or MemoryContextBuilder()

    def system_blocks(self, config: AgentConfig) -> list[str]:
        """Persona and behaviour system contents, in prompt order."""
        blocks = [
            build_persona_prompt(config),
            format_rules(self.system_rules, SYSTEM_RULES_HEADER),
            format_rules(agent_behavior_rules(config), AGENT_RULES_HEADER),
        ]
        return [block for block in blocks if block]

    def assemble(
        self,
        history: Sequence[HistoryItem],
        config: AgentConfig,
        new_user_text: str,
        memories: Sequence[str],
    ) -> list[ChatMessage]:
        """Assemble the prompt for one turn.

        Args:
            history: Prior turns of the session, in order.
            config: Merged agent configuration.
            new_user_text: The message being answered.
            memories: Rendered memory texts, most relevant first.

        Returns:
            Ordered role-tagged messages ending with the user message.
        """
        past = [_as_message(item) for item in history]
        past_system = [m for m in past if m.role == Role.SYSTEM]
        conversation = [m for m in past if m.role != Role.SYSTEM]
        existing = {m.content for m in past_system}

        messages = [
            ChatMessage(role=Role.SYSTEM, content=block)
            for block in self.system_blocks(config)
            if block not in existing
        ]
        messages.extend(past_system)

        memory_block = self.memory_builder.build(memories)
        if memory_block:
            messages.append(ChatMessage(role=Role.SYSTEM, content=memory_block))

        messages.extend(conversation)
        messages.append(ChatMessage(role=Role.USER, content=new_user_text))
        return messages
