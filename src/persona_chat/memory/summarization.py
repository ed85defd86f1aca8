"""Grouping and summarization of similar memory entries."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from persona_chat.memory.similarity import cosine_similarity
from persona_chat.memory.types import MemoryEntry
from persona_chat.utils.logging import get_logger

if TYPE_CHECKING:
    from persona_chat.chat.completion import CompletionInvoker
    from persona_chat.chat.types import RequestContext

log = get_logger(__name__)

SUMMARIZATION_SYSTEM_PROMPT = (
    "You are a memory summarization assistant. "
    "Combine related memories into concise summaries."
)

SUMMARIZATION_USER_PROMPT = """Summarize these related memories into a single, concise memory (max {max_length} characters).
Remove redundancy and combine related information.
Return ONLY the summarized memory, no additional text.

Memories:
{memories}"""

SUMMARIZATION_TEMPERATURE = 0.3
SUMMARIZATION_MAX_TOKENS = 150


def group_similar_memories(
    entries: Sequence[MemoryEntry],
    threshold: float = 0.85,
) -> list[list[MemoryEntry]]:
    """Greedily group entries whose vectors are close to a seed entry.

    Each not-yet-grouped entry, in input order, seeds a group and pulls
    in every later ungrouped entry with similarity >= threshold to the
    seed. Every entry lands in exactly one group.

    Args:
        entries: Entries to group.
        threshold: Minimum cosine similarity to join a seed's group.

    Returns:
        Groups in seed order; singletons included.
    """
    groups: list[list[MemoryEntry]] = []
    grouped: set[int] = set()

    for i, seed in enumerate(entries):
        if seed.id in grouped:
            continue
        group = [seed]
        grouped.add(seed.id)

        for candidate in entries[i + 1:]:
            if candidate.id in grouped:
                continue
            if cosine_similarity(seed.vector, candidate.vector) >= threshold:
                group.append(candidate)
                grouped.add(candidate.id)

        groups.append(group)

    return groups


class MemorySummarizer:
    """Condenses a group of related memories into one.

    Args:
        completion: Invoker used for the summarization call.
        model: Model used for summarization.
        max_length: Maximum characters of the summary.
    """

    def __init__(
        self,
        completion: CompletionInvoker,
        model: str = "gpt-4o-mini",
        max_length: int = 200,
    ) -> None:
        self.completion = completion
        self.model = model
        self.max_length = max_length

    async def summarize_group(
        self,
        group: Sequence[MemoryEntry],
        credential: str,
        context: RequestContext | None = None,
    ) -> str:
        """Summarize a group of memories.

        A single-entry group is returned unchanged without a model call.

        Returns:
            Summary text truncated to ``max_length``; empty for an empty group.

        Raises:
            ModelInvocationError: If the summarization call fails.
            NoModelResponseError: If the model returns nothing.
        """
        if not group:
            return ""
        if len(group) == 1:
            return group[0].key_point

        memories = "\n".join(f"{i}. {entry.key_point}" for i, entry in enumerate(group, start=1))
        response = await self.completion.complete_text(
            credential,
            system=SUMMARIZATION_SYSTEM_PROMPT,
            user=SUMMARIZATION_USER_PROMPT.format(max_length=self.max_length, memories=memories),
            model=self.model,
            temperature=SUMMARIZATION_TEMPERATURE,
            max_tokens=SUMMARIZATION_MAX_TOKENS,
            context=context,
        )
        summary = response.strip()[: self.max_length]
        log.debug("Memory group summarized", size=len(group), summary=summary[:50])
        return summary
