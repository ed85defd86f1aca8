"""Key-insight extraction from a conversation transcript."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Sequence

from persona_chat.utils.logging import get_logger

if TYPE_CHECKING:
    from persona_chat.chat.completion import CompletionInvoker
    from persona_chat.chat.types import RequestContext, Turn

log = get_logger(__name__)

EXTRACTION_SYSTEM_PROMPT = (
    "You are a memory extraction assistant. "
    "Extract key insights from conversations in a concise format."
)

EXTRACTION_USER_PROMPT = """Extract 1-{max_insights} key insights from this conversation.
Focus on:
- User preferences, interests, or important facts about the user
- Main topics discussed
- Important facts or information shared
- Significant agent responses or statements

Format each insight as a short, concise statement (max {max_length} characters each).
Each insight should be standalone and meaningful.
Return ONLY the insights, one per line, without numbering or bullets.

Conversation:
{conversation}"""

EXTRACTION_TEMPERATURE = 0.3
EXTRACTION_MAX_TOKENS = 200

_NUMBERED = re.compile(r"^\d+[.)]")
_BULLET = re.compile(r"^[-•*]\s*")


def format_transcript(turns: Sequence[Turn], limit: int) -> str:
    """Render the last ``limit`` turns as ``role: content`` paragraphs."""
    recent = list(turns)[-limit:]
    return "\n\n".join(f"{t.role.value}: {t.content}" for t in recent)


def parse_insights(response: str, max_insights: int, max_length: int) -> list[str]:
    """Parse the model's reply into insight strings.

    Lines are trimmed and blanks dropped. Numbered lines are discarded,
    since the model was told not to number them. Leading bullets are
    stripped. Over-length lines are dropped and the result is capped.

    Args:
        response: Raw model reply.
        max_insights: Maximum number of insights kept.
        max_length: Maximum characters per insight.

    Returns:
        Up to ``max_insights`` insight strings.
    """
    insights = []
    for raw in response.split("\n"):
        line = raw.strip()
        if not line or _NUMBERED.match(line):
            continue
        line = _BULLET.sub("", line)
        if line and len(line) <= max_length:
            insights.append(line)
    return insights[:max_insights]


class MemoryExtractor:
    """Asks the model for the key points of a recent transcript.

    Args:
        completion: Invoker used for the extraction call.
        model: Model used for extraction.
        max_insights: Maximum insights per extraction.
        max_length: Maximum characters per insight.
        message_window: Number of most recent turns shown to the model.
    """

    def __init__(
        self,
        completion: CompletionInvoker,
        model: str = "gpt-4o-mini",
        max_insights: int = 3,
        max_length: int = 200,
        message_window: int = 10,
    ) -> None:
        self.completion = completion
        self.model = model
        self.max_insights = max_insights
        self.max_length = max_length
        self.message_window = message_window

    async def extract(
        self,
        turns: Sequence[Turn],
        credential: str,
        context: RequestContext | None = None,
    ) -> list[str]:
        """Extract insights from the transcript.

        Args:
            turns: Session transcript in order.
            credential: Provider API key.
            context: Request log attribution for the extraction call.

        Returns:
            Zero or more insights. Zero is a legitimate outcome.

        Raises:
            ModelInvocationError: If the extraction call fails.
            NoModelResponseError: If the model returns nothing.
        """
        if not turns:
            return []

        prompt = EXTRACTION_USER_PROMPT.format(
            max_insights=self.max_insights,
            max_length=self.max_length,
            conversation=format_transcript(turns, self.message_window),
        )
        response = await self.completion.complete_text(
            credential,
            system=EXTRACTION_SYSTEM_PROMPT,
            user=prompt,
            model=self.model,
            temperature=EXTRACTION_TEMPERATURE,
            max_tokens=EXTRACTION_MAX_TOKENS,
            context=context,
        )

        insights = parse_insights(response, self.max_insights, self.max_length)
        if insights:
            log.info("Insights extracted", count=len(insights), turns=len(turns))
        else:
            log.warning("No insights extracted", turns=len(turns), response=response[:200])
        return insights
