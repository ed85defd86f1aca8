"""Word-translation extraction and persistence for language assistants.

Language assistants are instructed to end each reply with a JSON block:

    Hello

    {"words": [{"originalWord": "你好", "translation": "hello"}],
     "fullTranslation": "Hello"}

The extractor splits that block from the visible reply. Failure to find
or parse it is never an error: the reply is kept as-is. Replies without
words can be split into words by a second, model-assisted parse.
"""

from __future__ import annotations

import json
import re
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from persona_chat.chat.types import (
    ExtractedTranslation,
    RequestContext,
    RequestKind,
    WordTranslation,
)
from persona_chat.utils.logging import get_logger

if TYPE_CHECKING:
    from persona_chat.chat.completion import CompletionInvoker
    from persona_chat.storage.sqlite_store import SQLiteChatStore

log = get_logger(__name__)

TRAILING_BLOCK = re.compile(r'\n\s*\{[\s\S]*"words"[\s\S]*\}\s*$')


def _valid_word(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    original = item.get("originalWord")
    translation = item.get("translation")
    return (
        isinstance(original, str)
        and isinstance(translation, str)
        and bool(original)
        and bool(translation)
    )


class TranslationExtractor:
    """Separates a trailing translation block from a reply."""

    def extract(self, raw_reply: str) -> ExtractedTranslation:
        """Extract word translations from the end of a reply.

        Args:
            raw_reply: Reply text exactly as returned by the model.

        Returns:
            ExtractedTranslation. When no well-formed block is found,
            ``extracted`` is False and ``cleaned_response`` is the input.
        """
        unchanged = ExtractedTranslation(cleaned_response=raw_reply)

        match = TRAILING_BLOCK.search(raw_reply)
        if match is None:
            log.debug("No translation block")
            return unchanged

        try:
            parsed = json.loads(match.group(0).strip())
        except json.JSONDecodeError as e:
            log.warning("Translation block unparseable", error=str(e))
            return unchanged

        if not isinstance(parsed, dict):
            return unchanged

        words = parsed.get("words")
        full_translation = parsed.get("fullTranslation")
        if not isinstance(words, list) or not isinstance(full_translation, str) or not full_translation:
            log.warning("Translation block incomplete")
            return unchanged

        extracted_words = [
            WordTranslation(original_word=w["originalWord"], translation=w["translation"])
            for w in words
            if _valid_word(w)
        ]
        cleaned = raw_reply[: match.start()].strip()

        log.debug("Translation extracted", words=len(extracted_words), dropped=len(words) - len(extracted_words))
        return ExtractedTranslation(
            cleaned_response=cleaned,
            extracted=True,
            words=extracted_words,
            full_translation=full_translation,
        )


WORD_PARSING_SYSTEM_PROMPT = "You are a word parsing assistant. Return only valid JSON objects."

WORD_PARSING_USER_PROMPT = """Analyze the following text and identify all words/tokens, especially for languages without spaces (like Chinese, Japanese, etc.).

Text:
{text}

For each word or token, provide:
1. The original word/token as it appears in the text

Return a JSON object with:
- "words": array where each element has:
  - "originalWord": string (the word/token as it appears in the text)

Example format:
{{
  "words": [
    {{"originalWord": "你好"}},
    {{"originalWord": "世界"}}
  ]
}}

Return ONLY the JSON object, no additional text."""

WORD_PARSING_TEMPERATURE = 0.3

_SENTENCE = re.compile(r"[^.!?。！？]+[.!?。！？]*|[.!?。！？]+")


def split_sentences(text: str) -> list[str]:
    """Split text after sentence-ending punctuation, Latin or CJK."""
    return [s.strip() for s in _SENTENCE.findall(text) if s.strip()]


def sentence_containing(word: str, sentences: list[str], default: str) -> str:
    return next((s for s in sentences if word in s), default)


class WordParser:
    """Asks the model to split a reply into words when it sent no block.

    Parsing is optional: any failure yields no words.

    Args:
        completion: Invoker used for the parsing call.
        model: Model used for parsing.
    """

    def __init__(self, completion: CompletionInvoker, model: str = "gpt-4o-mini") -> None:
        self.completion = completion
        self.model = model

    async def parse(
        self,
        text: str,
        credential: str,
        context: RequestContext | None = None,
    ) -> list[str]:
        """Return the words of ``text`` in order, or [] on any failure."""
        if not text.strip():
            return []

        context = replace(context or RequestContext(), kind=RequestKind.WORD_PARSING)
        try:
            response = await self.completion.complete_text(
                credential,
                system=WORD_PARSING_SYSTEM_PROMPT,
                user=WORD_PARSING_USER_PROMPT.format(text=text),
                model=self.model,
                temperature=WORD_PARSING_TEMPERATURE,
                response_format={"type": "json_object"},
                context=context,
            )
            parsed = json.loads(response.strip())
        except Exception as e:
            log.warning("Word parsing failed", error=str(e), error_type=type(e).__name__)
            return []

        items = parsed.get("words") if isinstance(parsed, dict) else None
        if not isinstance(items, list):
            log.warning("Word parsing returned no word list")
            return []

        words = [
            item["originalWord"]
            for item in items
            if isinstance(item, dict)
            and isinstance(item.get("originalWord"), str)
            and item["originalWord"].strip()
        ]
        log.debug("Words parsed", words=len(words))
        return words


class TranslationRecorder:
    """Persists extracted translations against an assistant message.

    When the reply carried no words and a parser is configured, the reply
    is split into words by the model and those are stored with empty
    translations, so the words can still be highlighted.

    Args:
        store: Store holding message and word translations.
        parser: Optional model-assisted word parser.
    """

    def __init__(self, store: SQLiteChatStore, parser: WordParser | None = None) -> None:
        self.store = store
        self.parser = parser

    async def record(
        self,
        message_id: int,
        extraction: ExtractedTranslation,
        credential: str | None = None,
        context: RequestContext | None = None,
    ) -> list[WordTranslation]:
        """Store translations for a message, best effort.

        Words from the block are stored with the cleaned reply as their
        sentence context; parsed words with the sentence they appear in.
        A failed write is logged and the words are returned anyway.

        Args:
            message_id: The assistant turn the translations belong to.
            extraction: Outcome of scanning the reply.
            credential: Provider API key; parsing is skipped without one.
            context: Request log attribution for the parsing call.

        Returns:
            The words of the reply, or [] if there were none.
        """
        words: list[WordTranslation] = []
        if extraction.extracted:
            words = [
                WordTranslation(
                    original_word=w.original_word,
                    translation=w.translation,
                    sentence_context=extraction.cleaned_response,
                )
                for w in extraction.words
            ]
            await self._save(message_id, extraction.full_translation, words)

        if words or self.parser is None or credential is None:
            return words

        text = extraction.cleaned_response
        parsed = await self.parser.parse(text, credential, context)
        if not parsed:
            return []

        sentences = split_sentences(text)
        words = [
            WordTranslation(
                original_word=word,
                translation="",
                sentence_context=sentence_containing(word, sentences, text),
            )
            for word in parsed
        ]
        await self._save(message_id, None, words)
        return words

    async def _save(
        self,
        message_id: int,
        full_translation: str | None,
        words: list[WordTranslation],
    ) -> None:
        try:
            await self.store.save_translations(message_id, full_translation, words)
        except Exception as e:
            log.error(
                "Translation save failed",
                message_id=message_id,
                error=str(e),
                error_type=type(e).__name__,
            )
