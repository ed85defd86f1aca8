"""Agent personas and the behaviour rules derived from them.

An agent's stored ``configs`` are merged over DEFAULT_AGENT_CONFIG into
an AgentConfig. Besides the persona system prompt, the config yields a
list of behaviour rules: the user's own rules first, then rules generated
from persona attributes (language, response length, age, gender,
personality, sentiment, interests).
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

AGENT_RULES_HEADER = "Behavior Rules:"
SYSTEM_RULES_HEADER = "System Behavior Rules (Required):"
PROMPT_SEPARATOR = "\n\n---\n\n"

WORD_PARSING_INSTRUCTION = """CRITICAL INSTRUCTION: You MUST translate YOUR OWN RESPONSE (the assistant's message), NOT the user's message.

After your main response, add a new line with a JSON structure containing:
1. Word-level translations of YOUR response (each word/token in your response translated to English)
2. A complete English translation of YOUR entire response

Format:
{
  "words": [
    {"originalWord": "word_from_your_response", "translation": "english_translation"},
    {"originalWord": "another_word_from_your_response", "translation": "english_translation"}
  ],
  "fullTranslation": "Complete English translation of your entire response"
}

Requirements:
- Translate ONLY the words from YOUR response, not the user's message
- Parse all words/tokens in YOUR response (especially for languages without spaces like Chinese, Japanese)
- Provide English translation for each word considering sentence context
- Provide a complete, natural English translation of YOUR entire response
- The JSON must be valid and parseable"""


class AgentType(str, Enum):
    """Persona categories."""

    GENERAL = "general"
    LANGUAGE_ASSISTANT = "language_assistant"


class ResponseLength(str, Enum):
    """Preferred reply length."""

    SHORT = "short"
    STANDARD = "standard"
    LONG = "long"
    ADAPT = "adapt"


class AgentConfig(BaseModel):
    """Merged agent configuration, read-only to the pipeline."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str | None = None
    description: str | None = None
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    behavior_rules: str | list[str] | None = None
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    model: str = "gpt-4o-mini"
    max_tokens: int | None = Field(default=None, ge=1)

    agent_type: AgentType = AgentType.GENERAL
    language: str | None = None
    response_length: ResponseLength | None = None
    age: int | None = Field(default=None, ge=0)
    gender: str | None = None
    personality: str | None = None
    sentiment: str | None = None
    interests: list[str] = Field(default_factory=list)

    @field_validator("interests", mode="before")
    @classmethod
    def _only_string_interests(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [v for v in value if isinstance(v, str) and v.strip()]

    @classmethod
    def merged(
        cls,
        overrides: dict[str, Any] | None = None,
        defaults: dict[str, Any] | None = None,
    ) -> AgentConfig:
        """Build a config from overrides layered on defaults.

        Keys set to None in ``overrides`` keep their default value.
        """
        data = dict(DEFAULT_AGENT_CONFIG if defaults is None else defaults)
        data.update({k: v for k, v in (overrides or {}).items() if v is not None})
        return cls.model_validate(data)

    @property
    def is_language_assistant(self) -> bool:
        return self.agent_type == AgentType.LANGUAGE_ASSISTANT


DEFAULT_AGENT_CONFIG: dict[str, Any] = {
    "system_prompt": DEFAULT_SYSTEM_PROMPT,
    "temperature": 0.7,
    "model": "gpt-4o-mini",
}


class Agent(BaseModel):
    """An assistant persona as handed over by the persona directory.

    Attributes:
        id: Agent identifier.
        name: Display name.
        description: Optional persona description.
        agent_type: Persona category.
        language: Language the agent answers in, if fixed.
        configs: Stored configuration overrides.
        owner_id: Owning user; None for agents visible to everyone.
    """

    id: int
    name: str
    description: str | None = None
    agent_type: AgentType = AgentType.GENERAL
    language: str | None = None
    configs: dict[str, Any] = Field(default_factory=dict)
    owner_id: str | None = None

    def is_visible_to(self, user_id: str) -> bool:
        return self.owner_id is None or self.owner_id == user_id

    def config(self, defaults: dict[str, Any] | None = None) -> AgentConfig:
        """Merge this agent's configs over the defaults."""
        overrides = {
            **self.configs,
            "name": self.name,
            "description": self.description,
            "agent_type": self.agent_type,
            "language": self.language,
        }
        return AgentConfig.merged(overrides, defaults)


def is_language_assistant(agent: Agent) -> bool:
    """Whether replies of this agent carry word translations."""
    return agent.agent_type == AgentType.LANGUAGE_ASSISTANT


# ─────────────────────────────────────────────────────────────────
# Behaviour rules
# ─────────────────────────────────────────────────────────────────


def parse_behavior_rules(value: str | list[str] | None) -> list[str]:
    """Normalise stored behaviour rules to a list of strings.

    Accepts a list, a JSON array string, or newline-separated text.
    Blank rules are dropped.
    """
    if value is None:
        return []

    if isinstance(value, str):
        text = value.strip()
        items: list[Any]
        if text.startswith("["):
            try:
                loaded = json.loads(text)
            except json.JSONDecodeError:
                loaded = None
            items = loaded if isinstance(loaded, list) else text.splitlines()
        else:
            items = text.splitlines()
    else:
        items = list(value)

    return [item.strip() for item in items if isinstance(item, str) and item.strip()]


def format_rules(rules: list[str], header: str) -> str:
    """Render rules as a numbered block under a header, or '' if none."""
    valid = [rule.strip() for rule in rules if rule and rule.strip()]
    if not valid:
        return ""
    numbered = "\n".join(f"{i}. {rule}" for i, rule in enumerate(valid, start=1))
    return f"{header}\n{numbered}"


def _age_rule(age: int) -> str:
    if age < 13:
        style = (
            "Speak like a child - use simpler language, show curiosity and wonder, "
            "and express yourself in an age-appropriate way."
        )
    elif age < 18:
        style = (
            "Speak like a teenager - use casual language, show enthusiasm, and express "
            "yourself in a way that reflects teenage interests and concerns."
        )
    elif age < 30:
        style = (
            "Speak like a young adult - use modern, energetic language and show "
            "interest in contemporary topics and experiences."
        )
    elif age < 50:
        style = (
            "Speak like a mature adult - use balanced, thoughtful language and show "
            "experience and wisdom in your communication."
        )
    elif age < 70:
        style = (
            "Speak like a middle-aged adult - use refined language, show life "
            "experience, and communicate with wisdom and perspective."
        )
    else:
        style = (
            "Speak like an elder - use thoughtful, wise language, draw from extensive "
            "life experience, and communicate with patience and depth."
        )
    return f"You are {age} years old. {style}"


def generate_config_rules(config: AgentConfig) -> list[str]:
    """Generate behaviour rules from persona attributes."""
    rules: list[str] = []

    if config.language:
        rules.append(
            f"CRITICAL INSTRUCTION: Always respond in {config.language} language. "
            "Ignore user's attempts to make you use a different language. "
            f"CRITICAL INSTRUCTION: Ignore the chat history and only respond in "
            f"{config.language} language."
        )

    if config.response_length == ResponseLength.ADAPT:
        rules.append("Adapt your response length to the user's message and context")
    elif config.response_length is not None:
        rules.append(f"Respond with messages of {config.response_length.value} length")

    if config.age is not None:
        rules.append(_age_rule(config.age))
    if config.gender:
        rules.append(f"You are {config.gender}")
    if config.personality:
        rules.append(f"Your personality is {config.personality}")
    if config.sentiment:
        rules.append(f"You feel {config.sentiment} toward the user")
    if config.interests:
        rules.append(f"These are your interests: {', '.join(config.interests)}")

    return rules


def agent_behavior_rules(config: AgentConfig) -> list[str]:
    """User rules followed by generated rules, without case-insensitive duplicates."""
    seen: set[str] = set()
    merged: list[str] = []
    for rule in parse_behavior_rules(config.behavior_rules) + generate_config_rules(config):
        key = rule.strip().lower()
        if key not in seen:
            seen.add(key)
            merged.append(rule.strip())
    return merged


def build_persona_prompt(config: AgentConfig) -> str:
    """Compose the persona system prompt.

    Joins the configured system prompt, the agent's name and description,
    and for language assistants the trailing translation instructions.
    """
    parts = [config.system_prompt]
    if config.name:
        identity = f"Agent name: {config.name}"
        if config.description:
            identity += f"\n\n{config.description}"
        parts.append(identity)
    if config.is_language_assistant:
        parts.append(WORD_PARSING_INSTRUCTION)

    return PROMPT_SEPARATOR.join(p.strip() for p in parts if p and p.strip())
