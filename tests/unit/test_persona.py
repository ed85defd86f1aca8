"""Unit tests for agent personas and behaviour rules."""

import pytest

from persona_chat.chat.persona import (
    AGENT_RULES_HEADER,
    DEFAULT_SYSTEM_PROMPT,
    PROMPT_SEPARATOR,
    WORD_PARSING_INSTRUCTION,
    Agent,
    AgentConfig,
    AgentType,
    ResponseLength,
    agent_behavior_rules,
    build_persona_prompt,
    format_rules,
    generate_config_rules,
    is_language_assistant,
    parse_behavior_rules,
)


class TestAgentConfig:
    def test_defaults(self) -> None:
        config = AgentConfig.merged()

        assert config.system_prompt == DEFAULT_SYSTEM_PROMPT
        assert config.temperature == 0.7
        assert config.model == "gpt-4o-mini"
        assert config.max_tokens is None

    def test_overrides_win_and_none_keeps_default(self) -> None:
        config = AgentConfig.merged({"temperature": 0.2, "model": None})

        assert config.temperature == 0.2
        assert config.model == "gpt-4o-mini"

    def test_unknown_keys_ignored(self) -> None:
        config = AgentConfig.merged({"voice": "alto"})

        assert not hasattr(config, "voice")

    def test_interests_keep_only_strings(self) -> None:
        config = AgentConfig.merged({"interests": ["tea", 3, "", "chess"]})

        assert config.interests == ["tea", "chess"]

    def test_interests_not_a_list(self) -> None:
        assert AgentConfig.merged({"interests": "tea"}).interests == []


class TestAgent:
    def test_visibility(self) -> None:
        public = Agent(id=1, name="A")
        private = Agent(id=2, name="B", owner_id="u1")

        assert public.is_visible_to("anyone")
        assert private.is_visible_to("u1")
        assert not private.is_visible_to("u2")

    def test_config_merges_identity(self, language_agent: Agent) -> None:
        config = language_agent.config()

        assert config.name == "Mei"
        assert config.language == "Chinese"
        assert config.system_prompt == "You are Mei, a Chinese tutor."
        assert config.is_language_assistant

    def test_is_language_assistant(self, general_agent: Agent, language_agent: Agent) -> None:
        assert is_language_assistant(language_agent)
        assert not is_language_assistant(general_agent)


class TestParseBehaviorRules:
    def test_none(self) -> None:
        assert parse_behavior_rules(None) == []

    def test_list(self) -> None:
        assert parse_behavior_rules(["  Be brief ", "", "Smile"]) == ["Be brief", "Smile"]

    def test_json_string(self) -> None:
        assert parse_behavior_rules('["Be brief", "Smile"]') == ["Be brief", "Smile"]

    def test_newline_text(self) -> None:
        assert parse_behavior_rules("Be brief\n\nSmile\n") == ["Be brief", "Smile"]

    def test_broken_json_falls_back_to_lines(self) -> None:
        assert parse_behavior_rules('["Be brief"') == ['["Be brief"']


class TestFormatRules:
    def test_numbered(self) -> None:
        assert format_rules(["a", "b"], AGENT_RULES_HEADER) == "Behavior Rules:\n1. a\n2. b"

    def test_empty(self) -> None:
        assert format_rules(["", "  "], AGENT_RULES_HEADER) == ""


class TestGenerateConfigRules:
    def test_no_attributes(self) -> None:
        assert generate_config_rules(AgentConfig.merged()) == []

    def test_language_rule(self) -> None:
        rules = generate_config_rules(AgentConfig.merged({"language": "Spanish"}))

        assert len(rules) == 1
        assert rules[0].startswith("CRITICAL INSTRUCTION: Always respond in Spanish language.")

    def test_response_length(self) -> None:
        adapt = generate_config_rules(AgentConfig.merged({"response_length": "adapt"}))
        short = generate_config_rules(AgentConfig.merged({"response_length": ResponseLength.SHORT}))

        assert adapt == ["Adapt your response length to the user's message and context"]
        assert short == ["Respond with messages of short length"]

    @pytest.mark.parametrize(
        ("age", "fragment"),
        [
            (8, "Speak like a child"),
            (15, "Speak like a teenager"),
            (25, "Speak like a young adult"),
            (40, "Speak like a mature adult"),
            (60, "Speak like a middle-aged adult"),
            (80, "Speak like an elder"),
        ],
    )
    def test_age_bands(self, age: int, fragment: str) -> None:
        rules = generate_config_rules(AgentConfig.merged({"age": age}))

        assert rules[0].startswith(f"You are {age} years old. {fragment}")

    def test_persona_attributes(self) -> None:
        config = AgentConfig.merged({
            "gender": "female",
            "personality": "cheerful",
            "sentiment": "warm",
            "interests": ["tea", "chess"],
        })

        assert generate_config_rules(config) == [
            "You are female",
            "Your personality is cheerful",
            "You feel warm toward the user",
            "These are your interests: tea, chess",
        ]


class TestAgentBehaviorRules:
    def test_user_rules_first_and_deduplicated(self) -> None:
        config = AgentConfig.merged({
            "behavior_rules": ["Never swear", "your personality is CHEERFUL"],
            "personality": "cheerful",
            "gender": "male",
        })

        assert agent_behavior_rules(config) == [
            "Never swear",
            "your personality is CHEERFUL",
            "You are male",
        ]


class TestBuildPersonaPrompt:
    def test_plain(self) -> None:
        assert build_persona_prompt(AgentConfig.merged()) == DEFAULT_SYSTEM_PROMPT

    def test_with_identity(self, general_agent: Agent) -> None:
        prompt = build_persona_prompt(general_agent.config())

        assert prompt == (
            "You are Sage."
            + PROMPT_SEPARATOR
            + "Agent name: Sage\n\nA thoughtful companion."
        )

    def test_language_assistant_gets_word_parsing(self, language_agent: Agent) -> None:
        prompt = build_persona_prompt(language_agent.config())

        assert prompt.endswith(WORD_PARSING_INSTRUCTION)
        assert language_agent.agent_type == AgentType.LANGUAGE_ASSISTANT
