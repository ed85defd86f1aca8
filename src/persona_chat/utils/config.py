"""Configuration management for persona-chat.

Loads configuration from YAML files and validates against Pydantic models.
Secrets come from the environment through pydantic-settings.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EmbeddingBackend(str, Enum):
    """Supported embedding backends."""

    OPENAI = "openai"
    LOCAL = "local"


class ModelConfig(BaseModel):
    """Language model defaults applied when an agent does not override them."""

    default_model: str = Field(default="gpt-4o-mini", description="Chat completion model")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)
    memory_model: str = Field(
        default="gpt-4o-mini",
        description="Model used for memory extraction and summarization",
    )
    translation_model: str = Field(
        default="gpt-4o-mini",
        description="Model used to split language-assistant replies into words",
    )
    word_parsing_enabled: bool = Field(
        default=True,
        description="Parse words with a second call when a reply carries none",
    )
    credential_cache_ttl_seconds: float = Field(default=300.0, ge=0.0)


class MemoryConfig(BaseModel):
    """Long-term memory configuration."""

    enabled: bool = Field(default=True)
    save_interval: int = Field(default=10, ge=1, description="Turns between memory extractions")
    summarization_threshold: int = Field(default=20, ge=1)
    top_k: int = Field(default=5, ge=1, le=50)
    similarity_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    fallback_window: int = Field(default=100, ge=1)
    group_similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    max_insights: int = Field(default=3, ge=1)
    max_memory_length: int = Field(default=200, ge=1)
    extraction_messages: int = Field(default=10, ge=1)
    summarization_batch: int = Field(default=100, ge=2)
    embedding_backend: EmbeddingBackend = Field(default=EmbeddingBackend.OPENAI)
    embedding_model: str = Field(default="text-embedding-3-small")
    embedding_dimensions: int = Field(default=1536, ge=1)
    local_embedding_model: str = Field(default="all-MiniLM-L6-v2")
    summary_queue_size: int = Field(default=32, ge=1)


class StorageConfig(BaseModel):
    """Persistence locations."""

    sqlite_path: str = Field(default="~/.persona_chat/chat.db")
    chroma_path: str = Field(default="~/.persona_chat/chroma")
    collection_name: str = Field(default="memory_entries")
    native_index_enabled: bool = Field(
        default=True,
        description="Use the Chroma vector index; in-process search otherwise",
    )
    agents_path: str | None = Field(
        default=None,
        description="YAML file with agent personas",
    )


class BehaviorConfig(BaseModel):
    """System-wide behaviour rules added to every prompt."""

    system_rules: list[str] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Logging output configuration."""

    level: str = Field(default="INFO")
    json_format: bool = Field(default=False)
    log_file: str | None = Field(default=None)


class ChatConfig(BaseModel):
    """Main persona-chat configuration."""

    version: str = Field(default="1.0", pattern=r"^\d+\.\d+$")
    model: ModelConfig = Field(default_factory=ModelConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    behavior: BehaviorConfig = Field(default_factory=BehaviorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> ChatConfig:
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file.

        Returns:
            Validated ChatConfig instance.

        Raises:
            FileNotFoundError: If the config file doesn't exist.
            yaml.YAMLError: If the YAML is malformed.
            pydantic.ValidationError: If validation fails.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    def to_yaml(self, path: Path) -> None:
        """Save configuration to a YAML file.

        Args:
            path: Path to write the YAML configuration file.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(
                self.model_dump(mode="json"),
                f,
                default_flow_style=False,
                sort_keys=False,
            )


class EnvSettings(BaseSettings):
    """Environment variable settings.

    API keys and secrets loaded from environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="PERSONA_CHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    openai_api_key: str | None = Field(
        default=None,
        alias="OPENAI_API_KEY",
        description="OpenAI API key used for completions and embeddings",
    )
    debug: bool = Field(
        default=False,
        alias="PERSONA_CHAT_DEBUG",
        description="Enable debug logging",
    )


def load_config(
    config_path: Path | None = None,
    default_paths: list[Path] | None = None,
) -> ChatConfig:
    """Load configuration from file or use defaults.

    Search order:
    1. Explicit config_path if provided
    2. Default paths in order: ./config/default.yaml, ~/.persona_chat/config.yaml
    3. Built-in defaults if no file found

    Args:
        config_path: Explicit path to config file.
        default_paths: List of paths to search for config.

    Returns:
        Validated ChatConfig instance.
    """
    if default_paths is None:
        default_paths = [
            Path("config/default.yaml"),
            Path.home() / ".persona_chat" / "config.yaml",
        ]

    if config_path is not None:
        return ChatConfig.from_yaml(config_path)

    for path in default_paths:
        if path.exists():
            return ChatConfig.from_yaml(path)

    return ChatConfig()


def get_env_settings() -> EnvSettings:
    """Load environment settings.

    Returns:
        EnvSettings instance with values from environment.
    """
    return EnvSettings()
