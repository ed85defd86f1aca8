"""Shared utilities: configuration and logging."""

from persona_chat.utils.config import ChatConfig, EnvSettings, get_env_settings, load_config
from persona_chat.utils.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    turn_context,
)

__all__ = [
    "ChatConfig",
    "EnvSettings",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_env_settings",
    "get_logger",
    "load_config",
    "turn_context",
]
