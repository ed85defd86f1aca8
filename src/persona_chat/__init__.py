"""persona-chat - Persona chat turn orchestration with long-term memory."""

__version__ = "0.1.0"
