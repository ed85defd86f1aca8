"""CLI module for persona-chat.

Provides an interactive command-line chat with one agent, using Rich
for formatting and prompt_toolkit for input handling.
"""

from persona_chat.cli.repl import ChatREPL

__all__ = ["ChatREPL"]
