"""Interactive REPL for persona chat conversations.

Provides a command-line interface for chatting with one agent as one
user, with Rich formatting and prompt_toolkit for input handling.
"""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Any

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import FileHistory
from prompt_toolkit.styles import Style
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.spinner import Spinner
from rich.table import Table
from rich.text import Text

from persona_chat.chat.types import Role, TurnRequest, TurnResult
from persona_chat.errors import PersonaChatError
from persona_chat.utils.logging import get_logger

if TYPE_CHECKING:
    from persona_chat.runtime import ChatRuntime

log = get_logger(__name__)


class ChatREPL:
    """Interactive REPL for one agent and one user.

    Provides a command-line interface with:
    - Rich markdown rendering for replies
    - Word translations under replies of language assistants
    - Command history with prompt_toolkit
    - Built-in slash commands for sessions and memories

    Example:
        ```python
        runtime = await create_runtime(load_config())
        repl = ChatREPL(runtime, agent_id=1, user_id="local")
        await repl.run()
        ```

    Attributes:
        console: Rich Console for output formatting.
        session_id: Session the next message goes to; None lets the
            pipeline pick the latest one.
    """

    COMMANDS = {
        "/help": "Show available commands",
        "/session": "Show the current session",
        "/sessions": "List sessions with this agent",
        "/switch": "Switch to a session by id",
        "/new": "Start a new session (optional name)",
        "/rename": "Rename the current session",
        "/history": "Show recent messages of the current session",
        "/memories": "Show recent long-term memories",
        "/usage": "Show recent model calls and their estimated cost",
        "/quit": "Exit the REPL",
    }

    PROMPT_STYLE = Style.from_dict({
        "prompt": "ansigreen bold",
        "input": "ansiwhite",
    })

    def __init__(
        self,
        runtime: ChatRuntime,
        agent_id: int,
        user_id: str,
        session_id: int | None = None,
        history_file: str = "~/.persona_chat/repl_history",
        console: Console | None = None,
    ) -> None:
        self.runtime = runtime
        self.agent_id = agent_id
        self.user_id = user_id
        self.session_id = session_id
        self.console = console or Console()

        history_path = Path(history_file).expanduser()
        history_path.parent.mkdir(parents=True, exist_ok=True)

        self._session = PromptSession(
            history=FileHistory(str(history_path)),
            auto_suggest=AutoSuggestFromHistory(),
            completer=WordCompleter(list(self.COMMANDS.keys()), ignore_case=True),
            style=self.PROMPT_STYLE,
        )
        self._running = False

    @property
    def orchestrator(self):
        return self.runtime.orchestrator

    async def run(self) -> None:
        """Run the interactive loop until /quit or EOF."""
        self._running = True
        self._setup_signal_handlers()
        self._display_welcome()

        while self._running:
            try:
                user_input = await self._get_input()
                if user_input is None:
                    break

                user_input = user_input.strip()
                if not user_input:
                    continue

                if user_input.startswith("/"):
                    await self.handle_command(user_input)
                    continue

                await self.handle_message(user_input)

            except KeyboardInterrupt:
                self.console.print("\n[dim]Use /quit to exit[/dim]")
                continue

            except EOFError:
                break

            except Exception as e:
                log.exception("Error in REPL loop")
                self.console.print(f"[red]Error: {e}[/red]")

        self._display_goodbye()

    def _setup_signal_handlers(self) -> None:
        def handle_sigint(signum: int, frame: Any) -> None:
            raise KeyboardInterrupt

        signal.signal(signal.SIGINT, handle_sigint)

    async def _get_input(self) -> str | None:
        """Get input from user with styled prompt."""
        try:
            prompt_text = [
                ("class:prompt", "you"),
                ("", " > "),
            ]

            # prompt_toolkit blocks, so keep it off the event loop
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(
                None,
                lambda: self._session.prompt(prompt_text),
            )

        except EOFError:
            return None

    async def handle_command(self, command: str) -> None:
        """Handle a slash command.

        Args:
            command: The command string (including slash).
        """
        parts = command.split(maxsplit=1)
        cmd = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""

        try:
            if cmd == "/help":
                self._display_help()
            elif cmd == "/session":
                await self._display_session()
            elif cmd == "/sessions":
                await self._display_sessions()
            elif cmd == "/switch":
                await self._switch_session(arg)
            elif cmd == "/new":
                await self._new_session(arg or None)
            elif cmd == "/rename":
                await self._rename_session(arg or None)
            elif cmd == "/history":
                await self._display_history()
            elif cmd == "/memories":
                await self._display_memories()
            elif cmd == "/usage":
                await self._display_usage()
            elif cmd == "/quit":
                self._running = False
            else:
                self.console.print(
                    f"[yellow]Unknown command: {cmd}[/yellow]\n"
                    f"[dim]Type /help for available commands[/dim]"
                )
        except PersonaChatError as e:
            self.console.print(f"[red]{e.to_response().user_message}[/red]")

    async def handle_message(self, text: str) -> TurnResult | None:
        """Send a message through the pipeline and render the reply.

        Returns:
            The turn result, or None if the turn failed.
        """
        request = TurnRequest(
            agent_id=self.agent_id,
            user_id=self.user_id,
            message=text,
            session_id=self.session_id,
        )

        with Live(
            Spinner("dots", text="Thinking...", style="cyan"),
            console=self.console,
            transient=True,
        ):
            try:
                result = await self.orchestrator.send_message(request)
            except PersonaChatError as e:
                response = e.to_response()
                style = "yellow" if response.retryable else "red"
                self.console.print(f"[{style}]{response.user_message}[/{style}]")
                return None

        # Later messages stay in the session the pipeline picked
        self.session_id = result.session.id
        self._display_result(result)
        return result

    def _display_welcome(self) -> None:
        welcome = Panel(
            Text.from_markup(
                "[bold cyan]Persona Chat[/bold cyan]\n\n"
                f"Chatting with agent [bold]{self.agent_id}[/bold] as "
                f"[bold]{self.user_id}[/bold].\n"
                "Use [bold]/help[/bold] for commands, [bold]/quit[/bold] to exit.\n"
                "[dim]Press Ctrl+D or type /quit to exit[/dim]"
            ),
            title="Welcome",
            border_style="cyan",
            padding=(1, 2),
        )
        self.console.print()
        self.console.print(welcome)
        self.console.print()

    def _display_goodbye(self) -> None:
        self.console.print()
        self.console.print("[cyan]Goodbye![/cyan]")
        self.console.print()

    def _display_help(self) -> None:
        table = Table(title="Available Commands", show_header=True)
        table.add_column("Command", style="cyan")
        table.add_column("Description", style="white")

        for cmd, desc in self.COMMANDS.items():
            table.add_row(cmd, desc)

        self.console.print(table)

    async def _display_session(self) -> None:
        if self.session_id is None:
            session = await self.runtime.store.get_latest_session(self.agent_id, self.user_id)
        else:
            session = await self.orchestrator.sessions.resolve(
                self.agent_id, self.user_id, self.session_id
            )

        if session is None:
            self.console.print("[dim]No session yet; one starts with your first message[/dim]")
            return

        name = session.display_name or "[dim]unnamed[/dim]"
        self.console.print(
            f"Session [bold]{session.id}[/bold] {name} "
            f"[dim](started {session.created_at:%Y-%m-%d %H:%M})[/dim]"
        )

    async def _display_sessions(self) -> None:
        sessions = await self.orchestrator.sessions.list_sessions(self.agent_id, self.user_id)
        if not sessions:
            self.console.print("[dim]No sessions[/dim]")
            return

        table = Table(title="Sessions", show_header=True)
        table.add_column("Id", style="cyan", width=6)
        table.add_column("Name", style="white")
        table.add_column("Started", style="dim")

        for session in sessions:
            marker = " *" if session.id == self.session_id else ""
            table.add_row(
                f"{session.id}{marker}",
                session.display_name or "",
                f"{session.created_at:%Y-%m-%d %H:%M}",
            )

        self.console.print(table)

    async def _switch_session(self, arg: str) -> None:
        if not arg.isdigit():
            self.console.print("[yellow]Usage: /switch <session id>[/yellow]")
            return

        session = await self.orchestrator.sessions.resolve(self.agent_id, self.user_id, int(arg))
        self.session_id = session.id
        self.console.print(f"[green]Switched to session {session.id}[/green]")

    async def _new_session(self, name: str | None) -> None:
        session = await self.orchestrator.sessions.create_session(
            self.agent_id, self.user_id, name
        )
        self.session_id = session.id
        self.console.print(f"[green]Started session {session.id}[/green]")

    async def _rename_session(self, name: str | None) -> None:
        if self.session_id is None:
            self.console.print("[yellow]No current session to rename[/yellow]")
            return

        session = await self.orchestrator.sessions.rename_session(
            self.session_id, self.user_id, name
        )
        self.console.print(f"[green]Session {session.id} renamed[/green]")

    async def _display_history(self) -> None:
        history = await self.orchestrator.get_history(
            self.agent_id, self.user_id, self.session_id, limit=10
        )
        if not history.turns:
            self.console.print("[dim]No conversation history[/dim]")
            return

        title = "Recent History" + (" (older messages hidden)" if history.has_more else "")
        table = Table(title=title, show_header=True)
        table.add_column("Role", style="cyan", width=10)
        table.add_column("Message", style="white")

        for turn in history.turns:
            content = turn.content
            if len(content) > 100:
                content = content[:97] + "..."

            role = turn.role.value.capitalize()
            if turn.role == Role.USER:
                table.add_row(f"[green]{role}[/green]", content)
            else:
                table.add_row(f"[cyan]{role}[/cyan]", content)

        self.console.print(table)

    async def _display_memories(self) -> None:
        entries = await self.runtime.memory.recent(self.agent_id, self.user_id, limit=10)
        if not entries:
            self.console.print("[dim]No memories yet[/dim]")
            return

        table = Table(title="Memories", show_header=True)
        table.add_column("Date", style="dim", width=12)
        table.add_column("Memory", style="white")

        for entry in entries:
            table.add_row(f"{entry.created_at:%b %d, %Y}", entry.key_point)

        self.console.print(table)

    async def _display_usage(self) -> None:
        entries = await self.runtime.store.list_request_logs(user_id=self.user_id, limit=10)
        if not entries:
            self.console.print("[dim]No model calls yet[/dim]")
            return

        table = Table(title="Model calls", show_header=True)
        table.add_column("Time", style="dim", width=16)
        table.add_column("Kind", style="cyan")
        table.add_column("Model")
        table.add_column("Tokens", justify="right")
        table.add_column("Cost", justify="right", style="green")

        for entry in entries:
            table.add_row(
                f"{entry.created_at:%b %d %H:%M}",
                entry.kind.value,
                entry.model,
                str(entry.total_tokens),
                f"${entry.estimated_price:.6f}",
            )

        total = sum(e.estimated_price for e in entries)
        self.console.print(table)
        self.console.print(f"[dim]Estimated cost of these calls: ${total:.6f}[/dim]")

    def _display_result(self, result: TurnResult) -> None:
        panel = Panel(
            Markdown(result.response),
            title="[cyan]Assistant[/cyan]",
            border_style="cyan",
            padding=(0, 1),
        )
        self.console.print(panel)

        if result.translation:
            self.console.print(f"[dim]{result.translation}[/dim]")

        if result.word_translations:
            table = Table(show_header=True, box=None, padding=(0, 2))
            table.add_column("Word", style="cyan")
            table.add_column("Translation", style="white")
            for word in result.word_translations:
                table.add_row(word.original_word, word.translation)
            self.console.print(table)

        self.console.print()
