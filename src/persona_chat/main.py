"""persona-chat - Main entry point.

Run with: python -m persona_chat
Or: persona-chat (after installation)

Commands:
- chat: Chat with an agent in the Rich-based REPL
- check: Check configuration and provider reachability
- version: Show version info
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from persona_chat.utils.config import ChatConfig, get_env_settings, load_config
from persona_chat.utils.logging import configure_logging, get_logger

app = typer.Typer(
    name="persona-chat",
    help="persona-chat - Persona chat with long-term memory",
)

log = get_logger(__name__)

OPENAI_MODELS_URL = "https://api.openai.com/v1/models"


def _configure_logging(config: ChatConfig, debug: bool) -> None:
    configure_logging(
        level="DEBUG" if debug else config.logging.level,
        json_format=config.logging.json_format,
        log_file=Path(config.logging.log_file).expanduser() if config.logging.log_file else None,
    )


@app.command()
def chat(
    agent_id: int = typer.Option(
        ...,
        "--agent",
        "-a",
        help="Id of the agent to chat with",
    ),
    user_id: str = typer.Option(
        "local",
        "--user",
        "-u",
        help="User id the conversation belongs to",
    ),
    session_id: int | None = typer.Option(
        None,
        "--session",
        "-s",
        help="Continue a specific session instead of the latest one",
    ),
    agents_file: Path | None = typer.Option(
        None,
        "--agents",
        help="YAML file with agent personas (overrides storage.agents_path)",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
) -> None:
    """Chat with an agent in the interactive REPL.

    Requires OPENAI_API_KEY for completions and, with the default
    embedding backend, for long-term memory.
    """
    from persona_chat.cli import ChatREPL
    from persona_chat.runtime import create_runtime

    cfg = load_config(config)
    if agents_file is not None:
        cfg.storage.agents_path = str(agents_file)
    env = get_env_settings()
    _configure_logging(cfg, env.debug)

    log.info("Starting chat", agent_id=agent_id, user_id=user_id, session_id=session_id)

    async def run_chat() -> None:
        runtime = await create_runtime(cfg)
        repl = ChatREPL(runtime, agent_id=agent_id, user_id=user_id, session_id=session_id)
        try:
            await repl.run()
        finally:
            await runtime.close()

    try:
        asyncio.run(run_chat())
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")


@app.command()
def version() -> None:
    """Show version information."""
    from persona_chat import __version__

    print(f"persona-chat v{__version__}")


@app.command()
def check(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
) -> None:
    """Check configuration and provider reachability."""
    import httpx

    print("🔍 Checking persona-chat configuration...\n")

    cfg: ChatConfig | None = None
    try:
        cfg = load_config(config)
        print("✅ Configuration loaded")
        print(f"   Model: {cfg.model.default_model}")
        print(f"   Memory: {'enabled' if cfg.memory.enabled else 'disabled'}")
        print(f"   Embeddings: {cfg.memory.embedding_backend.value}")
    except Exception as e:
        print(f"❌ Configuration error: {e}")

    if cfg is not None and cfg.storage.agents_path:
        from persona_chat.chat.agents import YamlAgentDirectory

        try:
            directory = YamlAgentDirectory(cfg.storage.agents_path)
            print(f"✅ Agents loaded ({len(directory)})")
        except Exception as e:
            print(f"❌ Agents file error: {e}")

    env = get_env_settings()
    if env.openai_api_key:
        print("✅ OpenAI API key configured")
    else:
        print("⚠️ OpenAI API key not set (OPENAI_API_KEY)")

    try:
        headers = {}
        if env.openai_api_key:
            headers["Authorization"] = f"Bearer {env.openai_api_key}"
        response = httpx.get(OPENAI_MODELS_URL, headers=headers, timeout=5.0)
        if response.status_code == 200:
            print("✅ OpenAI API reachable")
        elif response.status_code == 401:
            print("⚠️ OpenAI API reachable but the key was rejected")
        else:
            print(f"⚠️ OpenAI API returned status {response.status_code}")
    except httpx.ConnectError:
        print("❌ OpenAI API not reachable")
    except Exception as e:
        print(f"❌ Error checking OpenAI API: {e}")

    print("\n")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
