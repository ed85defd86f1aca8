"""Agent directories: where personas come from.

Persona CRUD happens elsewhere; the pipeline only reads agents through
``get_agent(agent_id, user_id)``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Protocol, runtime_checkable

import yaml

from persona_chat.chat.persona import Agent
from persona_chat.utils.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class AgentDirectory(Protocol):
    """Looks up agents visible to a user."""

    async def get_agent(self, agent_id: int, user_id: str) -> Agent | None: ...


class InMemoryAgentDirectory:
    """Agents held in a dict, keyed by id."""

    def __init__(self, agents: Iterable[Agent] = ()) -> None:
        self._agents = {agent.id: agent for agent in agents}

    def __len__(self) -> int:
        return len(self._agents)

    def add(self, agent: Agent) -> None:
        self._agents[agent.id] = agent

    async def get_agent(self, agent_id: int, user_id: str) -> Agent | None:
        agent = self._agents.get(agent_id)
        if agent is None or not agent.is_visible_to(user_id):
            return None
        return agent

    async def list_agents(self, user_id: str) -> list[Agent]:
        return [a for a in self._agents.values() if a.is_visible_to(user_id)]


class YamlAgentDirectory(InMemoryAgentDirectory):
    """Agents loaded from a YAML file.

    The file holds a top-level ``agents`` list::

        agents:
          - id: 1
            name: Mei
            agent_type: language_assistant
            language: Chinese
            configs:
              personality: patient
              interests: [tea, calligraphy]

    Args:
        path: Path to the YAML file.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        pydantic.ValidationError: If an agent entry is invalid.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        with open(self.path) as f:
            data = yaml.safe_load(f) or {}

        agents = [Agent.model_validate(item) for item in data.get("agents", [])]
        super().__init__(agents)
        log.info("Agents loaded", path=str(self.path), count=len(agents))
