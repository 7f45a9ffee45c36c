# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Agent Registry Service

The "Yellow Pages" of agents on the tailnet. Stores:
- Agent IDs and roles
- Owning user and reachable endpoint
- Current status (online, offline, ...)
- The tailnet node each agent is bound to
"""

import threading
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from aoimesh.exceptions import AgentAlreadyRegisteredError, AgentNotFoundError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentIdentity(BaseModel):
    """Logical identity of an agent participating in the protocol."""

    # Identity
    id: str
    role: str = "engineer"
    owner: str = ""

    # Reachability
    capabilities: list[str] = Field(default_factory=list)
    endpoint: str = ""
    status: str = "online"

    # Network binding
    tailscale_node_id: str = ""

    # Timestamps
    registered_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    # Metadata
    metadata: dict[str, Any] = Field(default_factory=dict)


class AgentRegistry:
    """
    Agent Registry Service.

    Thread-safe registry of every agent known to this node. ``register``
    is atomic: of several concurrent registrations for the same ID exactly
    one succeeds and the rest raise :class:`AgentAlreadyRegisteredError`.
    """

    def __init__(self):
        """Initialize the agent registry."""
        self._agents: dict[str, AgentIdentity] = {}
        self._lock = threading.Lock()

    def register(self, agent: AgentIdentity) -> None:
        """
        Register a new agent.

        Args:
            agent: Agent identity

        Raises:
            AgentAlreadyRegisteredError: If the agent ID is already registered
        """
        with self._lock:
            if agent.id in self._agents:
                raise AgentAlreadyRegisteredError(f"Agent {agent.id} is already registered")

            self._agents[agent.id] = agent

    def get_agent(self, agent_id: str) -> AgentIdentity:
        """
        Get an agent by ID.

        Raises:
            AgentNotFoundError: If the agent is not registered
        """
        with self._lock:
            agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(f"Agent {agent_id} not found")
        return agent

    def get_agent_by_tailscale_node_id(self, node_id: str) -> AgentIdentity:
        """
        Get the agent bound to a tailnet node.

        Raises:
            AgentNotFoundError: If no agent is bound to the node
        """
        with self._lock:
            for agent in self._agents.values():
                if agent.tailscale_node_id == node_id:
                    return agent
        raise AgentNotFoundError(f"No agent bound to Tailscale node {node_id}")

    def update_status(self, agent_id: str, status: str) -> None:
        """
        Update an agent's status.

        Raises:
            AgentNotFoundError: If agent not found
        """
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                raise AgentNotFoundError(f"Agent {agent_id} not found")

            agent.status = status
            agent.updated_at = _utcnow()

    def update_tailscale_node_id(self, agent_id: str, node_id: str) -> None:
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                raise AgentNotFoundError(f"Agent {agent_id} not found")

            agent.tailscale_node_id = node_id
            agent.updated_at = _utcnow()

    def unregister(self, agent_id: str) -> None:
        with self._lock:
            if agent_id not in self._agents:
                raise AgentNotFoundError(f"Agent {agent_id} not found")
            del self._agents[agent_id]

    def discover(self, status: Optional[str] = None) -> list[AgentIdentity]:
        """
        List agents with an optional status filter.

        Args:
            status: Only return agents in this status

        Returns:
            List of matching agents
        """
        with self._lock:
            agents = list(self._agents.values())

        if status:
            agents = [a for a in agents if a.status == status]
        return agents

    def count_agents(self) -> int:
        with self._lock:
            return len(self._agents)
