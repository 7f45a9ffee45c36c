"""Agent Registry Service."""

from .agent_registry import AgentIdentity, AgentRegistry

__all__ = ["AgentIdentity", "AgentRegistry"]
