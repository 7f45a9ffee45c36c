"""
Services Module

Collaborator services for aoimesh:
- registry: Agent registry (Yellow Pages)
- bindings: Node -> agent bindings and tag snapshots
"""

from aoimesh.services.registry import AgentIdentity, AgentRegistry
from aoimesh.services.bindings import NodeAgentBindings, TagSnapshotStore

__all__ = [
    "AgentIdentity",
    "AgentRegistry",
    "NodeAgentBindings",
    "TagSnapshotStore",
]
