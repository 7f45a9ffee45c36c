# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Node Binding Stores

Process-lifetime, thread-safe maps keyed by tailnet node ID:

- ``NodeAgentBindings``: node ID -> logical agent ID
- ``TagSnapshotStore``: node ID -> last observed tag set (drift detection)

Both are constructed by the caller and injected into the authenticator and
the tag ACL engine so several instances can share (or isolate) state.
"""

import threading
from typing import Iterable, Optional


class NodeAgentBindings:
    """Maps tailnet node IDs to the agent IDs provisioned for them."""

    def __init__(self) -> None:
        self._bindings: dict[str, str] = {}
        self._lock = threading.Lock()

    def bind(self, node_id: str, agent_id: str) -> None:
        with self._lock:
            self._bindings[node_id] = agent_id

    def bind_if_absent(self, node_id: str, agent_id: str) -> str:
        """Bind unless a binding exists; returns the binding in effect."""
        with self._lock:
            return self._bindings.setdefault(node_id, agent_id)

    def get(self, node_id: str) -> Optional[str]:
        with self._lock:
            return self._bindings.get(node_id)

    def remove(self, node_id: str) -> bool:
        with self._lock:
            return self._bindings.pop(node_id, None) is not None

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._bindings)

    def __contains__(self, node_id: object) -> bool:
        with self._lock:
            return node_id in self._bindings

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)


class TagSnapshotStore:
    """Remembers the tag set last seen for each node."""

    def __init__(self) -> None:
        self._tags: dict[str, frozenset[str]] = {}
        self._lock = threading.Lock()

    def update_if_changed(self, node_id: str, tags: Iterable[str]) -> bool:
        """Record *tags* for *node_id*; True if they differ from the snapshot.

        A node seen for the first time always counts as changed.
        """
        current = frozenset(tags)
        with self._lock:
            previous = self._tags.get(node_id)
            if previous is not None and previous == current:
                return False
            self._tags[node_id] = current
            return True

    def get(self, node_id: str) -> Optional[frozenset[str]]:
        with self._lock:
            return self._tags.get(node_id)

    def forget(self, node_id: str) -> None:
        with self._lock:
            self._tags.pop(node_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tags)
