# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""In-memory identity client for deterministic tests and offline development."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Optional

from aoimesh.constants import (
    BACKEND_STATE_RUNNING,
    BACKEND_STATE_STOPPED,
    STATUS_CACHE_TTL_SECONDS,
)
from aoimesh.identity.client import NetworkIdentityClient
from aoimesh.identity.node import NodeInfo, Status

if TYPE_CHECKING:
    from aoimesh.observability.metrics import MetricsCollector


class FakeClient(NetworkIdentityClient):
    """Identity client backed by a mutable in-memory tailnet.

    Shares the status cache and every lookup rule with :class:`LocalClient`.
    Each mutator drops the cached snapshot so the change is visible on the
    next call.
    """

    def __init__(
        self,
        cache_ttl: float = STATUS_CACHE_TTL_SECONDS,
        metrics: Optional["MetricsCollector"] = None,
    ) -> None:
        super().__init__(cache_ttl=cache_ttl, metrics=metrics)
        self._state_lock = threading.Lock()
        self._self_node: Optional[NodeInfo] = None
        self._peers: dict[str, NodeInfo] = {}
        self._connected = True
        self._error: Optional[Exception] = None
        self.fetch_count = 0

    def set_self(self, node: Optional[NodeInfo]) -> None:
        with self._state_lock:
            self._self_node = node
        self.invalidate_cache()

    def add_peer(self, node: NodeInfo) -> None:
        with self._state_lock:
            self._peers[node.id] = node
        self.invalidate_cache()

    def remove_peer(self, node_id: str) -> None:
        with self._state_lock:
            self._peers.pop(node_id, None)
        self.invalidate_cache()

    def set_connected(self, connected: bool) -> None:
        with self._state_lock:
            self._connected = connected
        self.invalidate_cache()

    def set_error(self, error: Optional[Exception]) -> None:
        """Make every fetch raise *error* (``None`` clears it)."""
        with self._state_lock:
            self._error = error
        self.invalidate_cache()

    def _fetch_status(self) -> Status:
        with self._state_lock:
            self.fetch_count += 1
            if self._error is not None:
                raise self._error

            self_node = self._self_node
            return Status(
                backend_state=BACKEND_STATE_RUNNING if self._connected else BACKEND_STATE_STOPPED,
                self_node=self_node,
                peer=dict(self._peers),
                tailscale_ips=list(self_node.ips) if self_node else [],
            )
