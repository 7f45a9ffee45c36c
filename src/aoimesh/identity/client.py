# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Network Identity Client

Talks to the local control-plane daemon of the mesh network to answer
"who is this peer?" questions:

- current connectivity status (TTL cached)
- self / peer lookup by node ID or IP
- per-node tag retrieval
- mesh address classification

``NetworkIdentityClient`` owns the status cache and every derived lookup.
Concrete clients only provide ``_fetch_status``: ``LocalClient`` issues an
HTTP GET over the daemon's Unix socket, ``FakeClient``
(see :mod:`aoimesh.identity.fake`) serves an in-memory snapshot.
"""

from __future__ import annotations

import ipaddress
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

import httpx

from aoimesh.constants import (
    BACKEND_STATE_RUNNING,
    DEFAULT_SOCKET_PATHS,
    LOCALAPI_BASE_URL,
    LOCALAPI_STATUS_PATH,
    LOCALAPI_TIMEOUT_SECONDS,
    STATUS_CACHE_TTL_SECONDS,
    TAILSCALE_IPV4_RANGE,
    TAILSCALE_IPV6_RANGE,
)
from aoimesh.exceptions import (
    AoiMeshError,
    ConnectionFailedError,
    IdentityProviderError,
    InvalidNodeIDError,
    NodeNotFoundError,
    NotConnectedError,
)
from aoimesh.identity.node import NodeInfo, Status

if TYPE_CHECKING:
    from aoimesh.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)

_TAILSCALE_NETWORKS = (
    ipaddress.ip_network(TAILSCALE_IPV4_RANGE),
    ipaddress.ip_network(TAILSCALE_IPV6_RANGE),
)


def _address_key(ip: str):
    """Canonical form of *ip* for comparison; raw text if it does not parse."""
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return ip
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return addr.ipv4_mapped
    return addr


def is_tailscale_ip(ip: str) -> bool:
    """Return True if *ip* lies in the tailnet address space.

    IPv4 addresses in the CGNAT range ``100.64.0.0/10`` and IPv6 addresses
    in ``fd7a:115c:a1e0::/48`` qualify. Unparseable input never does.
    """
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False

    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped

    return any(addr in network for network in _TAILSCALE_NETWORKS)


def default_socket_path() -> str:
    """Return the first daemon socket that exists, else the canonical path."""
    for path in DEFAULT_SOCKET_PATHS:
        if os.path.exists(path):
            return path
    return DEFAULT_SOCKET_PATHS[0]


class NetworkIdentityClient(ABC):
    """Abstract client for the mesh identity daemon.

    Parameters
    ----------
    cache_ttl : float
        Seconds a fetched :class:`Status` stays valid. ``0`` disables caching.
    metrics : MetricsCollector, optional
        Records status fetch outcomes.
    """

    def __init__(
        self,
        cache_ttl: float = STATUS_CACHE_TTL_SECONDS,
        metrics: Optional["MetricsCollector"] = None,
    ) -> None:
        self.cache_ttl = cache_ttl
        self._metrics = metrics
        self._status_cache: Optional[Status] = None
        self._cache_time = 0.0
        self._cache_lock = threading.Lock()

    @abstractmethod
    def _fetch_status(self) -> Status:
        """Fetch a fresh status snapshot from the backing source."""

    # -- status cache ---------------------------------------------------------

    def get_status(self) -> Status:
        """Return the daemon status, fetching only when the cache is stale.

        A failed fetch leaves the previous snapshot in place and raises.
        """
        with self._cache_lock:
            cached = self._status_cache
            if cached is not None and time.monotonic() - self._cache_time < self.cache_ttl:
                return cached

        try:
            status = self._fetch_status()
        except AoiMeshError:
            if self._metrics:
                self._metrics.record_status_fetch(success=False)
            raise

        if self._metrics:
            self._metrics.record_status_fetch(success=True)
        logger.debug(
            "Refreshed tailnet status: state=%s peers=%d",
            status.backend_state,
            len(status.peer),
        )

        with self._cache_lock:
            self._status_cache = status
            self._cache_time = time.monotonic()
        return status

    def invalidate_cache(self) -> None:
        """Drop the cached status so the next call fetches again."""
        with self._cache_lock:
            self._status_cache = None
            self._cache_time = 0.0

    # -- lookups --------------------------------------------------------------

    def get_self(self) -> NodeInfo:
        status = self.get_status()
        if status.self_node is None:
            raise NotConnectedError()
        return status.self_node

    def get_peer(self, node_id: str) -> NodeInfo:
        """Look up a node by ID; the local node is checked first."""
        if not node_id:
            raise InvalidNodeIDError()

        status = self.get_status()
        if status.self_node is not None and status.self_node.id == node_id:
            return status.self_node

        peer = status.peer.get(node_id)
        if peer is None:
            raise NodeNotFoundError(f"node not found: {node_id}")
        return peer

    def get_peer_by_ip(self, ip: str) -> NodeInfo:
        """Look up a node by one of its addresses; self wins on collision."""
        status = self.get_status()
        key = _address_key(ip)

        def owns(node: NodeInfo) -> bool:
            return any(_address_key(a) == key for a in node.ips)

        if status.self_node is not None and owns(status.self_node):
            return status.self_node

        for peer in status.peer.values():
            if owns(peer):
                return peer

        raise NodeNotFoundError(f"no node with address {ip}")

    def get_peers(self) -> list[NodeInfo]:
        return list(self.get_status().peer.values())

    def is_connected(self) -> bool:
        try:
            status = self.get_status()
        except AoiMeshError as exc:
            logger.debug("Tailnet status unavailable: %s", exc)
            return False
        return status.backend_state == BACKEND_STATE_RUNNING

    def verify_peer(self, node_id: str) -> bool:
        """Return True if *node_id* is a known, online tailnet member."""
        try:
            peer = self.get_peer(node_id)
        except NodeNotFoundError:
            return False
        return peer.online

    def get_node_tags(self, node_id: str) -> list[str]:
        return list(self.get_peer(node_id).tags)

    def is_tailscale_ip(self, ip: str) -> bool:
        return is_tailscale_ip(ip)


class LocalClient(NetworkIdentityClient):
    """Client for the local daemon's HTTP API on its Unix socket.

    Parameters
    ----------
    socket_path : str, optional
        Daemon socket. Defaults to the first well-known path that exists.
    cache_ttl : float
        Status cache lifetime in seconds.
    timeout : float
        Outer client timeout for each status fetch.
    transport : httpx.BaseTransport, optional
        Overrides the Unix socket transport (used by tests).
    """

    def __init__(
        self,
        socket_path: Optional[str] = None,
        cache_ttl: float = STATUS_CACHE_TTL_SECONDS,
        timeout: float = LOCALAPI_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
        metrics: Optional["MetricsCollector"] = None,
    ) -> None:
        super().__init__(cache_ttl=cache_ttl, metrics=metrics)
        self.socket_path = socket_path or default_socket_path()
        self._http = httpx.Client(
            base_url=LOCALAPI_BASE_URL,
            transport=transport or httpx.HTTPTransport(uds=self.socket_path),
            timeout=timeout,
        )

    def _fetch_status(self) -> Status:
        try:
            response = self._http.get(LOCALAPI_STATUS_PATH)
        except httpx.TransportError as exc:
            raise ConnectionFailedError(
                f"failed to connect to Tailscale at {self.socket_path}: {exc}"
            ) from exc

        if response.status_code != httpx.codes.OK:
            raise IdentityProviderError(f"unexpected status code: {response.status_code}")

        try:
            return Status.model_validate(response.json())
        except ValueError as exc:
            raise IdentityProviderError(f"failed to decode status: {exc}") from exc

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "LocalClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
