# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Tailnet Authenticator
=====================

Turns the source address of an inbound request into a verified tailnet
identity. One resolution pass ends in exactly one of:

- a verified, online tailnet peer (optionally bound to an agent ID),
- a synthetic ``localhost`` node, for loopback callers under the
  ``development`` fallback mode,
- no identity at all, when ``require_auth`` is off,

or raises an :class:`~aoimesh.exceptions.AoiMeshError` subclass.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Mapping, Optional

from pydantic import BaseModel, Field

from aoimesh.constants import (
    AGENT_ID_PREFIX,
    DEFAULT_AGENT_PORT,
    DEFAULT_AGENT_ROLE,
    DEVELOPMENT_TAG,
    FALLBACK_DEVELOPMENT,
    HEADER_FORWARDED_FOR,
    HEADER_REAL_IP,
    LOCALHOST_NODE_ID,
)
from aoimesh.exceptions import (
    AgentAlreadyRegisteredError,
    AgentNotFoundError,
    AoiMeshError,
    NotTailscaleRequestError,
    RegistryError,
    TagNotAllowedError,
    UnauthorizedNodeError,
)
from aoimesh.identity.client import NetworkIdentityClient
from aoimesh.identity.node import NodeInfo
from aoimesh.services.bindings import NodeAgentBindings
from aoimesh.services.registry import AgentIdentity, AgentRegistry

if TYPE_CHECKING:
    from aoimesh.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


class AuthConfig(BaseModel):
    """Authentication policy."""

    require_auth: bool = False
    allowed_tags: list[str] = Field(default_factory=list)
    fallback_mode: Literal["development", "strict"] = "development"
    auto_register_agents: bool = False


@dataclass(frozen=True)
class RequestIdentity:
    """Identity attached to a request once authentication succeeds."""

    node: Optional[NodeInfo] = None
    agent_id: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.node is not None

    @property
    def tags(self) -> list[str]:
        return list(self.node.tags) if self.node else []


ANONYMOUS = RequestIdentity()


def _get_header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                return candidate
        return ""
    return value


def _split_host_port(addr: str) -> str:
    try:
        ipaddress.ip_address(addr)
        return addr
    except ValueError:
        pass

    if addr.startswith("["):
        end = addr.find("]")
        if end != -1:
            return addr[1:end]
        return addr

    host, sep, port = addr.rpartition(":")
    if sep and host and ":" not in host and port.isdigit():
        return host
    return addr


def extract_client_ip(headers: Mapping[str, str], remote_addr: str = "") -> str:
    """Return the caller's IP address.

    Preference order: first ``X-Forwarded-For`` entry, ``X-Real-IP``,
    then the socket peer address with any port removed.
    """
    forwarded = _get_header(headers, HEADER_FORWARDED_FOR)
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = _get_header(headers, HEADER_REAL_IP)
    if real_ip:
        return real_ip.strip()

    return _split_host_port(remote_addr or "")


def is_localhost(ip: str) -> bool:
    try:
        return ipaddress.ip_address(ip).is_loopback
    except ValueError:
        return ip == "localhost"


def has_allowed_tag(node_tags: list[str], allowed_tags: list[str]) -> bool:
    tag_set = set(node_tags)
    return any(tag in tag_set for tag in allowed_tags)


def development_node(ip: str) -> NodeInfo:
    """Synthetic identity for loopback callers in development mode."""
    return NodeInfo(
        id=LOCALHOST_NODE_ID,
        name=LOCALHOST_NODE_ID,
        hostname=LOCALHOST_NODE_ID,
        ips=[ip],
        online=True,
        tags=[DEVELOPMENT_TAG],
    )


class Authenticator:
    """Authenticates requests by their tailnet source address.

    Parameters
    ----------
    client : NetworkIdentityClient
        Resolves source addresses to tailnet nodes.
    config : AuthConfig, optional
        Authentication policy.
    registry : AgentRegistry, optional
        Target for auto-provisioned agents. Without it no agent is created.
    bindings : NodeAgentBindings, optional
        Node -> agent store; a private one is created when omitted.
    metrics : MetricsCollector, optional
        Records authentication outcomes.
    """

    def __init__(
        self,
        client: NetworkIdentityClient,
        config: Optional[AuthConfig] = None,
        registry: Optional[AgentRegistry] = None,
        bindings: Optional[NodeAgentBindings] = None,
        metrics: Optional["MetricsCollector"] = None,
    ) -> None:
        self.client = client
        self.config = config or AuthConfig()
        self.registry = registry
        self.bindings = bindings if bindings is not None else NodeAgentBindings()
        self._metrics = metrics

    # -- node -> agent bindings ----------------------------------------------

    def map_node_to_agent(self, node_id: str, agent_id: str) -> None:
        self.bindings.bind(node_id, agent_id)

    def get_agent_id_for_node(self, node_id: str) -> Optional[str]:
        return self.bindings.get(node_id)

    def remove_node_mapping(self, node_id: str) -> None:
        self.bindings.remove(node_id)

    # -- authentication ------------------------------------------------------

    def authenticate_ip(self, client_ip: str) -> Optional[NodeInfo]:
        """Resolve *client_ip* to a tailnet node.

        Returns ``None`` for an unauthenticated pass-through (only possible
        when ``require_auth`` is off).

        Raises:
            NotTailscaleRequestError: non-tailnet address with auth required
            NodeNotFoundError: tailnet address not owned by any known node
            UnauthorizedNodeError: the owning node is offline
            TagNotAllowedError: the node carries none of ``allowed_tags``
            ConnectionFailedError: the identity daemon is unreachable
        """
        if not self.client.is_tailscale_ip(client_ip):
            if self.config.fallback_mode == FALLBACK_DEVELOPMENT and is_localhost(client_ip):
                self._record("development")
                return development_node(client_ip)

            if self.config.require_auth:
                self._record("not_tailscale")
                raise NotTailscaleRequestError()

            self._record("anonymous")
            return None

        try:
            node = self.client.get_peer_by_ip(client_ip)
        except AoiMeshError as exc:
            self._record(type(exc).__name__)
            raise

        if not node.online:
            self._record("offline")
            raise UnauthorizedNodeError(f"node {node.id} is offline")

        if self.config.allowed_tags and not has_allowed_tag(node.tags, self.config.allowed_tags):
            self._record("tag_not_allowed")
            raise TagNotAllowedError(f"node {node.id} carries none of the allowed tags")

        self._record("verified")
        return node

    def authenticate_request(
        self,
        headers: Mapping[str, str],
        remote_addr: str = "",
    ) -> Optional[NodeInfo]:
        """Authenticate a request given its headers and socket peer address."""
        return self.authenticate_ip(extract_client_ip(headers, remote_addr))

    def identify(self, headers: Mapping[str, str], remote_addr: str = "") -> RequestIdentity:
        """Authenticate a request and resolve the agent bound to its node."""
        client_ip = extract_client_ip(headers, remote_addr)
        try:
            node = self.authenticate_ip(client_ip)
        except AoiMeshError as exc:
            logger.warning("Tailscale auth failed: %s (client: %s)", exc, client_ip)
            raise

        if node is None:
            return ANONYMOUS
        return RequestIdentity(node=node, agent_id=self.resolve_agent(node))

    # -- agent provisioning --------------------------------------------------

    def resolve_agent(self, node: NodeInfo) -> Optional[str]:
        """Return the agent bound to *node*, provisioning one if enabled."""
        agent_id = self.bindings.get(node.id)
        if agent_id is not None:
            return agent_id

        if not self.config.auto_register_agents:
            return None
        return self._auto_register_agent(node)

    def _auto_register_agent(self, node: NodeInfo) -> Optional[str]:
        if self.registry is None:
            return None

        agent_id = AGENT_ID_PREFIX + node.id

        try:
            self.registry.get_agent(agent_id)
        except AgentNotFoundError:
            pass
        else:
            return self.bindings.bind_if_absent(node.id, agent_id)

        endpoint = f"{node.ips[0]}:{DEFAULT_AGENT_PORT}" if node.ips else ""
        agent = AgentIdentity(
            id=agent_id,
            role=DEFAULT_AGENT_ROLE,
            owner=node.user_id,
            status="online",
            endpoint=endpoint,
            tailscale_node_id=node.id,
            metadata={
                "tailscale_node_id": node.id,
                "tailscale_name": node.name,
                "tailscale_hostname": node.hostname,
                "tailscale_tags": list(node.tags),
            },
        )

        try:
            self.registry.register(agent)
        except AgentAlreadyRegisteredError:
            # a concurrent request for the same node won the race
            return self.bindings.bind_if_absent(node.id, agent_id)
        except RegistryError as exc:
            logger.error("Failed to auto-register agent for node %s: %s", node.id, exc)
            return None

        if self._metrics:
            self._metrics.record_auto_registration()
        logger.info(
            "Auto-registered agent %s for Tailscale node %s (%s)", agent_id, node.id, node.name
        )
        return self.bindings.bind_if_absent(node.id, agent_id)

    # -- tag checks ----------------------------------------------------------

    @staticmethod
    def has_tag(identity: RequestIdentity, tag: str) -> bool:
        return identity.node is not None and identity.node.has_tag(tag)

    def require_tag(self, tag: str):
        """ASGI middleware factory requiring *tag* on the resolved node."""
        from aoimesh.integrations.http_middleware import RequireTagMiddleware

        def wrap(app):
            return RequireTagMiddleware(app, tag=tag)

        return wrap

    def middleware(self, app):
        """Wrap an ASGI app with tailnet authentication."""
        from aoimesh.integrations.http_middleware import MeshAuthMiddleware

        return MeshAuthMiddleware(app, authenticator=self)

    def _record(self, outcome: str) -> None:
        if self._metrics:
            self._metrics.record_auth_decision(outcome)
