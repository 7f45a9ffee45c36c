# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Tailnet Server Integration

One object wiring the identity client, the authenticator and the tag
ACL engine from a :class:`~aoimesh.config.TailscaleConfig`, plus the
helpers a server needs around them: app wrapping, route guards, a
health report, listen address selection and bulk ACL sync.
"""

from __future__ import annotations

import ipaddress
import logging
import os
from typing import TYPE_CHECKING, Optional

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp

from aoimesh.auth.authenticator import Authenticator
from aoimesh.config import TailscaleConfig
from aoimesh.constants import DEFAULT_AGENT_PORT, FALLBACK_DEVELOPMENT, FALLBACK_STRICT
from aoimesh.exceptions import AoiMeshError, NoTailscaleIPError, TailscaleNotAvailableError
from aoimesh.governance.acl_store import ACLRuleStore
from aoimesh.governance.tag_acl import TagACL
from aoimesh.identity.client import LocalClient, NetworkIdentityClient, default_socket_path
from aoimesh.integrations.http_middleware import MeshAuthMiddleware
from aoimesh.services.bindings import NodeAgentBindings, TagSnapshotStore
from aoimesh.services.registry import AgentRegistry

if TYPE_CHECKING:
    from aoimesh.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


def build_client(
    config: TailscaleConfig,
    metrics: Optional["MetricsCollector"] = None,
) -> NetworkIdentityClient:
    """Create the daemon client for *config*.

    A missing socket is not an error here: the client reports itself
    disconnected until the daemon comes up.
    """
    socket_path = config.socket_path or default_socket_path()
    if not os.path.exists(socket_path):
        logger.warning("Tailscale socket not found at %s", socket_path)

    return LocalClient(
        socket_path=socket_path,
        cache_ttl=config.cache_ttl_seconds,
        metrics=metrics,
    )


class MeshIntegration:
    """Identity client, authenticator and tag ACL sharing one configuration."""

    def __init__(
        self,
        client: NetworkIdentityClient,
        auth: Authenticator,
        acl: TagACL,
        config: TailscaleConfig,
    ) -> None:
        self.client = client
        self.auth = auth
        self.acl = acl
        self.config = config

    @classmethod
    def from_config(
        cls,
        config: TailscaleConfig,
        registry: Optional[AgentRegistry] = None,
        acl_store: Optional[ACLRuleStore] = None,
        client: Optional[NetworkIdentityClient] = None,
        metrics: Optional["MetricsCollector"] = None,
    ) -> Optional["MeshIntegration"]:
        """Build the integration, or return ``None`` when it is disabled."""
        if not config.enabled:
            return None

        if client is None:
            client = build_client(config, metrics=metrics)

        auth = Authenticator(
            client,
            config.to_auth_config(),
            registry=registry,
            bindings=NodeAgentBindings(),
            metrics=metrics,
        )
        acl = TagACL(
            client,
            acl_store=acl_store,
            tag_mappings=config.effective_tag_mappings(),
            default_permission=config.default_permission,
            snapshots=TagSnapshotStore(),
            metrics=metrics,
        )
        return cls(client, auth, acl, config)

    # -- request pipeline ----------------------------------------------------

    def wrap_app(self, app: ASGIApp) -> ASGIApp:
        """Wrap an ASGI app with tailnet authentication.

        Returns *app* unchanged unless ``require_auth`` is set.
        """
        if not self.config.require_auth:
            return app
        return MeshAuthMiddleware(app, authenticator=self.auth)

    def require_permission(self, resource: str, action: str):
        return self.acl.permission_middleware(resource, action)

    def require_tag(self, tag: str):
        return self.auth.require_tag(tag)

    # -- server helpers ------------------------------------------------------

    def is_connected(self) -> bool:
        return self.client.is_connected()

    def health(self) -> dict[str, str]:
        """Health report: overall status plus tailnet connectivity."""
        status = "healthy"
        if not self.config.enabled:
            return {"status": status, "tailscale": "disabled"}

        if self.client.is_connected():
            tailscale = "connected"
        else:
            tailscale = "disconnected"
            if self.config.require_auth and self.config.fallback_mode == FALLBACK_STRICT:
                status = "degraded"
        return {"status": status, "tailscale": tailscale}

    async def health_endpoint(self, request: Request) -> JSONResponse:
        """Starlette route handler serving :meth:`health`."""
        return JSONResponse(await run_in_threadpool(self.health))

    def tailscale_ip(self) -> str:
        """Return the local tailnet address, preferring IPv4."""
        try:
            self_node = self.client.get_self()
        except AoiMeshError as exc:
            raise TailscaleNotAvailableError(f"Tailscale is not available: {exc}") from exc

        if not self_node.ips:
            raise NoTailscaleIPError("no Tailscale IP available")

        for ip in self_node.ips:
            try:
                if ipaddress.ip_address(ip).version == 4:
                    return ip
            except ValueError:
                continue
        return self_node.ips[0]

    def listen_address(self, port: int = 0) -> tuple[str, int]:
        """Pick the (host, port) a server should bind."""
        port = port or DEFAULT_AGENT_PORT

        if not self.config.bind_to_tailscale:
            return "0.0.0.0", port

        try:
            return self.tailscale_ip(), port
        except (TailscaleNotAvailableError, NoTailscaleIPError):
            if self.config.fallback_mode == FALLBACK_DEVELOPMENT:
                logger.warning("Tailscale not available, falling back to 127.0.0.1")
                return "127.0.0.1", port
            raise

    def sync_acls(self) -> list[str]:
        """Sync ACL rules for every node bound to an agent.

        Returns the node IDs whose sync failed.
        """
        return self.acl.sync_all_nodes(self.auth.bindings.snapshot())
