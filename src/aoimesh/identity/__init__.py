"""
Network Identity Layer

Resolves tailnet peers through the local identity daemon:
- NodeInfo / Status models
- Unix-socket client with a TTL status cache
- In-memory fake with identical semantics
"""

from .node import NodeInfo, Status
from .client import LocalClient, NetworkIdentityClient, default_socket_path, is_tailscale_ip
from .fake import FakeClient

__all__ = [
    "NodeInfo",
    "Status",
    "NetworkIdentityClient",
    "LocalClient",
    "FakeClient",
    "default_socket_path",
    "is_tailscale_ip",
]
