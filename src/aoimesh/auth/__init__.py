"""
Authentication Layer

Resolves inbound requests to verified tailnet identities and provisions
logical agents for newly seen nodes.
"""

from .authenticator import (
    ANONYMOUS,
    AuthConfig,
    Authenticator,
    RequestIdentity,
    development_node,
    extract_client_ip,
    has_allowed_tag,
    is_localhost,
)

__all__ = [
    "ANONYMOUS",
    "AuthConfig",
    "Authenticator",
    "RequestIdentity",
    "development_node",
    "extract_client_ip",
    "has_allowed_tag",
    "is_localhost",
]
