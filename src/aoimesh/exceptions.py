# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""Centralized exception hierarchy for aoimesh.

All aoimesh exceptions inherit from AoiMeshError, enabling consistent
error handling across the identity client, the authenticator, the tag
ACL engine and the HTTP integrations.
"""


class AoiMeshError(Exception):
    """Base exception for all aoimesh errors."""


# -- identity provider (connection class) ------------------------------------


class IdentityProviderError(AoiMeshError):
    """The local identity daemon returned an unusable answer."""


class ConnectionFailedError(IdentityProviderError):
    """The local identity daemon could not be reached or timed out."""


# -- identity resolution -----------------------------------------------------


class IdentityResolutionError(AoiMeshError):
    """A node lookup against the identity provider failed."""


class NotConnectedError(IdentityResolutionError):
    """No local node identity is known yet."""

    def __init__(self, message: str = "not connected to Tailscale") -> None:
        super().__init__(message)


class NodeNotFoundError(IdentityResolutionError):
    """The requested node is not part of the tailnet."""

    def __init__(self, message: str = "node not found") -> None:
        super().__init__(message)


class InvalidNodeIDError(IdentityResolutionError):
    """An empty or malformed node ID was supplied."""

    def __init__(self, message: str = "invalid node ID") -> None:
        super().__init__(message)


# -- authentication decisions (HTTP 401) -------------------------------------


class AuthenticationError(AoiMeshError):
    """The caller could not be authenticated."""


class NotTailscaleRequestError(AuthenticationError):
    def __init__(self, message: str = "request is not from Tailscale network") -> None:
        super().__init__(message)


class UnauthorizedNodeError(AuthenticationError):
    def __init__(self, message: str = "node is not authorized") -> None:
        super().__init__(message)


class TagNotAllowedError(AuthenticationError):
    def __init__(self, message: str = "node tag is not in allowed list") -> None:
        super().__init__(message)


# -- authorization policy (HTTP 403) -----------------------------------------


class AuthorizationError(AoiMeshError):
    """An authenticated caller lacks the required permission."""


class PermissionDeniedError(AuthorizationError):
    """Raised when a resource/action check is denied."""


# -- ACL configuration mutation ----------------------------------------------


class ACLConfigError(AoiMeshError):
    """Errors related to tag mapping mutations."""


class InvalidTagFormatError(ACLConfigError):
    def __init__(self, message: str = "invalid tag format") -> None:
        super().__init__(message)


class TagMappingNotFoundError(ACLConfigError):
    def __init__(self, message: str = "tag mapping not found") -> None:
        super().__init__(message)


# -- agent registry ----------------------------------------------------------


class RegistryError(AoiMeshError):
    """Errors related to the agent registry."""


class AgentAlreadyRegisteredError(RegistryError):
    """Raised when an agent ID is registered twice."""


class AgentNotFoundError(RegistryError):
    """Raised when an agent ID is not in the registry."""


# -- server glue -------------------------------------------------------------


class ServerError(AoiMeshError):
    """Errors raised while wiring the integration into a server."""


class TailscaleNotAvailableError(ServerError):
    """The local node identity could not be read."""


class NoTailscaleIPError(ServerError):
    """The local node has no mesh address to bind to."""


__all__ = [
    "AoiMeshError",
    "IdentityProviderError",
    "ConnectionFailedError",
    "IdentityResolutionError",
    "NotConnectedError",
    "NodeNotFoundError",
    "InvalidNodeIDError",
    "AuthenticationError",
    "NotTailscaleRequestError",
    "UnauthorizedNodeError",
    "TagNotAllowedError",
    "AuthorizationError",
    "PermissionDeniedError",
    "ACLConfigError",
    "InvalidTagFormatError",
    "TagMappingNotFoundError",
    "RegistryError",
    "AgentAlreadyRegisteredError",
    "AgentNotFoundError",
    "ServerError",
    "TailscaleNotAvailableError",
    "NoTailscaleIPError",
]
