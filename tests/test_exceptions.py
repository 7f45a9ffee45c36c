"""Tests for the centralized exception hierarchy."""

import pytest

from aoimesh.exceptions import (
    ACLConfigError,
    AgentAlreadyRegisteredError,
    AgentNotFoundError,
    AoiMeshError,
    AuthenticationError,
    AuthorizationError,
    ConnectionFailedError,
    IdentityProviderError,
    IdentityResolutionError,
    InvalidNodeIDError,
    InvalidTagFormatError,
    NodeNotFoundError,
    NoTailscaleIPError,
    NotConnectedError,
    NotTailscaleRequestError,
    PermissionDeniedError,
    RegistryError,
    ServerError,
    TagMappingNotFoundError,
    TagNotAllowedError,
    TailscaleNotAvailableError,
    UnauthorizedNodeError,
)


class TestExceptionHierarchy:
    """Verify the exception class hierarchy is correct."""

    def test_base_exception_exists(self):
        assert issubclass(AoiMeshError, Exception)

    @pytest.mark.parametrize(
        "exc_cls",
        [
            IdentityProviderError,
            IdentityResolutionError,
            AuthenticationError,
            AuthorizationError,
            ACLConfigError,
            RegistryError,
            ServerError,
        ],
    )
    def test_direct_subclasses_of_base(self, exc_cls):
        assert exc_cls.__bases__ == (AoiMeshError,)

    @pytest.mark.parametrize(
        "exc_cls,parent",
        [
            (ConnectionFailedError, IdentityProviderError),
            (NotConnectedError, IdentityResolutionError),
            (NodeNotFoundError, IdentityResolutionError),
            (InvalidNodeIDError, IdentityResolutionError),
            (NotTailscaleRequestError, AuthenticationError),
            (UnauthorizedNodeError, AuthenticationError),
            (TagNotAllowedError, AuthenticationError),
            (PermissionDeniedError, AuthorizationError),
            (InvalidTagFormatError, ACLConfigError),
            (TagMappingNotFoundError, ACLConfigError),
            (AgentAlreadyRegisteredError, RegistryError),
            (AgentNotFoundError, RegistryError),
            (TailscaleNotAvailableError, ServerError),
            (NoTailscaleIPError, ServerError),
        ],
    )
    def test_leaf_classes(self, exc_cls, parent):
        assert exc_cls.__bases__ == (parent,)
        assert issubclass(exc_cls, AoiMeshError)

    def test_authentication_and_authorization_are_distinct(self):
        assert not issubclass(PermissionDeniedError, AuthenticationError)
        assert not issubclass(NotTailscaleRequestError, AuthorizationError)


class TestExceptionMessages:
    @pytest.mark.parametrize(
        "exc_cls,message",
        [
            (NotConnectedError, "not connected to Tailscale"),
            (NodeNotFoundError, "node not found"),
            (InvalidNodeIDError, "invalid node ID"),
            (NotTailscaleRequestError, "request is not from Tailscale network"),
            (UnauthorizedNodeError, "node is not authorized"),
            (TagNotAllowedError, "node tag is not in allowed list"),
            (InvalidTagFormatError, "invalid tag format"),
            (TagMappingNotFoundError, "tag mapping not found"),
        ],
    )
    def test_default_messages(self, exc_cls, message):
        assert str(exc_cls()) == message

    def test_custom_message(self):
        assert str(NodeNotFoundError("node not found: n1")) == "node not found: n1"

    def test_catch_by_base(self):
        with pytest.raises(AoiMeshError):
            raise ConnectionFailedError("daemon down")
