"""
aoimesh - Tailnet identity authentication and tag ACLs for agent meshes

Identity · Authentication · Authorization

aoimesh turns the source address of an inbound connection into a verified
tailnet identity, maps that identity's tags to resource permissions and
enforces both as request middleware.

Version: 0.1.0
"""

__version__ = "0.1.0"

# Layer 1: Network identity
from .identity import (
    NodeInfo,
    Status,
    NetworkIdentityClient,
    LocalClient,
    FakeClient,
    is_tailscale_ip,
)

# Layer 2: Authentication
from .auth import (
    AuthConfig,
    Authenticator,
    RequestIdentity,
    extract_client_ip,
)

# Layer 3: Authorization
from .governance import (
    ACLRuleStore,
    AccessRule,
    PermissionCheckResult,
    PermissionLevel,
    TagACL,
    TagPermissionMapping,
    default_tag_mappings,
    match_resource,
)

# Collaborators
from .services import (
    AgentIdentity,
    AgentRegistry,
    NodeAgentBindings,
    TagSnapshotStore,
)

# Integration
from .config import TailscaleConfig
from .integration import MeshIntegration
from .integrations import (
    MeshAuthMiddleware,
    RequirePermissionMiddleware,
    RequireTagMiddleware,
    get_request_identity,
)
from .observability import MetricsCollector

# Exceptions
from .exceptions import (
    AoiMeshError,
    IdentityProviderError,
    ConnectionFailedError,
    IdentityResolutionError,
    NotConnectedError,
    NodeNotFoundError,
    InvalidNodeIDError,
    AuthenticationError,
    NotTailscaleRequestError,
    UnauthorizedNodeError,
    TagNotAllowedError,
    AuthorizationError,
    PermissionDeniedError,
    ACLConfigError,
    InvalidTagFormatError,
    TagMappingNotFoundError,
    RegistryError,
    AgentAlreadyRegisteredError,
    AgentNotFoundError,
)

__all__ = [
    # Version
    "__version__",
    # Identity
    "NodeInfo",
    "Status",
    "NetworkIdentityClient",
    "LocalClient",
    "FakeClient",
    "is_tailscale_ip",
    # Authentication
    "AuthConfig",
    "Authenticator",
    "RequestIdentity",
    "extract_client_ip",
    # Authorization
    "ACLRuleStore",
    "AccessRule",
    "PermissionCheckResult",
    "PermissionLevel",
    "TagACL",
    "TagPermissionMapping",
    "default_tag_mappings",
    "match_resource",
    # Collaborators
    "AgentIdentity",
    "AgentRegistry",
    "NodeAgentBindings",
    "TagSnapshotStore",
    # Integration
    "TailscaleConfig",
    "MeshIntegration",
    "MeshAuthMiddleware",
    "RequirePermissionMiddleware",
    "RequireTagMiddleware",
    "get_request_identity",
    "MetricsCollector",
    # Exceptions
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
]
