"""
Framework Integrations

ASGI middleware plus Flask and FastAPI helpers enforcing tailnet
authentication and tag permissions.
"""

from .http_middleware import (
    MeshAuthMiddleware,
    Rejection,
    RequirePermissionMiddleware,
    RequireTagMiddleware,
    check_required_permission,
    check_required_tag,
    fastapi_mesh_identity,
    flask_mesh_auth_required,
    flask_permission_required,
    flask_tag_required,
    get_request_identity,
    identity_from_scope,
)

__all__ = [
    "MeshAuthMiddleware",
    "Rejection",
    "RequirePermissionMiddleware",
    "RequireTagMiddleware",
    "check_required_permission",
    "check_required_tag",
    "fastapi_mesh_identity",
    "flask_mesh_auth_required",
    "flask_permission_required",
    "flask_tag_required",
    "get_request_identity",
    "identity_from_scope",
]
