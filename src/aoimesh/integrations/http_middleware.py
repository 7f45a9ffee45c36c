# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
HTTP Mesh Middleware for aoimesh
================================

Enforces tailnet authentication and tag permissions on HTTP handlers.

Provides ASGI middleware (``MeshAuthMiddleware``, ``RequireTagMiddleware``,
``RequirePermissionMiddleware``) usable with Starlette or FastAPI, plus thin
decorators for Flask (``flask_mesh_auth_required`` ...) and a FastAPI
dependency (``fastapi_mesh_identity``). Missing frameworks are handled
gracefully: the Flask and FastAPI helpers import their framework at call
time.

Status codes: authentication failures answer 401, authorization failures
403, both with a plain-text reason. On success the request carries a
:class:`RequestIdentity` in its state under ``mesh_identity``.
"""

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Optional

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import Headers
from starlette.requests import HTTPConnection
from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Receive, Scope, Send
from starlette.websockets import WebSocketClose

from aoimesh.auth.authenticator import ANONYMOUS, Authenticator, RequestIdentity
from aoimesh.exceptions import AoiMeshError, PermissionDeniedError
from aoimesh.governance.tag_acl import TagACL

logger = logging.getLogger(__name__)

STATE_KEY = "mesh_identity"


@dataclass(frozen=True)
class Rejection:
    """A request refused by the middleware."""

    status_code: int
    reason: str


UNAUTHORIZED = Rejection(401, "Unauthorized")


# -- framework-independent decisions -----------------------------------------


def authenticate(
    authenticator: Authenticator,
    headers: Any,
    remote_addr: str,
) -> tuple[RequestIdentity, Optional[Rejection]]:
    """Run authentication and return *(identity, rejection | None)*."""
    try:
        return authenticator.identify(headers, remote_addr), None
    except AoiMeshError:
        return ANONYMOUS, UNAUTHORIZED


def check_required_tag(identity: RequestIdentity, tag: str) -> Optional[Rejection]:
    if not identity.authenticated:
        return UNAUTHORIZED
    if not identity.node.has_tag(tag):
        return Rejection(403, "Forbidden: missing required tag")
    return None


def check_required_permission(
    acl: TagACL,
    identity: RequestIdentity,
    resource: str,
    action: str,
) -> Optional[Rejection]:
    if not identity.authenticated:
        return Rejection(401, "Unauthorized: no node info")
    try:
        acl.require_permission(identity.node.tags, resource, action)
    except PermissionDeniedError as exc:
        return Rejection(403, f"Forbidden: {exc}")
    return None


# -- request scope -----------------------------------------------------------


def identity_from_scope(scope: Scope) -> RequestIdentity:
    identity = scope.get("state", {}).get(STATE_KEY)
    return identity if isinstance(identity, RequestIdentity) else ANONYMOUS


def get_request_identity(request: HTTPConnection) -> RequestIdentity:
    """Return the identity attached by :class:`MeshAuthMiddleware`."""
    return identity_from_scope(request.scope)


async def _reject(rejection: Rejection, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] == "websocket":
        await WebSocketClose(code=1008, reason=rejection.reason)(scope, receive, send)
        return
    response = PlainTextResponse(rejection.reason, status_code=rejection.status_code)
    await response(scope, receive, send)


# -- ASGI middleware ---------------------------------------------------------


class MeshAuthMiddleware:
    """ASGI middleware authenticating every HTTP/WebSocket request.

    Parameters
    ----------
    app : ASGIApp
        The wrapped application.
    authenticator : Authenticator
        Resolves the caller. It performs blocking I/O against the identity
        daemon, so it runs in the worker thread pool.
    """

    def __init__(self, app: ASGIApp, authenticator: Authenticator) -> None:
        self.app = app
        self.authenticator = authenticator

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        client = scope.get("client")
        remote_addr = client[0] if client else ""
        identity, rejection = await run_in_threadpool(
            authenticate, self.authenticator, Headers(scope=scope), remote_addr
        )
        if rejection is not None:
            await _reject(rejection, scope, receive, send)
            return

        scope.setdefault("state", {})[STATE_KEY] = identity
        await self.app(scope, receive, send)


class RequireTagMiddleware:
    """ASGI middleware requiring a tailnet tag on the authenticated node."""

    def __init__(self, app: ASGIApp, tag: str) -> None:
        self.app = app
        self.tag = tag

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        rejection = check_required_tag(identity_from_scope(scope), self.tag)
        if rejection is not None:
            await _reject(rejection, scope, receive, send)
            return
        await self.app(scope, receive, send)


class RequirePermissionMiddleware:
    """ASGI middleware requiring a tag-derived permission on a resource."""

    def __init__(self, app: ASGIApp, acl: TagACL, resource: str, action: str) -> None:
        self.app = app
        self.acl = acl
        self.resource = resource
        self.action = action

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        identity = identity_from_scope(scope)
        rejection = check_required_permission(self.acl, identity, self.resource, self.action)
        if rejection is not None:
            logger.info(
                "Permission denied: %s %s on %s (%s)",
                identity.node.id if identity.node else "-",
                self.action,
                self.resource,
                rejection.reason,
            )
            await _reject(rejection, scope, receive, send)
            return
        await self.app(scope, receive, send)


# -- Framework-specific decorators -------------------------------------------


def flask_mesh_auth_required(authenticator: Authenticator) -> Callable:
    """Flask decorator that authenticates the caller and stores ``g.mesh_identity``."""
    from flask import g, request  # noqa: late import

    def decorator(fn: Callable) -> Callable:
        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            identity, rejection = authenticate(
                authenticator, request.headers, request.remote_addr or ""
            )
            if rejection is not None:
                return rejection.reason, rejection.status_code, {"Content-Type": "text/plain"}
            g.mesh_identity = identity
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def flask_tag_required(tag: str) -> Callable:
    """Flask decorator requiring *tag*; stack under ``flask_mesh_auth_required``."""
    from flask import g  # noqa: late import

    def decorator(fn: Callable) -> Callable:
        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            identity = getattr(g, STATE_KEY, ANONYMOUS)
            rejection = check_required_tag(identity, tag)
            if rejection is not None:
                return rejection.reason, rejection.status_code, {"Content-Type": "text/plain"}
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def flask_permission_required(acl: TagACL, resource: str, action: str) -> Callable:
    """Flask decorator requiring a tag permission; stack under ``flask_mesh_auth_required``."""
    from flask import g  # noqa: late import

    def decorator(fn: Callable) -> Callable:
        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            identity = getattr(g, STATE_KEY, ANONYMOUS)
            rejection = check_required_permission(acl, identity, resource, action)
            if rejection is not None:
                return rejection.reason, rejection.status_code, {"Content-Type": "text/plain"}
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def fastapi_mesh_identity(
    authenticator: Authenticator,
    required_tag: Optional[str] = None,
    acl: Optional[TagACL] = None,
    resource: Optional[str] = None,
    action: Optional[str] = None,
) -> Callable:
    """FastAPI dependency resolving the caller's :class:`RequestIdentity`.

    Optionally enforces a tag and/or a permission (``acl`` with ``resource``
    and ``action``).
    """
    from fastapi import HTTPException, Request  # noqa: late import

    async def dependency(request: Request) -> RequestIdentity:
        client = request.client
        identity, rejection = await run_in_threadpool(
            authenticate, authenticator, request.headers, client.host if client else ""
        )
        if rejection is None and required_tag is not None:
            rejection = check_required_tag(identity, required_tag)
        if rejection is None and acl is not None and resource is not None:
            rejection = check_required_permission(acl, identity, resource, action or "")
        if rejection is not None:
            raise HTTPException(status_code=rejection.status_code, detail=rejection.reason)
        request.state.mesh_identity = identity
        return identity

    return dependency
