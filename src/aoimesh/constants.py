# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""Shared constants for aoimesh."""

# Local identity daemon
DEFAULT_SOCKET_PATHS = (
    "/var/run/tailscale/tailscaled.sock",
    "/run/tailscale/tailscaled.sock",
    "/tmp/tailscaled.sock",
)
LOCALAPI_BASE_URL = "http://local-tailscaled.sock"
LOCALAPI_STATUS_PATH = "/localapi/v0/status"
STATUS_CACHE_TTL_SECONDS = 5.0
LOCALAPI_TIMEOUT_SECONDS = 10.0
BACKEND_STATE_RUNNING = "Running"
BACKEND_STATE_STOPPED = "Stopped"

# Mesh address space
TAILSCALE_IPV4_RANGE = "100.64.0.0/10"
TAILSCALE_IPV6_RANGE = "fd7a:115c:a1e0::/48"

# Tags
TAG_PREFIX = "tag:"
DEVELOPMENT_TAG = "tag:development"
LOCALHOST_NODE_ID = "localhost"

# Authentication policy
FALLBACK_DEVELOPMENT = "development"
FALLBACK_STRICT = "strict"

# Auto-provisioned agents
AGENT_ID_PREFIX = "ts-"
DEFAULT_AGENT_ROLE = "engineer"
DEFAULT_AGENT_PORT = 8080

# HTTP headers
HEADER_FORWARDED_FOR = "X-Forwarded-For"
HEADER_REAL_IP = "X-Real-IP"
