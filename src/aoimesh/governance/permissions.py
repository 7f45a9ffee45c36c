# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Permission Model

Permission levels, tag mappings, resolved access rules and the resource
pattern matcher shared by the tag ACL engine and the ACL rule store.

Resource patterns:

======================  ==============================================
Pattern                 Matches
======================  ==============================================
``agents/a1``           exactly ``agents/a1``
``*``                   any resource
``agents/*``            ``agents/<one segment>`` only
``agents/**``           anything below ``agents/``
======================  ==============================================
"""

from __future__ import annotations

from enum import Enum
from functools import total_ordering
from typing import Any

from pydantic import BaseModel, Field, field_validator


@total_ordering
class PermissionLevel(Enum):
    """Access level, totally ordered: NONE < READ < WRITE < ADMIN.

    Execute access is granted by WRITE. Levels only compare with other
    levels; comparing against a plain int raises ``TypeError``.
    """

    NONE = 0
    READ = 1
    WRITE = 2
    ADMIN = 3

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, PermissionLevel):
            return NotImplemented
        return self.value < other.value

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: Any) -> "PermissionLevel":
        """Parse a config value; unknown names map to NONE."""
        if isinstance(value, PermissionLevel):
            return value
        if isinstance(value, str):
            return _PERMISSION_NAMES.get(value.strip().lower(), cls.NONE)
        raise ValueError(f"invalid permission level: {value!r}")

    @classmethod
    def for_action(cls, action: str) -> "PermissionLevel":
        """Return the level an action requires (unknown actions need NONE)."""
        return _ACTION_LEVELS.get(action, cls.NONE)


_PERMISSION_NAMES = {
    "none": PermissionLevel.NONE,
    "read": PermissionLevel.READ,
    "write": PermissionLevel.WRITE,
    "execute": PermissionLevel.WRITE,
    "admin": PermissionLevel.ADMIN,
}

_ACTION_LEVELS = {
    "read": PermissionLevel.READ,
    "write": PermissionLevel.WRITE,
    "execute": PermissionLevel.WRITE,
    "admin": PermissionLevel.ADMIN,
}


def action_to_permission(action: str) -> PermissionLevel:
    return PermissionLevel.for_action(action)


def match_resource(pattern: str, target: str) -> bool:
    """Check whether a resource *pattern* covers *target*."""
    if pattern == target:
        return True

    if pattern == "*":
        return True

    if pattern.endswith("/**"):
        prefix = pattern[: -len("/**")] + "/"
        return target.startswith(prefix)

    if pattern.endswith("/*"):
        prefix = pattern[: -len("/*")] + "/"
        if not target.startswith(prefix):
            return False
        # "agents/*" covers "agents/a1" but not "agents/a1/tasks"
        return "/" not in target[len(prefix):]

    return False


class TagPermissionMapping(BaseModel):
    """Grants *permission* on *resources* to every node carrying *tag*."""

    tag: str
    resources: list[str] = Field(default_factory=list)
    permission: PermissionLevel = PermissionLevel.NONE

    @field_validator("permission", mode="before")
    @classmethod
    def _parse_permission(cls, v: Any) -> Any:
        if isinstance(v, str):
            return PermissionLevel.parse(v)
        return v


class AccessRule(BaseModel):
    """A resolved (resource pattern, permission) pair, optionally bound to an agent."""

    agent_id: str = ""
    resource: str
    permission: PermissionLevel


class PermissionCheckResult(BaseModel):
    """Outcome of a point-in-time authorization check."""

    allowed: bool
    reason: str = ""


def default_tag_mappings() -> list[TagPermissionMapping]:
    """Tag mappings used when the configuration supplies none."""
    return [
        TagPermissionMapping(
            tag="tag:aoi-admin",
            resources=["*"],
            permission=PermissionLevel.ADMIN,
        ),
        TagPermissionMapping(
            tag="tag:aoi-agent",
            resources=["agents/*", "queries/*", "tasks/*"],
            permission=PermissionLevel.WRITE,
        ),
        TagPermissionMapping(
            tag="tag:aoi-reader",
            resources=["agents/*", "queries/*"],
            permission=PermissionLevel.READ,
        ),
        TagPermissionMapping(
            tag="tag:aoi-executor",
            resources=["tasks/*"],
            permission=PermissionLevel.WRITE,
        ),
    ]
