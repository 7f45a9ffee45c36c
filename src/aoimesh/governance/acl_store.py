# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
ACL Rule Store

Per-agent access rules written by tag synchronisation and read by
protocol handlers that authorize by agent ID rather than by tag.
"""

import logging
import threading
from typing import Optional

from aoimesh.governance.permissions import (
    AccessRule,
    PermissionCheckResult,
    PermissionLevel,
    match_resource,
)

logger = logging.getLogger(__name__)


class ACLRuleStore:
    """In-memory store of :class:`AccessRule` entries.

    Rules are keyed by ``(agent_id, resource)``; adding a rule for an
    existing key replaces its permission so repeated syncs converge on the
    latest tag state instead of accumulating stale grants.
    """

    def __init__(self, rules: Optional[list[AccessRule]] = None) -> None:
        self._rules: dict[tuple[str, str], AccessRule] = {}
        self._lock = threading.Lock()
        for rule in rules or []:
            self.add_rule(rule)

    def add_rule(self, rule: AccessRule) -> None:
        with self._lock:
            self._rules[(rule.agent_id, rule.resource)] = rule.model_copy()

    def remove_rules_for(self, agent_id: str) -> int:
        """Drop every rule for *agent_id*; returns how many were removed."""
        with self._lock:
            keys = [key for key in self._rules if key[0] == agent_id]
            for key in keys:
                del self._rules[key]
        return len(keys)

    def rules_for(self, agent_id: str) -> list[AccessRule]:
        with self._lock:
            return [r for (owner, _), r in self._rules.items() if owner == agent_id]

    def list_rules(self) -> list[AccessRule]:
        with self._lock:
            return list(self._rules.values())

    def check_permission(self, agent_id: str, resource: str, action: str) -> PermissionCheckResult:
        """Check whether *agent_id* may perform *action* on *resource*."""
        required = PermissionLevel.for_action(action)
        if required == PermissionLevel.NONE and action not in ("", "none"):
            # unknown actions are never granted by agent rules
            return PermissionCheckResult(allowed=False, reason=f"unknown action: {action}")

        for rule in self.rules_for(agent_id):
            if match_resource(rule.resource, resource) and rule.permission >= required:
                return PermissionCheckResult(allowed=True, reason="permission granted")

        logger.debug("ACL store denied %s %s on %s", agent_id, action, resource)
        return PermissionCheckResult(allowed=False, reason="permission denied")

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)
