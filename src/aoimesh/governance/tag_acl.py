# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Tag ACL Engine

Maps tailnet ACL tags to resource permissions:

- a mutable table of tag -> (resource patterns, permission) mappings
- resolution of a tag set into effective access rules
- point-in-time permission checks
- synchronisation of resolved rules into the per-agent ACL rule store
- drift detection of node tags between polls

Aggregation is by literal pattern string: when several tags grant the
same pattern the highest permission wins, while different patterns
(``agents/*`` and ``agents/**``) are kept as separate rules.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Iterable, Optional

from aoimesh.constants import TAG_PREFIX
from aoimesh.exceptions import (
    AoiMeshError,
    InvalidTagFormatError,
    PermissionDeniedError,
    TagMappingNotFoundError,
)
from aoimesh.governance.acl_store import ACLRuleStore
from aoimesh.governance.permissions import (
    AccessRule,
    PermissionCheckResult,
    PermissionLevel,
    TagPermissionMapping,
    match_resource,
)
from aoimesh.identity.client import NetworkIdentityClient
from aoimesh.services.bindings import TagSnapshotStore

if TYPE_CHECKING:
    from aoimesh.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


class TagACL:
    """Tag-based permission engine.

    Parameters
    ----------
    client : NetworkIdentityClient
        Source of node tags and peer lists.
    acl_store : ACLRuleStore, optional
        Receives rules pushed by :meth:`sync_node_acl`.
    tag_mappings : iterable of TagPermissionMapping, optional
        Initial rule table; each entry is validated like
        :meth:`add_tag_mapping`.
    default_permission : PermissionLevel
        Level granted when no tag rule matches.
    snapshots : TagSnapshotStore, optional
        Per-node tag snapshots used by :meth:`detect_tag_changes`.
    """

    def __init__(
        self,
        client: NetworkIdentityClient,
        acl_store: Optional[ACLRuleStore] = None,
        tag_mappings: Optional[Iterable[TagPermissionMapping]] = None,
        default_permission: PermissionLevel = PermissionLevel.NONE,
        snapshots: Optional[TagSnapshotStore] = None,
        metrics: Optional["MetricsCollector"] = None,
    ) -> None:
        self.client = client
        self.acl_store = acl_store
        self.default_permission = default_permission
        self.snapshots = snapshots if snapshots is not None else TagSnapshotStore()
        self._metrics = metrics
        self._mappings: dict[str, TagPermissionMapping] = {}
        self._lock = threading.Lock()

        for mapping in tag_mappings or []:
            self.add_tag_mapping(mapping)

    # -- rule table ----------------------------------------------------------

    def get_tag_mappings(self) -> list[TagPermissionMapping]:
        with self._lock:
            return [m.model_copy(deep=True) for m in self._mappings.values()]

    def add_tag_mapping(self, mapping: TagPermissionMapping) -> None:
        """Insert or replace the mapping for ``mapping.tag``.

        Raises:
            InvalidTagFormatError: the tag lacks the ``tag:`` prefix
        """
        if not mapping.tag.startswith(TAG_PREFIX):
            raise InvalidTagFormatError(f"invalid tag format: {mapping.tag!r}")

        stored = mapping.model_copy(deep=True)
        with self._lock:
            self._mappings[mapping.tag] = stored
        logger.debug(
            "Tag mapping %s -> %s on %s", mapping.tag, mapping.permission, mapping.resources
        )

    def remove_tag_mapping(self, tag: str) -> None:
        """
        Raises:
            TagMappingNotFoundError: no mapping exists for *tag*
        """
        with self._lock:
            if tag not in self._mappings:
                raise TagMappingNotFoundError(f"tag mapping not found: {tag}")
            del self._mappings[tag]

    # -- resolution ----------------------------------------------------------

    def get_permissions_for_tags(self, tags: Iterable[str]) -> list[AccessRule]:
        """Resolve a tag set into access rules, one per literal pattern."""
        with self._lock:
            mappings = [self._mappings[t] for t in dict.fromkeys(tags) if t in self._mappings]

        seen: dict[str, PermissionLevel] = {}
        for mapping in mappings:
            for resource in mapping.resources:
                current = seen.get(resource)
                if current is None or mapping.permission > current:
                    seen[resource] = mapping.permission

        return [AccessRule(resource=r, permission=p) for r, p in seen.items()]

    def get_permissions_for_node(self, node_id: str) -> list[AccessRule]:
        tags = self.client.get_node_tags(node_id)
        return self.get_permissions_for_tags(tags)

    def check_permission_for_tags(
        self,
        tags: Iterable[str],
        resource: str,
        action: str,
    ) -> PermissionCheckResult:
        """Decide whether a tag set may perform *action* on *resource*."""
        required = PermissionLevel.for_action(action)

        result = None
        for rule in self.get_permissions_for_tags(tags):
            if match_resource(rule.resource, resource) and rule.permission >= required:
                result = PermissionCheckResult(allowed=True, reason="permission granted via tag")
                break

        if result is None:
            if self.default_permission >= required:
                result = PermissionCheckResult(allowed=True, reason="default permission granted")
            else:
                result = PermissionCheckResult(
                    allowed=False, reason="no matching tag permission"
                )

        if self._metrics:
            self._metrics.record_permission_check(action, result.allowed)
        return result

    def require_permission(self, tags: Iterable[str], resource: str, action: str) -> None:
        """
        Raises:
            PermissionDeniedError: the tag set may not perform *action*
        """
        result = self.check_permission_for_tags(tags, resource, action)
        if not result.allowed:
            raise PermissionDeniedError(result.reason)

    def check_permission_for_node(
        self,
        node_id: str,
        resource: str,
        action: str,
    ) -> PermissionCheckResult:
        """Like :meth:`check_permission_for_tags`, looking the tags up by node.

        Lookup errors propagate to the caller.
        """
        tags = self.client.get_node_tags(node_id)
        return self.check_permission_for_tags(tags, resource, action)

    # -- synchronisation -----------------------------------------------------

    def sync_node_acl(self, node_id: str, agent_id: str) -> list[AccessRule]:
        """Push the node's resolved rules into the ACL store under *agent_id*."""
        rules = [
            rule.model_copy(update={"agent_id": agent_id})
            for rule in self.get_permissions_for_node(node_id)
        ]
        if self.acl_store is not None:
            for rule in rules:
                self.acl_store.add_rule(rule)
        return rules

    def sync_all_nodes(self, node_agent_map: dict[str, str]) -> list[str]:
        """Sync every node in *node_agent_map*, skipping failures.

        Returns the node IDs that could not be synced.
        """
        failed = []
        for node_id, agent_id in node_agent_map.items():
            try:
                self.sync_node_acl(node_id, agent_id)
            except AoiMeshError as exc:
                logger.warning("ACL sync failed for node %s (agent %s): %s", node_id, agent_id, exc)
                failed.append(node_id)
        return failed

    def detect_tag_changes(self) -> list[str]:
        """Return IDs of peers whose tags changed since the last call.

        Peers seen for the first time are reported as changed.
        """
        changed = []
        for peer in self.client.get_peers():
            if self.snapshots.update_if_changed(peer.id, peer.tags):
                changed.append(peer.id)
        if changed:
            logger.info("Tag changes detected on %d node(s)", len(changed))
        return changed

    # -- middleware ----------------------------------------------------------

    def permission_middleware(self, resource: str, action: str):
        """ASGI middleware factory gating a route on *action* over *resource*."""
        from aoimesh.integrations.http_middleware import RequirePermissionMiddleware

        def wrap(app):
            return RequirePermissionMiddleware(app, acl=self, resource=resource, action=action)

        return wrap
