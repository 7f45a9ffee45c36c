"""
Governance Layer

Tag-derived access control:
- Permission levels and resource pattern matching
- Tag -> permission mapping engine
- Per-agent ACL rule store
"""

from .permissions import (
    AccessRule,
    PermissionCheckResult,
    PermissionLevel,
    TagPermissionMapping,
    action_to_permission,
    default_tag_mappings,
    match_resource,
)
from .acl_store import ACLRuleStore
from .tag_acl import TagACL

__all__ = [
    "AccessRule",
    "PermissionCheckResult",
    "PermissionLevel",
    "TagPermissionMapping",
    "action_to_permission",
    "default_tag_mappings",
    "match_resource",
    "ACLRuleStore",
    "TagACL",
]
