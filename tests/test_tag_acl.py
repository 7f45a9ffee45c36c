"""Tests for permission levels, resource patterns, the ACL rule store and TagACL."""

import pytest

from aoimesh.exceptions import (
    ConnectionFailedError,
    InvalidTagFormatError,
    NodeNotFoundError,
    PermissionDeniedError,
    TagMappingNotFoundError,
)
from aoimesh.governance import (
    ACLRuleStore,
    AccessRule,
    PermissionLevel,
    TagACL,
    TagPermissionMapping,
    default_tag_mappings,
    match_resource,
)
from aoimesh.governance.permissions import action_to_permission
from aoimesh.identity import FakeClient, NodeInfo
from aoimesh.observability import MetricsCollector


def _node(node_id, tags):
    return NodeInfo(id=node_id, name=node_id, ips=[], online=True, tags=tags)


def _rules(rules):
    return {r.resource: r.permission for r in rules}


# ---------------------------------------------------------------------------
# PermissionLevel
# ---------------------------------------------------------------------------

class TestPermissionLevel:
    def test_ordering(self):
        assert PermissionLevel.NONE < PermissionLevel.READ
        assert PermissionLevel.READ < PermissionLevel.WRITE
        assert PermissionLevel.WRITE < PermissionLevel.ADMIN
        assert PermissionLevel.ADMIN >= PermissionLevel.WRITE
        assert max(PermissionLevel.READ, PermissionLevel.ADMIN) is PermissionLevel.ADMIN

    def test_not_comparable_with_int(self):
        with pytest.raises(TypeError):
            PermissionLevel.READ < 2

    def test_str(self):
        assert str(PermissionLevel.WRITE) == "write"
        assert str(PermissionLevel.NONE) == "none"

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("none", PermissionLevel.NONE),
            ("read", PermissionLevel.READ),
            ("write", PermissionLevel.WRITE),
            ("execute", PermissionLevel.WRITE),
            ("admin", PermissionLevel.ADMIN),
            (" ADMIN ", PermissionLevel.ADMIN),
            ("superuser", PermissionLevel.NONE),
            (PermissionLevel.READ, PermissionLevel.READ),
        ],
    )
    def test_parse(self, value, expected):
        assert PermissionLevel.parse(value) is expected

    def test_parse_rejects_non_string(self):
        with pytest.raises(ValueError):
            PermissionLevel.parse(3)

    @pytest.mark.parametrize(
        "action,expected",
        [
            ("read", PermissionLevel.READ),
            ("write", PermissionLevel.WRITE),
            ("execute", PermissionLevel.WRITE),
            ("admin", PermissionLevel.ADMIN),
            ("delete", PermissionLevel.NONE),
            ("", PermissionLevel.NONE),
        ],
    )
    def test_action_to_permission(self, action, expected):
        assert action_to_permission(action) is expected


# ---------------------------------------------------------------------------
# Resource patterns
# ---------------------------------------------------------------------------

class TestMatchResource:
    @pytest.mark.parametrize(
        "pattern,target,expected",
        [
            ("agents/a1", "agents/a1", True),
            ("agents/a1", "agents/a2", False),
            ("*", "anything/at/all", True),
            ("*", "", True),
            ("agents/*", "agents/a1", True),
            ("agents/*", "agents/", True),
            ("agents/*", "agents/a1/tasks", False),
            ("agents/*", "agents", False),
            ("agents/*", "agentsX/a1", False),
            ("agents/**", "agents/a1", True),
            ("agents/**", "agents/a1/tasks/t9", True),
            ("agents/**", "agents", False),
            ("queries/*", "agents/a1", False),
        ],
    )
    def test_patterns(self, pattern, target, expected):
        assert match_resource(pattern, target) is expected


class TestTagPermissionMapping:
    def test_permission_parsed_from_string(self):
        mapping = TagPermissionMapping(tag="tag:x", resources=["a/*"], permission="execute")
        assert mapping.permission is PermissionLevel.WRITE

    def test_default_mappings(self):
        by_tag = {m.tag: m for m in default_tag_mappings()}
        assert set(by_tag) == {"tag:aoi-admin", "tag:aoi-agent", "tag:aoi-reader", "tag:aoi-executor"}
        assert by_tag["tag:aoi-admin"].resources == ["*"]
        assert by_tag["tag:aoi-admin"].permission is PermissionLevel.ADMIN
        assert by_tag["tag:aoi-agent"].resources == ["agents/*", "queries/*", "tasks/*"]
        assert by_tag["tag:aoi-reader"].permission is PermissionLevel.READ
        assert by_tag["tag:aoi-executor"].resources == ["tasks/*"]

    def test_default_mappings_are_fresh(self):
        first = default_tag_mappings()
        first[0].resources.append("mutated")
        assert "mutated" not in default_tag_mappings()[0].resources


# ---------------------------------------------------------------------------
# ACL rule store
# ---------------------------------------------------------------------------

class TestACLRuleStore:
    def setup_method(self):
        self.store = ACLRuleStore()

    def test_upsert_by_agent_and_resource(self):
        self.store.add_rule(AccessRule(agent_id="a1", resource="tasks/*", permission=PermissionLevel.READ))
        self.store.add_rule(AccessRule(agent_id="a1", resource="tasks/*", permission=PermissionLevel.WRITE))

        assert len(self.store) == 1
        assert self.store.rules_for("a1")[0].permission is PermissionLevel.WRITE

    def test_rules_are_per_agent(self):
        self.store.add_rule(AccessRule(agent_id="a1", resource="tasks/*", permission=PermissionLevel.READ))
        self.store.add_rule(AccessRule(agent_id="a2", resource="tasks/*", permission=PermissionLevel.READ))
        assert len(self.store) == 2
        assert len(self.store.rules_for("a1")) == 1
        assert len(self.store.list_rules()) == 2

    def test_remove_rules_for(self):
        self.store.add_rule(AccessRule(agent_id="a1", resource="tasks/*", permission=PermissionLevel.READ))
        self.store.add_rule(AccessRule(agent_id="a1", resource="agents/*", permission=PermissionLevel.READ))
        assert self.store.remove_rules_for("a1") == 2
        assert self.store.remove_rules_for("a1") == 0
        assert len(self.store) == 0

    def test_check_permission(self):
        self.store.add_rule(AccessRule(agent_id="a1", resource="tasks/*", permission=PermissionLevel.WRITE))

        assert self.store.check_permission("a1", "tasks/t1", "execute").allowed
        assert self.store.check_permission("a1", "tasks/t1", "read").allowed
        denied = self.store.check_permission("a1", "tasks/t1", "admin")
        assert not denied.allowed
        assert denied.reason == "permission denied"
        assert not self.store.check_permission("a2", "tasks/t1", "read").allowed

    def test_unknown_action_denied(self):
        self.store.add_rule(AccessRule(agent_id="a1", resource="*", permission=PermissionLevel.ADMIN))
        result = self.store.check_permission("a1", "tasks/t1", "delete")
        assert not result.allowed
        assert result.reason == "unknown action: delete"

    def test_stored_rule_is_a_copy(self):
        rule = AccessRule(agent_id="a1", resource="tasks/*", permission=PermissionLevel.READ)
        self.store.add_rule(rule)
        rule.permission = PermissionLevel.ADMIN
        assert self.store.rules_for("a1")[0].permission is PermissionLevel.READ


# ---------------------------------------------------------------------------
# TagACL: rule table
# ---------------------------------------------------------------------------

class TestTagMappings:
    def setup_method(self):
        self.acl = TagACL(FakeClient())

    def test_add_and_get(self):
        self.acl.add_tag_mapping(
            TagPermissionMapping(tag="tag:ops", resources=["ops/*"], permission=PermissionLevel.ADMIN)
        )
        mappings = self.acl.get_tag_mappings()
        assert [m.tag for m in mappings] == ["tag:ops"]

    def test_add_replaces_existing(self):
        self.acl.add_tag_mapping(TagPermissionMapping(tag="tag:ops", resources=["a/*"], permission="read"))
        self.acl.add_tag_mapping(TagPermissionMapping(tag="tag:ops", resources=["b/*"], permission="write"))

        mappings = self.acl.get_tag_mappings()
        assert len(mappings) == 1
        assert mappings[0].resources == ["b/*"]

    def test_rejects_tag_without_prefix(self):
        with pytest.raises(InvalidTagFormatError):
            self.acl.add_tag_mapping(TagPermissionMapping(tag="ops", resources=["*"], permission="admin"))
        assert self.acl.get_tag_mappings() == []

    def test_initial_mappings_are_validated(self):
        with pytest.raises(InvalidTagFormatError):
            TagACL(FakeClient(), tag_mappings=[TagPermissionMapping(tag="bad", permission="read")])

    def test_remove(self):
        self.acl.add_tag_mapping(TagPermissionMapping(tag="tag:ops", resources=["*"], permission="read"))
        self.acl.remove_tag_mapping("tag:ops")
        assert self.acl.get_tag_mappings() == []

    def test_remove_absent(self):
        self.acl.add_tag_mapping(TagPermissionMapping(tag="tag:ops", resources=["a/*"], permission="read"))
        before = self.acl.get_tag_mappings()

        with pytest.raises(TagMappingNotFoundError):
            self.acl.remove_tag_mapping("tag:ghost")

        assert self.acl.get_tag_mappings() == before

    def test_returned_mappings_are_copies(self):
        self.acl.add_tag_mapping(TagPermissionMapping(tag="tag:ops", resources=["a/*"], permission="read"))
        self.acl.get_tag_mappings()[0].resources.append("b/*")
        assert self.acl.get_tag_mappings()[0].resources == ["a/*"]

    def test_caller_mapping_is_copied_on_add(self):
        mapping = TagPermissionMapping(tag="tag:ops", resources=["a/*"], permission="read")
        self.acl.add_tag_mapping(mapping)
        mapping.resources.append("b/*")
        assert self.acl.get_tag_mappings()[0].resources == ["a/*"]


# ---------------------------------------------------------------------------
# TagACL: resolution and checks
# ---------------------------------------------------------------------------

class TestResolution:
    def setup_method(self):
        self.client = FakeClient()
        self.client.add_peer(_node("agent-node", ["tag:aoi-agent"]))
        self.client.add_peer(_node("mixed-node", ["tag:aoi-reader", "tag:aoi-agent"]))
        self.client.add_peer(_node("untagged", []))
        self.metrics = MetricsCollector()
        self.acl = TagACL(self.client, tag_mappings=default_tag_mappings(), metrics=self.metrics)

    def test_single_tag(self):
        rules = _rules(self.acl.get_permissions_for_tags(["tag:aoi-reader"]))
        assert rules == {"agents/*": PermissionLevel.READ, "queries/*": PermissionLevel.READ}

    def test_highest_permission_wins(self):
        rules = _rules(self.acl.get_permissions_for_tags(["tag:aoi-reader", "tag:aoi-agent"]))
        assert rules == {
            "agents/*": PermissionLevel.WRITE,
            "queries/*": PermissionLevel.WRITE,
            "tasks/*": PermissionLevel.WRITE,
        }

    def test_order_of_tags_does_not_matter(self):
        a = _rules(self.acl.get_permissions_for_tags(["tag:aoi-agent", "tag:aoi-reader"]))
        b = _rules(self.acl.get_permissions_for_tags(["tag:aoi-reader", "tag:aoi-agent"]))
        assert a == b

    def test_unknown_tags_ignored(self):
        assert self.acl.get_permissions_for_tags(["tag:nope"]) == []
        assert self.acl.get_permissions_for_tags([]) == []

    def test_distinct_patterns_kept_separately(self):
        self.acl.add_tag_mapping(TagPermissionMapping(tag="tag:deep", resources=["agents/**"], permission="admin"))
        rules = _rules(self.acl.get_permissions_for_tags(["tag:aoi-reader", "tag:deep"]))
        assert rules["agents/*"] is PermissionLevel.READ
        assert rules["agents/**"] is PermissionLevel.ADMIN

    def test_permissions_for_node(self):
        rules = _rules(self.acl.get_permissions_for_node("agent-node"))
        assert rules["tasks/*"] is PermissionLevel.WRITE

    def test_permissions_for_unknown_node(self):
        with pytest.raises(NodeNotFoundError):
            self.acl.get_permissions_for_node("ghost")

    def test_check_granted(self):
        result = self.acl.check_permission_for_tags(["tag:aoi-agent"], "tasks/t1", "execute")
        assert result.allowed
        assert result.reason == "permission granted via tag"

    def test_check_denied(self):
        result = self.acl.check_permission_for_tags(["tag:aoi-reader"], "tasks/t1", "read")
        assert not result.allowed
        assert result.reason == "no matching tag permission"

    def test_check_insufficient_level(self):
        assert not self.acl.check_permission_for_tags(["tag:aoi-reader"], "agents/a1", "write").allowed

    def test_admin_wildcard(self):
        assert self.acl.check_permission_for_tags(["tag:aoi-admin"], "anything/x/y", "admin").allowed

    def test_single_segment_pattern_does_not_descend(self):
        assert not self.acl.check_permission_for_tags(["tag:aoi-agent"], "agents/a1/tasks", "read").allowed

    def test_default_permission(self):
        acl = TagACL(self.client, default_permission=PermissionLevel.READ)
        result = acl.check_permission_for_tags([], "agents/a1", "read")
        assert result.allowed
        assert result.reason == "default permission granted"
        assert not acl.check_permission_for_tags([], "agents/a1", "write").allowed

    def test_unknown_action_needs_no_permission(self):
        assert self.acl.check_permission_for_tags([], "agents/a1", "ping").allowed

    def test_check_for_node(self):
        assert self.acl.check_permission_for_node("mixed-node", "queries/q1", "write").allowed
        assert not self.acl.check_permission_for_node("untagged", "queries/q1", "read").allowed

    def test_check_for_unknown_node_propagates(self):
        with pytest.raises(NodeNotFoundError):
            self.acl.check_permission_for_node("ghost", "queries/q1", "read")

    def test_require_permission(self):
        self.acl.require_permission(["tag:aoi-agent"], "tasks/t1", "write")
        with pytest.raises(PermissionDeniedError, match="no matching tag permission"):
            self.acl.require_permission(["tag:aoi-reader"], "tasks/t1", "write")

    def test_checks_are_recorded(self):
        self.acl.check_permission_for_tags(["tag:aoi-agent"], "tasks/t1", "write")
        self.acl.check_permission_for_tags(["tag:aoi-reader"], "tasks/t1", "write")
        sample = self.metrics.sample
        assert sample("aoimesh_permission_checks_total", {"action": "write", "allowed": "true"}) == 1.0
        assert sample("aoimesh_permission_checks_total", {"action": "write", "allowed": "false"}) == 1.0


# ---------------------------------------------------------------------------
# TagACL: synchronisation and drift
# ---------------------------------------------------------------------------

class TestSync:
    def setup_method(self):
        self.client = FakeClient(cache_ttl=60)
        self.client.add_peer(_node("agent-node", ["tag:aoi-agent"]))
        self.client.add_peer(_node("reader-node", ["tag:aoi-reader"]))
        self.store = ACLRuleStore()
        self.acl = TagACL(self.client, acl_store=self.store, tag_mappings=default_tag_mappings())

    def test_sync_node_acl(self):
        rules = self.acl.sync_node_acl("agent-node", "ts-agent-node")

        assert {r.agent_id for r in rules} == {"ts-agent-node"}
        assert len(self.store.rules_for("ts-agent-node")) == 3
        assert self.store.check_permission("ts-agent-node", "tasks/t1", "execute").allowed

    def test_resync_does_not_duplicate(self):
        self.acl.sync_node_acl("agent-node", "ts-agent-node")
        self.acl.sync_node_acl("agent-node", "ts-agent-node")
        assert len(self.store) == 3

    def test_resync_converges_on_new_level(self):
        self.acl.sync_node_acl("reader-node", "ts-reader")
        self.client.add_peer(_node("reader-node", ["tag:aoi-agent"]))
        self.acl.sync_node_acl("reader-node", "ts-reader")
        assert self.store.check_permission("ts-reader", "agents/a1", "write").allowed

    def test_sync_without_store(self):
        acl = TagACL(self.client, tag_mappings=default_tag_mappings())
        assert len(acl.sync_node_acl("reader-node", "ts-reader")) == 2

    def test_sync_all_nodes_skips_failures(self, caplog):
        with caplog.at_level("WARNING", logger="aoimesh.governance.tag_acl"):
            failed = self.acl.sync_all_nodes(
                {"agent-node": "ts-agent", "ghost": "ts-ghost", "reader-node": "ts-reader"}
            )

        assert failed == ["ghost"]
        assert self.store.rules_for("ts-agent")
        assert self.store.rules_for("ts-reader")
        assert "ghost" in caplog.text

    def test_sync_all_nodes_daemon_down(self):
        self.client.set_error(ConnectionFailedError("down"))
        assert sorted(self.acl.sync_all_nodes({"agent-node": "a", "reader-node": "r"})) == [
            "agent-node",
            "reader-node",
        ]


class TestDetectTagChanges:
    def setup_method(self):
        self.client = FakeClient(cache_ttl=60)
        self.client.add_peer(_node("n1", ["tag:a"]))
        self.client.add_peer(_node("n2", ["tag:b"]))
        self.acl = TagACL(self.client)

    def test_first_observation_counts_as_change(self):
        assert sorted(self.acl.detect_tag_changes()) == ["n1", "n2"]

    def test_no_change(self):
        self.acl.detect_tag_changes()
        assert self.acl.detect_tag_changes() == []

    def test_tag_change_detected(self):
        self.acl.detect_tag_changes()
        self.client.add_peer(_node("n1", ["tag:a", "tag:c"]))
        assert self.acl.detect_tag_changes() == ["n1"]

    def test_reordering_is_not_a_change(self):
        self.client.add_peer(_node("n1", ["tag:a", "tag:c"]))
        self.acl.detect_tag_changes()
        self.client.add_peer(_node("n1", ["tag:c", "tag:a"]))
        assert self.acl.detect_tag_changes() == []

    def test_new_peer_detected(self):
        self.acl.detect_tag_changes()
        self.client.add_peer(_node("n3", []))
        assert self.acl.detect_tag_changes() == ["n3"]

    def test_daemon_failure_propagates(self):
        self.client.set_error(ConnectionFailedError("down"))
        with pytest.raises(ConnectionFailedError):
            self.acl.detect_tag_changes()
