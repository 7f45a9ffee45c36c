"""Tests for the Prometheus metrics collector."""

from prometheus_client import CollectorRegistry

from aoimesh.exceptions import ConnectionFailedError
from aoimesh.identity import FakeClient
from aoimesh.observability import MetricsCollector


class TestMetricsCollector:
    def setup_method(self):
        self.metrics = MetricsCollector()

    def test_auth_decision(self):
        self.metrics.record_auth_decision("verified")
        self.metrics.record_auth_decision("verified")
        assert self.metrics.sample("aoimesh_auth_decisions_total", {"outcome": "verified"}) == 2.0

    def test_permission_check(self):
        self.metrics.record_permission_check("read", True)
        self.metrics.record_permission_check("", False)
        assert self.metrics.sample(
            "aoimesh_permission_checks_total", {"action": "read", "allowed": "true"}
        ) == 1.0
        assert self.metrics.sample(
            "aoimesh_permission_checks_total", {"action": "none", "allowed": "false"}
        ) == 1.0

    def test_unrecorded_sample(self):
        assert self.metrics.sample("aoimesh_auth_decisions_total", {"outcome": "nope"}) == 0.0

    def test_disabled(self):
        metrics = MetricsCollector(enabled=False)
        metrics.record_auth_decision("verified")
        metrics.record_auto_registration()
        assert metrics.enabled is False
        assert metrics.sample("aoimesh_auth_decisions_total", {"outcome": "verified"}) == 0.0
        assert metrics.sample("aoimesh_agents_auto_registered_total") == 0.0

    def test_independent_registries(self):
        a = MetricsCollector()
        b = MetricsCollector()
        a.record_auto_registration()
        assert a.sample("aoimesh_agents_auto_registered_total") == 1.0
        assert b.sample("aoimesh_agents_auto_registered_total") == 0.0

    def test_custom_registry_and_prefix(self):
        registry = CollectorRegistry()
        metrics = MetricsCollector(registry=registry, prefix="edge")
        metrics.record_auth_decision("anonymous")
        assert registry.get_sample_value("edge_auth_decisions_total", {"outcome": "anonymous"}) == 1.0

    def test_expose(self):
        self.metrics.record_auth_decision("verified")
        text = self.metrics.expose().decode()
        assert 'aoimesh_auth_decisions_total{outcome="verified"} 1.0' in text


class TestStatusFetchMetrics:
    def test_success_and_failure(self):
        metrics = MetricsCollector()
        client = FakeClient(cache_ttl=0, metrics=metrics)
        client.get_status()
        client.set_error(ConnectionFailedError("down"))
        assert client.is_connected() is False

        assert metrics.sample("aoimesh_status_fetch_total", {"result": "success"}) == 1.0
        assert metrics.sample("aoimesh_status_fetch_total", {"result": "fail"}) == 1.0
