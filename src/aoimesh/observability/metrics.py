# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Prometheus Metrics Integration.

Counts authentication and authorization decisions made by aoimesh.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, generate_latest


class MetricsCollector:
    """
    Prometheus metrics collector for aoimesh.

    Exposes metrics:
    - aoimesh_auth_decisions_total{outcome="..."}
    - aoimesh_permission_checks_total{action="...", allowed="true|false"}
    - aoimesh_agents_auto_registered_total
    - aoimesh_status_fetch_total{result="success|fail"}

    Each collector owns its own ``CollectorRegistry`` unless one is passed
    in, so several collectors can coexist in one process.
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        prefix: str = "aoimesh",
        enabled: bool = True,
    ):
        """Initialize metrics collector."""
        self.registry = registry if registry is not None else CollectorRegistry()
        self._enabled = enabled

        self.auth_decisions_total = Counter(
            f"{prefix}_auth_decisions_total",
            "Authentication decisions by outcome",
            ["outcome"],
            registry=self.registry,
        )
        self.permission_checks_total = Counter(
            f"{prefix}_permission_checks_total",
            "Tag permission checks",
            ["action", "allowed"],
            registry=self.registry,
        )
        self.agents_auto_registered_total = Counter(
            f"{prefix}_agents_auto_registered_total",
            "Agents auto-registered from tailnet nodes",
            registry=self.registry,
        )
        self.status_fetch_total = Counter(
            f"{prefix}_status_fetch_total",
            "Identity daemon status fetches",
            ["result"],
            registry=self.registry,
        )

    @property
    def enabled(self) -> bool:
        """Check if metrics are enabled."""
        return self._enabled

    def record_auth_decision(self, outcome: str):
        """Record an authentication outcome (verified, development, anonymous, or an error name)."""
        if not self._enabled:
            return
        self.auth_decisions_total.labels(outcome=outcome).inc()

    def record_permission_check(self, action: str, allowed: bool):
        if not self._enabled:
            return
        self.permission_checks_total.labels(
            action=action or "none",
            allowed="true" if allowed else "false",
        ).inc()

    def record_auto_registration(self):
        if not self._enabled:
            return
        self.agents_auto_registered_total.inc()

    def record_status_fetch(self, success: bool):
        if not self._enabled:
            return
        self.status_fetch_total.labels(result="success" if success else "fail").inc()

    def sample(self, name: str, labels: Optional[dict[str, str]] = None) -> float:
        """Return the current value of a sample (0.0 if never recorded)."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0

    def expose(self) -> bytes:
        """Render all metrics in the Prometheus text format."""
        return generate_latest(self.registry)
