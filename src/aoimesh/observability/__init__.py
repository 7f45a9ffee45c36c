"""
Observability Module

Prometheus counters for authentication and authorization decisions.
"""

from .metrics import MetricsCollector

__all__ = ["MetricsCollector"]
