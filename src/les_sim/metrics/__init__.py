"""
Metrics module for observability.

Provides counters, gauges, and histograms for tracking the simulated network.
Exposes metrics in Prometheus text format.
"""

from .registry import (
    REGISTRY,
    blocks_mined,
    cluster_operation_time,
    connection_operations,
    connections_active,
    generate_metrics,
    nodes_running,
)

__all__ = [
    "REGISTRY",
    "blocks_mined",
    "cluster_operation_time",
    "connection_operations",
    "connections_active",
    "generate_metrics",
    "nodes_running",
]
