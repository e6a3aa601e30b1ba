"""
Metric registry using prometheus_client.

Tracks node lifecycle, connection churn and block production of a simulated
network. Exposed in Prometheus text format via the /metrics endpoint.
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Dedicated registry so default Python process metrics stay out of the output.
REGISTRY = CollectorRegistry()

# -----------------------------------------------------------------------------
# Network Graph
# -----------------------------------------------------------------------------

nodes_running = Gauge(
    "les_sim_nodes_running",
    "Nodes currently running",
    ["role"],
    registry=REGISTRY,
)

connections_active = Gauge(
    "les_sim_connections_active",
    "Connections currently established",
    registry=REGISTRY,
)

connection_operations = Counter(
    "les_sim_connection_operations_total",
    "Connect and disconnect operations",
    ["operation", "result"],
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Cluster Lifecycle
# -----------------------------------------------------------------------------

cluster_operation_time = Histogram(
    "les_sim_cluster_operation_seconds",
    "Duration of cluster lifecycle operations",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Block Production
# -----------------------------------------------------------------------------

blocks_mined = Counter(
    "les_sim_blocks_mined_total",
    "Blocks sealed by mining servers",
    registry=REGISTRY,
)


def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics output.

    Returns:
        Prometheus text format output as bytes.
    """
    return generate_latest(REGISTRY)
