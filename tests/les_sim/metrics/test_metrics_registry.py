"""Tests for the metric registry."""

from __future__ import annotations

import prometheus_client

from les_sim.metrics import (
    REGISTRY,
    blocks_mined,
    cluster_operation_time,
    connection_operations,
    generate_metrics,
)


class TestRegistry:
    """Tests for the dedicated registry."""

    def test_metric_names(self) -> None:
        """Every simulator metric is exported."""
        output = generate_metrics().decode()

        for name in (
            "les_sim_nodes_running",
            "les_sim_connections_active",
            "les_sim_connection_operations_total",
            "les_sim_cluster_operation_seconds",
            "les_sim_blocks_mined_total",
        ):
            assert name in output

    def test_process_metrics_are_excluded(self) -> None:
        """The default collectors stay out of the simulator registry."""
        assert "process_cpu_seconds_total" not in generate_metrics().decode()
        assert REGISTRY is not prometheus_client.REGISTRY

    def test_counters(self) -> None:
        """Counters count up from their current value."""
        before = REGISTRY.get_sample_value("les_sim_blocks_mined_total") or 0.0
        blocks_mined.inc()
        assert REGISTRY.get_sample_value("les_sim_blocks_mined_total") == before + 1

        labels = {"operation": "connect", "result": "ok"}
        before = REGISTRY.get_sample_value("les_sim_connection_operations_total", labels) or 0.0
        connection_operations.labels(**labels).inc()
        assert REGISTRY.get_sample_value("les_sim_connection_operations_total", labels) == (
            before + 1
        )

    def test_histogram(self) -> None:
        """Observations land in the operation histogram."""
        labels = {"operation": "sample"}
        cluster_operation_time.labels(**labels).observe(0.002)

        assert REGISTRY.get_sample_value("les_sim_cluster_operation_seconds_count", labels) == 1
        assert (
            REGISTRY.get_sample_value(
                "les_sim_cluster_operation_seconds_bucket", {**labels, "le": "0.005"}
            )
            == 1
        )
