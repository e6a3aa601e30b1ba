"""
HTTP surface for a running simulation.

Serves the live network graph to external test harnesses: node status and
lifecycle, connections, events, health and Prometheus metrics.
"""

from .server import ApiServerConfig, SimulationServer

__all__ = [
    "ApiServerConfig",
    "SimulationServer",
]
