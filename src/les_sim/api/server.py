"""
Simulation server exposing a live network graph.

Provides HTTP endpoints for:
- /health - Health check
- /metrics - Prometheus metrics
- /nodes, /nodes/{id} - Node status (id or name)
- /nodes/{id}/start, /nodes/{id}/stop - Node lifecycle (POST)
- /nodes/{id}/conn/{peer} - Connect (POST) or disconnect (DELETE) two nodes
- /conns - Established connections
- /events - Recorded network events

External test harnesses use it to inspect and drive a running cluster.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from aiohttp import web

from les_sim.metrics import generate_metrics
from les_sim.types import ConnectionStateError, NodeStateError, SimulatorError

if TYPE_CHECKING:
    from les_sim.simulator import Network
    from les_sim.simulator.adapters import AdapterNode

logger = logging.getLogger(__name__)


def _no_network() -> Network | None:
    """Default network getter that returns None."""
    return None


def _error(status: int, e: SimulatorError) -> web.Response:
    return web.json_response({"error": e.message, "type": type(e).__name__}, status=status)


async def _handle_health(_request: web.Request) -> web.Response:
    """Handle health check endpoint."""
    return web.json_response({"status": "healthy", "service": "les-sim"})


async def _handle_metrics(_request: web.Request) -> web.Response:
    """Handle Prometheus metrics endpoint."""
    return web.Response(
        body=generate_metrics(),
        content_type="text/plain; version=0.0.4",
        charset="utf-8",
    )


@dataclass(frozen=True, slots=True)
class ApiServerConfig:
    """Configuration for the simulation server."""

    host: str = "0.0.0.0"
    """Host address to bind to."""

    port: int = 9999
    """Port to listen on."""

    enabled: bool = True
    """Whether the server is enabled."""


@dataclass(slots=True)
class SimulationServer:
    """
    HTTP front of a network graph.

    Network calls block (they may spawn processes or talk to nodes), so
    mutating handlers run them in a worker thread.
    """

    config: ApiServerConfig
    """Server configuration."""

    network_getter: Callable[[], Network | None] = _no_network
    """Callable that returns the network to serve."""

    _runner: web.AppRunner | None = field(default=None, init=False)
    """The aiohttp application runner."""

    _site: web.TCPSite | None = field(default=None, init=False)
    """The TCP site for the server."""

    @property
    def network(self) -> Network:
        """The served network. Answers 503 while there is none."""
        network = self.network_getter()
        if network is None:
            raise web.HTTPServiceUnavailable(reason="Network not initialized")
        return network

    def create_app(self) -> web.Application:
        """Build the aiohttp application."""
        app = web.Application()
        app.add_routes(
            [
                web.get("/health", _handle_health),
                web.get("/metrics", _handle_metrics),
                web.get("/nodes", self._handle_nodes),
                web.get("/nodes/{node}", self._handle_node),
                web.post("/nodes/{node}/start", self._handle_start),
                web.post("/nodes/{node}/stop", self._handle_stop),
                web.post("/nodes/{node}/conn/{peer}", self._handle_connect),
                web.delete("/nodes/{node}/conn/{peer}", self._handle_disconnect),
                web.get("/conns", self._handle_conns),
                web.get("/events", self._handle_events),
            ]
        )
        return app

    async def start(self) -> None:
        """Start the server in the background."""
        if not self.config.enabled:
            logger.info("Simulation server is disabled")
            return

        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await self._site.start()

        logger.info("Simulation server listening on %s:%d", self.config.host, self.config.port)

    async def run(self) -> None:
        """
        Run the server until shutdown.

        This method blocks until stop() is called.
        """
        await self.start()

        while self._runner is not None:
            await asyncio.sleep(1)

    def stop(self) -> None:
        """Request graceful shutdown."""
        if self._runner is not None:
            asyncio.create_task(self._async_stop())

    async def _async_stop(self) -> None:
        """Gracefully stop the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.info("Simulation server stopped")

    def _node(self, request: web.Request, key: str = "node") -> AdapterNode:
        ref = request.match_info[key]
        node = self.network.find_node(ref)
        if node is None:
            raise web.HTTPNotFound(reason=f"Unknown node {ref}")
        return node

    async def _handle_nodes(self, _request: web.Request) -> web.Response:
        network = self.network
        infos = await asyncio.to_thread(lambda: [node.info() for node in network.nodes()])
        return web.json_response(infos)

    async def _handle_node(self, request: web.Request) -> web.Response:
        node = self._node(request)
        return web.json_response(await asyncio.to_thread(node.info))

    async def _handle_start(self, request: web.Request) -> web.Response:
        node = self._node(request)
        try:
            await asyncio.to_thread(self.network.start, node.id)
        except NodeStateError as e:
            return _error(409, e)
        except SimulatorError as e:
            logger.error("Failed to start node %s: %s", node.config.name, e)
            return _error(500, e)
        return web.json_response(await asyncio.to_thread(node.info))

    async def _handle_stop(self, request: web.Request) -> web.Response:
        node = self._node(request)
        try:
            await asyncio.to_thread(self.network.stop, node.id)
        except NodeStateError as e:
            return _error(409, e)
        return web.json_response(await asyncio.to_thread(node.info))

    async def _handle_connect(self, request: web.Request) -> web.Response:
        one, other = self._node(request), self._node(request, "peer")
        try:
            await asyncio.to_thread(self.network.connect, one.id, other.id)
        except SimulatorError as e:
            return _error(409, e)
        conn = self.network.get_conn(one.id, other.id)
        assert conn is not None
        return web.json_response(conn.to_json())

    async def _handle_disconnect(self, request: web.Request) -> web.Response:
        one, other = self._node(request), self._node(request, "peer")
        try:
            await asyncio.to_thread(self.network.disconnect, one.id, other.id)
        except ConnectionStateError as e:
            return _error(409, e)
        return web.json_response({"one": one.id, "other": other.id, "up": False})

    async def _handle_conns(self, _request: web.Request) -> web.Response:
        return web.json_response([conn.to_json() for conn in self.network.conns()])

    async def _handle_events(self, _request: web.Request) -> web.Response:
        return web.json_response([event.to_json() for event in self.network.events()])
