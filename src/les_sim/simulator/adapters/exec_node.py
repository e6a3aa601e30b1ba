"""
Entry point of a subprocess node.

Usage::

    python -m les_sim.simulator.adapters.exec_node --host 127.0.0.1 --port 0

The parent writes one JSON document to stdin::

    {"node": <NodeConfig.to_json()>, "service": <serialized constructor>}

The child builds and starts the service, opens its control server and
prints ``READY <url>`` on stdout. If the service cannot be built it prints
``ERROR <message>`` and exits with status 1.

Control routes:

- GET /info, /chain/head, /chain/headers?start=N, /chain/blocks?start=N
- POST /chain/announce, /peers (body: {"url": ...}), /shutdown
- DELETE /peers/{id}
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Any

from aiohttp import web

from les_sim.chain import Block
from les_sim.node import NodeService
from les_sim.simulator.services import SERVICE_CONSTRUCTOR
from les_sim.types import PeerRejectedError, SimulatorError

from .base import ERROR_PREFIX, READY_PREFIX, NodeConfig
from .remote import RemotePeer

logger = logging.getLogger(__name__)


def _error_response(e: SimulatorError) -> web.Response:
    status = 409 if isinstance(e, PeerRejectedError) else 502
    return web.json_response({"error": e.message, "type": type(e).__name__}, status=status)


def _start_number(request: web.Request) -> int:
    try:
        return int(request.query.get("start", "0"))
    except ValueError:
        raise web.HTTPBadRequest(reason="start must be an integer") from None


class ControlServer:
    """aiohttp front of a single service."""

    def __init__(self, service: NodeService) -> None:
        self.service = service
        self.shutdown = asyncio.Event()

    def routes(self) -> list[web.RouteDef]:
        return [
            web.get("/info", self._handle_info),
            web.get("/chain/head", self._handle_head),
            web.get("/chain/headers", self._handle_headers),
            web.get("/chain/blocks", self._handle_blocks),
            web.post("/chain/announce", self._handle_announce),
            web.post("/peers", self._handle_add_peer),
            web.delete("/peers/{peer_id}", self._handle_remove_peer),
            web.post("/shutdown", self._handle_shutdown),
        ]

    async def _handle_info(self, _request: web.Request) -> web.Response:
        return web.json_response(self.service.info())

    async def _handle_head(self, _request: web.Request) -> web.Response:
        return web.json_response(self.service.store.head.model_dump(mode="json", by_alias=True))

    async def _handle_headers(self, request: web.Request) -> web.Response:
        headers = self.service.store.headers_from(_start_number(request))
        return web.json_response([h.model_dump(mode="json", by_alias=True) for h in headers])

    async def _handle_blocks(self, request: web.Request) -> web.Response:
        blocks = self.service.store.blocks_from(_start_number(request))
        return web.json_response([b.model_dump(mode="json", by_alias=True) for b in blocks])

    async def _handle_announce(self, request: web.Request) -> web.Response:
        body: dict[str, Any] = await request.json()
        block = Block.model_validate(body["block"])
        # Import may call back into the announcing node.
        await asyncio.to_thread(self.service.on_announce, block, body["origin"])
        return web.json_response({"ok": True})

    async def _handle_add_peer(self, request: web.Request) -> web.Response:
        body: dict[str, Any] = await request.json()
        peer = RemotePeer(body["url"])
        try:
            await asyncio.to_thread(self.service.add_peer, peer)
        except SimulatorError as e:
            peer.close()
            return _error_response(e)
        return web.json_response({"ok": True})

    async def _handle_remove_peer(self, request: web.Request) -> web.Response:
        removed = self.service.remove_peer(request.match_info["peer_id"])
        return web.json_response({"removed": removed})

    async def _handle_shutdown(self, _request: web.Request) -> web.Response:
        self.shutdown.set()
        return web.json_response({"ok": True})


async def serve(service: NodeService, host: str, port: int) -> None:
    """Run the control server until shutdown is requested."""
    control = ControlServer(service)
    app = web.Application()
    app.add_routes(control.routes())

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()

    bound_host, bound_port = runner.addresses[0][:2]
    print(f"{READY_PREFIX}http://{bound_host}:{bound_port}", flush=True)
    logger.info("Control server listening on %s:%d", bound_host, bound_port)

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGTERM, control.shutdown.set)

    try:
        await control.shutdown.wait()
    finally:
        await asyncio.to_thread(service.stop)
        await runner.cleanup()
        logger.info("Node %s shut down", service.ctx.name)


def setup_node_logging(config: NodeConfig) -> None:
    """Send the node's log to its log file (or stderr) at its level."""
    handler: logging.Handler
    if config.log_file:
        handler = logging.FileHandler(config.log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            f"%(asctime)s %(levelname)-8s [{config.name}] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root = logging.getLogger()
    root.setLevel(config.log_level)
    root.addHandler(handler)


def main(argv: list[str] | None = None) -> int:
    """Child process entry point."""
    parser = argparse.ArgumentParser(description="Subprocess simulation node")
    parser.add_argument("--host", default="127.0.0.1", help="Control server host")
    parser.add_argument("--port", type=int, default=0, help="Control server port (0 = any)")
    args = parser.parse_args(argv)

    payload = json.load(sys.stdin)
    config = NodeConfig.from_json(payload["node"])
    setup_node_logging(config)

    try:
        constructor = SERVICE_CONSTRUCTOR.validate_python(payload["service"])
        service = constructor.create(config.context())
        service.start()
    except (SimulatorError, ValueError) as e:
        logger.error("Failed to start node %s: %s", config.name, e)
        print(f"{ERROR_PREFIX}{' '.join(str(e).split())}", flush=True)
        return 1

    asyncio.run(serve(service, args.host, args.port))
    return 0


if __name__ == "__main__":
    sys.exit(main())
