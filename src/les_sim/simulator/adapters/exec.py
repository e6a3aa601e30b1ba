"""
Subprocess adapter: one child process per node.

Starting a node launches ``python -m les_sim.simulator.adapters.exec_node``,
feeds it the serialized constructor and node config on stdin and waits for
the ``READY <url>`` line. From then on the node is driven through its
control server with httpx.
"""

from __future__ import annotations

import json
import logging
import os
import queue
import shutil
import subprocess
import sys
import tempfile
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import IO, Any, Final

import httpx

from les_sim.config import LES_SIM_ENV
from les_sim.node import Peer
from les_sim.simulator.services import SERVICE_CONSTRUCTOR, LesClientService, LesServerService
from les_sim.types import ConfigurationError, ConstructionError, NodeStateError

from .base import (
    ERROR_PREFIX,
    READY_PREFIX,
    AdapterKind,
    LifecycleConstructor,
    NodeConfig,
    base_info,
    lookup_constructor,
)
from .remote import DEFAULT_TIMEOUT, RemoteNodeError, RemotePeer, raise_for_error

logger = logging.getLogger(__name__)

NODE_MODULE: Final = "les_sim.simulator.adapters.exec_node"
"""Module run by every child process."""

START_TIMEOUT: Final = 20.0 if LES_SIM_ENV == "test" else 60.0
"""Seconds to wait for a child to report its control server."""

STOP_TIMEOUT: Final = 5.0
"""Seconds to wait for a child to exit before escalating."""


def _pump_lines(stream: IO[str], lines: queue.Queue[str | None]) -> None:
    for line in stream:
        lines.put(line.rstrip("\n"))
    lines.put(None)


class ExecNode:
    """A node running in its own Python process."""

    def __init__(
        self,
        config: NodeConfig,
        constructor: LesClientService | LesServerService,
        directory: Path,
    ) -> None:
        self.config = config
        self.constructor = constructor
        self.directory = directory
        self.url: str | None = None
        self._process: subprocess.Popen[str] | None = None
        self._client: httpx.Client | None = None
        self._lock = threading.Lock()

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def start(self) -> None:
        with self._lock:
            if self.running:
                raise NodeStateError(f"node {self.config.name} already running")
            self._launch()
        logger.debug("Started subprocess node %s at %s", self.config.name, self.url)

    def _launch(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        config = self.config
        if not config.log_file:
            config = NodeConfig(
                id=config.id,
                name=config.name,
                lifecycles=config.lifecycles,
                properties=config.properties,
                external_signer=config.external_signer,
                log_file=str(self.directory / "node.log"),
                log_level=config.log_level,
            )
        service = SERVICE_CONSTRUCTOR.dump_python(self.constructor, mode="json", by_alias=True)
        payload = {"node": config.to_json(), "service": service}

        stderr = (self.directory / "stderr.log").open("ab")
        try:
            process = subprocess.Popen(
                [sys.executable, "-m", NODE_MODULE, "--host", "127.0.0.1", "--port", "0"],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=stderr,
                cwd=self.directory,
                env={**os.environ, "LES_SIM_ENV": LES_SIM_ENV},
                text=True,
            )
        except OSError as e:
            raise ConstructionError(f"cannot launch node {self.config.name}: {e}") from e
        finally:
            stderr.close()

        assert process.stdin is not None and process.stdout is not None
        process.stdin.write(json.dumps(payload))
        process.stdin.close()

        lines: queue.Queue[str | None] = queue.Queue()
        threading.Thread(
            target=_pump_lines,
            args=(process.stdout, lines),
            name=f"stdout-{self.config.name}",
            daemon=True,
        ).start()

        try:
            url = self._await_ready(lines)
        except ConstructionError:
            self._reap(process)
            raise

        self._process = process
        self.url = url
        self._client = httpx.Client(base_url=url, timeout=DEFAULT_TIMEOUT)

    def _await_ready(self, lines: queue.Queue[str | None]) -> str:
        while True:
            try:
                line = lines.get(timeout=START_TIMEOUT)
            except queue.Empty:
                raise ConstructionError(
                    f"node {self.config.name} not ready after {START_TIMEOUT:.0f}s"
                ) from None
            if line is None:
                raise ConstructionError(
                    f"node {self.config.name} exited during start-up, see {self.directory}"
                )
            if line.startswith(READY_PREFIX):
                return line.removeprefix(READY_PREFIX).strip()
            if line.startswith(ERROR_PREFIX):
                raise ConstructionError(line.removeprefix(ERROR_PREFIX))

    def _reap(self, process: subprocess.Popen[str]) -> None:
        if process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=STOP_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning("Node %s ignored SIGTERM, killing it", self.config.name)
            process.kill()
            process.wait()

    def stop(self) -> None:
        with self._lock:
            process = self._process
            if process is None or process.poll() is not None:
                raise NodeStateError(f"node {self.config.name} not running")
            try:
                self._request("POST", "/shutdown")
                process.wait(timeout=STOP_TIMEOUT)
            except (RemoteNodeError, subprocess.TimeoutExpired) as e:
                logger.warning("Node %s did not shut down cleanly: %s", self.config.name, e)
                self._reap(process)
            finally:
                self._close_client()
                self._process = None
        logger.debug("Stopped subprocess node %s", self.config.name)

    def _close_client(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if self._client is None:
            raise NodeStateError(f"node {self.config.name} not running")
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise RemoteNodeError(f"network error talking to {self.config.name}: {e}") from e
        raise_for_error(response)
        return response.json()

    def peer(self) -> Peer:
        if not self.running or self.url is None:
            raise NodeStateError(f"node {self.config.name} not running")
        return RemotePeer(self.url)

    def add_peer(self, peer: Peer) -> None:
        if not isinstance(peer, RemotePeer):
            raise NodeStateError("subprocess nodes can only peer with subprocess nodes")
        self._request("POST", "/peers", json={"url": peer.url})
        peer.close()

    def remove_peer(self, peer_id: str) -> bool:
        if not self.running:
            return False
        return bool(self._request("DELETE", f"/peers/{peer_id}")["removed"])

    def info(self) -> dict[str, Any]:
        status = base_info(self.config, self.running)
        if self.running:
            status.update(self._request("GET", "/info"))
            status["url"] = self.url
        return status


class ExecAdapter:
    """Creates subprocess nodes. Each node gets a directory under `base_dir`."""

    kind = AdapterKind.EXEC

    def __init__(
        self,
        constructors: Mapping[str, LifecycleConstructor],
        base_dir: Path | str | None = None,
    ) -> None:
        self.constructors = dict(constructors)
        self._owns_dir = base_dir is None
        if base_dir is None:
            base_dir = tempfile.mkdtemp(prefix="les-sim-")
        self.base_dir = Path(base_dir)

    def new_node(self, config: NodeConfig) -> ExecNode:
        constructor = lookup_constructor(self.constructors, config)
        if not isinstance(constructor, (LesClientService, LesServerService)):
            raise ConfigurationError(
                f"lifecycle of node {config.name} cannot be shipped to a subprocess"
            )
        return ExecNode(config, constructor, self.base_dir / config.id[:16])

    def close(self) -> None:
        """Remove the node directories if the adapter created them."""
        if self._owns_dir:
            shutil.rmtree(self.base_dir, ignore_errors=True)
