"""
Cluster Controller.

Turns a `ClusterConfig` into a network of light clients and servers and
drives it: start, stop, connect and disconnect. Every public operation
holds a reader/writer lock for its whole body, so the cluster can be
shared between threads. Operations are coarse: they act on the whole
topology at once.

Construction order matters. Servers are created first, then clients, each
in configuration order, and explicit connections refer to them by that
position.
"""

from __future__ import annotations

import logging
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator, model_validator
from typing_extensions import Self

from les_sim.chain import BootstrapResult, SystemContracts, build_bootstrap
from les_sim.chain.config import DEFAULT_CHAIN_ID
from les_sim.chain.genesis import restore_hex_keys
from les_sim.metrics import cluster_operation_time
from les_sim.node import Role
from les_sim.signer import SignerConfig, SignerDaemon
from les_sim.types import Address, FrozenModel, InvalidConnectionIndexError, SimulatorError

from .adapters import AdapterKind, AdapterNode, NodeConfig, create_adapter, resolve_kind
from .network import Network
from .rwlock import ReadWriteLock
from .services import (
    ClientServiceConfig,
    LesClientService,
    LesServerService,
    ServerServiceConfig,
    new_client_service,
    new_server_service,
)
from .topology import Conn, full_bipartite, full_mesh

logger = logging.getLogger(__name__)


def server_lifecycle(index: int) -> str:
    """Lifecycle (and node) name of the server at `index`."""
    return f"les-server-{index}"


def client_lifecycle(index: int) -> str:
    """Lifecycle (and node) name of the client at `index`."""
    return f"les-client-{index}"


class ClusterConfig(FrozenModel):
    """
    Everything needed to build a cluster.

    Immutable once constructed. Can be loaded from YAML::

        adapter: sim
        blocks: 10
        deployPaymentContract: true
        serverConfigs:
          - lightServ: 100
            lightPeers: 50
        clientConfigs:
          - {}
        conns: [[0, 0]]
    """

    adapter: str = AdapterKind.SIM.value
    """Adapter kind: "sim" / "in-process" or "exec" / "subprocess"."""

    client_configs: tuple[ClientServiceConfig, ...] = ()
    """One entry per client, in node order."""

    server_configs: tuple[ServerServiceConfig, ...] = ()
    """One entry per server, in node order. Server 0 produces blocks."""

    conns: tuple[Conn, ...] | None = None
    """Explicit client-to-server connections. None means every client to every server."""

    chain_id: int = Field(default=DEFAULT_CHAIN_ID, gt=0)
    """Chain id of the bootstrap genesis."""

    blocks: int = Field(default=0, ge=0)
    """Length of the pre-generated chain. Zero means genesis only."""

    deploy_payment_contract: bool = False
    """Whether the bootstrap chain deploys the payment contract."""

    deploy_oracle_contract: bool = False
    """Whether the bootstrap chain deploys the checkpoint oracle."""

    prefunds: dict[Address, int] = Field(default_factory=dict)
    """Extra genesis balances in wei."""

    keystore_path: str = ""
    """Keystore the signing daemons manage."""

    signer_enabled: bool = False
    """Whether every node gets its own signing daemon."""

    signing_rule: str = ""
    """Rule script handed to the signing daemons."""

    base_dir: str = ""
    """Working directory for signers and subprocess nodes. Empty means temporary directories."""

    @field_validator("prefunds", mode="before")
    @classmethod
    def parse_prefund_keys(cls, v: Any) -> Any:
        """YAML may have turned the addresses into integers."""
        return restore_hex_keys(v)

    @field_validator("conns", mode="before")
    @classmethod
    def parse_conns(cls, v: Any) -> Any:
        """Accept `{client, server}` mappings besides pairs."""
        if v is None:
            return v
        return [
            (item["client"], item["server"]) if isinstance(item, dict) else item for item in v
        ]

    @model_validator(mode="after")
    def check_cluster(self) -> Self:
        """A cluster needs nodes, and signers need a keystore."""
        if not self.client_configs and not self.server_configs:
            raise ValueError("cluster needs at least one client or server")
        if self.signer_enabled and not self.keystore_path:
            raise ValueError("signer enabled without a keystore path")
        return self

    @classmethod
    def from_yaml(cls, content: str) -> ClusterConfig:
        """Load a cluster config from a YAML string."""
        return cls.model_validate(yaml.safe_load(content) or {})

    @classmethod
    def from_yaml_file(cls, path: Path | str) -> ClusterConfig:
        """
        Load a cluster config from a YAML file.

        Raises:
            FileNotFoundError: If the file does not exist.
            yaml.YAMLError: If the file is not valid YAML.
            pydantic.ValidationError: If the data fails validation.
        """
        with Path(path).open(encoding="utf-8") as f:
            return cls.model_validate(yaml.safe_load(f) or {})


@dataclass(frozen=True, slots=True)
class ClusterNode:
    """A node owned by the cluster, with the signing daemon bound to it."""

    index: int
    """Position among the nodes of the same role."""

    role: Role
    node: AdapterNode
    signer: SignerDaemon | None = None

    @property
    def id(self) -> str:
        """Node id."""
        return self.node.config.id

    @property
    def name(self) -> str:
        """Node name."""
        return self.node.config.name

    @property
    def external_signer(self) -> str | None:
        """Signing daemon endpoint, if any."""
        return self.signer.endpoint if self.signer is not None else None


@contextmanager
def _timed(operation: str) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        cluster_operation_time.labels(operation=operation).observe(time.perf_counter() - start)


class Cluster:
    """
    A network of light clients and servers built from a `ClusterConfig`.

    Construction builds the bootstrap chain, one service constructor per
    node, the adapter, the network graph and every node. Nothing is
    started. Server 0 is the only block producer.
    """

    def __init__(self, config: ClusterConfig) -> None:
        self._lock = ReadWriteLock()
        self.config = config
        self.servers: tuple[ClusterNode, ...] = ()
        self.clients: tuple[ClusterNode, ...] = ()

        with _timed("create"):
            self._bootstrap = build_bootstrap(
                chain_id=config.chain_id,
                blocks=config.blocks,
                deploy_payment_contract=config.deploy_payment_contract,
                deploy_oracle_contract=config.deploy_oracle_contract,
                prefunds=config.prefunds,
            )
            blockchain = self._bootstrap.blockchain

            constructors: dict[str, LesClientService | LesServerService] = {}
            for index, server in enumerate(config.server_configs):
                constructors[server_lifecycle(index)] = new_server_service(
                    server, blockchain, mining=index == 0
                )
            for index, client in enumerate(config.client_configs):
                constructors[client_lifecycle(index)] = new_client_service(client, blockchain)

            kind = resolve_kind(config.adapter)
            adapter_dir = Path(config.base_dir) / "nodes" if config.base_dir else None
            self._network = Network(create_adapter(kind, constructors, adapter_dir))

            signers: list[SignerDaemon] = []
            try:
                servers: list[ClusterNode] = []
                for index, server in enumerate(config.server_configs):
                    signer = self._new_signer("server", index, server.payment_address)
                    if signer is not None:
                        signers.append(signer)
                    servers.append(
                        self._new_node(Role.SERVER, index, server_lifecycle(index), server, signer)
                    )
                clients: list[ClusterNode] = []
                for index, client in enumerate(config.client_configs):
                    signer = self._new_signer("client", index, client.payment_address)
                    if signer is not None:
                        signers.append(signer)
                    clients.append(
                        self._new_node(Role.CLIENT, index, client_lifecycle(index), client, signer)
                    )
            except Exception:
                for signer in signers:
                    signer.stop()
                self._network.adapter.close()
                raise

        self.servers = tuple(servers)
        self.clients = tuple(clients)
        logger.info(
            "Created cluster (adapter=%s, servers=%d, clients=%d, genesis=%s)",
            kind,
            len(self.servers),
            len(self.clients),
            self._bootstrap.contracts.genesis_hash,
        )

    def _new_signer(self, role: str, index: int, account: Address) -> SignerDaemon | None:
        if not self.config.signer_enabled:
            return None
        if self.config.base_dir:
            directory = Path(self.config.base_dir) / f"{role}-signer-{index}"
            directory.mkdir(parents=True, exist_ok=True)
        else:
            directory = Path(tempfile.mkdtemp(prefix=f"{role}-signer-{index}-"))
        return SignerDaemon(
            SignerConfig(
                dir=directory,
                keystore=self.config.keystore_path,
                chain_id=self.config.chain_id,
                rules=self.config.signing_rule.encode(),
                accounts={account: ""},
            )
        )

    def _new_node(
        self,
        role: Role,
        index: int,
        lifecycle: str,
        service: ClientServiceConfig | ServerServiceConfig,
        signer: SignerDaemon | None,
    ) -> ClusterNode:
        config = NodeConfig.random(
            name=lifecycle,
            lifecycles=(lifecycle,),
            properties=(str(role),),
            external_signer=signer.endpoint if signer is not None else None,
            log_file=service.log_file,
            log_level=service.log_level,
        )
        node = self._network.new_node(config)
        return ClusterNode(index=index, role=role, node=node, signer=signer)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def network(self) -> Network:
        """The network graph, for inspection or an HTTP surface."""
        with self._lock.read():
            return self._network

    @property
    def bootstrap(self) -> BootstrapResult:
        """Bootstrap chain and system contracts."""
        with self._lock.read():
            return self._bootstrap

    @property
    def contracts(self) -> SystemContracts:
        """System contracts deployed in the bootstrap chain."""
        with self._lock.read():
            return self._bootstrap.contracts

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start_nodes(self) -> None:
        """
        Start every server, then every client.

        Raises:
            NodeStateError: If a node is already running.
            ConstructionError: If a node's service cannot be built.
        """
        with self._lock.write(), _timed("start"):
            for server in self.servers:
                self._network.start(server.id)
            logger.info("Started all servers")
            for client in self.clients:
                self._network.start(client.id)
            logger.info("Started all clients")

    def stop_nodes(self) -> None:
        """
        Stop every server, then every client, and their signing daemons.

        Best effort: failures are logged and the remaining nodes are
        still stopped.
        """
        with self._lock.write(), _timed("stop"):
            for member in self.servers + self.clients:
                if member.node.running:
                    try:
                        self._network.stop(member.id)
                    except SimulatorError as e:
                        logger.warning("Failed to stop %s: %s", member.name, e)
                if member.signer is not None:
                    member.signer.stop()
            logger.info("Stopped all nodes")

    # -------------------------------------------------------------------------
    # Topology
    # -------------------------------------------------------------------------

    def _client_server_pairs(self) -> Iterator[tuple[int, int]]:
        """
        Client-server pairs to link, validated one at a time.

        Raises:
            InvalidConnectionIndexError: On the first explicit connection
                naming a node that does not exist.
        """
        if self.config.conns is None:
            yield from full_bipartite(len(self.clients), len(self.servers))
            return
        for conn in self.config.conns:
            if not 0 <= conn.client < len(self.clients):
                raise InvalidConnectionIndexError("client", conn.client, len(self.clients))
            if not 0 <= conn.server < len(self.servers):
                raise InvalidConnectionIndexError("server", conn.server, len(self.servers))
            yield conn.client, conn.server

    def connect(self) -> None:
        """
        Establish the configured topology plus the full server mesh.

        Stops at the first failure. Connections made before it stay up.

        Raises:
            InvalidConnectionIndexError: If an explicit connection is out of range.
            ConnectionStateError: If a pair is already connected or a node is down.
            PeerRejectedError: If a node refuses a peer.
        """
        with self._lock.write(), _timed("connect"):
            for cid, sid in self._client_server_pairs():
                client, server = self.clients[cid], self.servers[sid]
                try:
                    self._network.connect(client.id, server.id)
                except SimulatorError as e:
                    logger.error(
                        "Failed to establish the connection (from=%s, to=%s): %s",
                        client.name,
                        server.name,
                        e,
                    )
                    raise
                logger.info("Setup the connection client=%d server=%d", cid, sid)
            for i, j in full_mesh(len(self.servers)):
                self._network.connect(self.servers[i].id, self.servers[j].id)
                logger.info("Setup the server-to-server connection from=%d to=%d", i, j)

    def disconnect(self) -> None:
        """
        Remove the configured topology plus the full server mesh.

        Stops at the first failure. Connections removed before it stay down.

        Raises:
            InvalidConnectionIndexError: If an explicit connection is out of range.
            ConnectionStateError: If a pair is not connected.
        """
        with self._lock.write(), _timed("disconnect"):
            for cid, sid in self._client_server_pairs():
                self._network.disconnect(self.clients[cid].id, self.servers[sid].id)
                logger.debug("Removed the connection client=%d server=%d", cid, sid)
            for i, j in full_mesh(len(self.servers)):
                self._network.disconnect(self.servers[i].id, self.servers[j].id)
                logger.debug("Removed the server-to-server connection from=%d to=%d", i, j)

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Stop everything and release the adapter."""
        self.stop_nodes()
        with self._lock.write():
            self._network.shutdown()

    def __enter__(self) -> Cluster:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
