"""
Service Factory.

Each configured node gets a service constructor: a small value holding the
node's role settings plus the shared bootstrap chain, with a `create`
method the node adapter calls to build the protocol stack. Adapters may
call it any number of times; every call builds a fresh service.

Constructors are pydantic models so the subprocess adapter can ship them
to a child process as JSON and rebuild them there.
"""

from __future__ import annotations

import logging
from typing import Annotated, Final, Literal

from pydantic import Field, TypeAdapter, field_validator

from les_sim.chain import BlockchainConfig, ChainStore
from les_sim.node import FullNode, LightClient, LightServerConfig, ServiceContext
from les_sim.signer import AccountManager
from les_sim.types import Address, ConstructionError, FrozenModel, SignerError

logger = logging.getLogger(__name__)

CLIENT_SERVICE: Final = "les-client"
"""Kind tag of light client constructors."""

SERVER_SERVICE: Final = "les-server"
"""Kind tag of full node constructors."""

DEFAULT_LIGHT_SERV: Final = 100
"""Default serving capacity, in percent of one core."""

DEFAULT_LIGHT_PEERS: Final = 50
"""Default maximum number of light clients per server."""


class _NodeLogConfig(FrozenModel):
    log_file: str = ""
    """File the node logs to. Empty means the process default."""

    log_level: str = "INFO"
    """Logging level name for the node."""

    @field_validator("log_level")
    @classmethod
    def check_level(cls, v: str) -> str:
        """Only standard logging level names are accepted."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {v!r}")
        return level


class ClientServiceConfig(_NodeLogConfig):
    """Settings of a light client."""

    service_pay: bool = False
    """Whether the client pays servers for service."""

    payment_address: Address = Field(default_factory=Address.zero)
    """Account the client pays from."""

    trusted_servers: tuple[str, ...] = ()
    """Servers (node ids or names) whose checkpoints the client trusts."""

    trusted_fraction: int = Field(default=0, ge=0, le=100)
    """Percentage of trusted servers that must be connected to accept checkpoints."""


class ServerServiceConfig(_NodeLogConfig):
    """Settings of a full node with the light server extension."""

    service_charge: bool = False
    """Whether the server charges clients for service."""

    payment_address: Address = Field(default_factory=Address.zero)
    """Account receiving payments."""

    light_serv: int = Field(default=DEFAULT_LIGHT_SERV, ge=0)
    """Serving capacity in percent of one core. Zero disables light serving."""

    light_peers: int = Field(default=DEFAULT_LIGHT_PEERS, ge=0)
    """Maximum number of light clients served at once."""


def _account_manager(ctx: ServiceContext) -> AccountManager | None:
    if ctx.external_signer is None:
        return None
    try:
        return AccountManager.connect(ctx.external_signer)
    except SignerError as e:
        raise ConstructionError(f"{ctx.name}: external signer unavailable: {e}") from e


class LesClientService(FrozenModel):
    """Constructor of a light-sync node."""

    kind: Literal["les-client"] = CLIENT_SERVICE
    config: ClientServiceConfig = Field(default_factory=ClientServiceConfig)
    blockchain: BlockchainConfig = Field(default_factory=BlockchainConfig)

    def create(self, ctx: ServiceContext) -> LightClient:
        """
        Build the light client and import the bootstrap headers.

        Raises:
            ConstructionError: If the signer is unreachable or the bootstrap
                headers do not link to genesis.
        """
        store = ChainStore.from_genesis(self.blockchain.resolved_genesis(), full=False)
        if self.blockchain.chain:
            store.insert_header_chain(block.header for block in self.blockchain.chain)

        service = LightClient(
            ctx=ctx,
            store=store,
            account_manager=_account_manager(ctx),
            service_pay=self.config.service_pay,
            payment_address=self.config.payment_address,
            trusted_servers=self.config.trusted_servers,
            trusted_fraction=self.config.trusted_fraction,
        )
        logger.debug("Created light client %s at #%d", ctx.name, store.height)
        return service


class LesServerService(FrozenModel):
    """Constructor of a full-sync node serving light clients."""

    kind: Literal["les-server"] = SERVER_SERVICE
    config: ServerServiceConfig = Field(default_factory=ServerServiceConfig)
    blockchain: BlockchainConfig = Field(default_factory=BlockchainConfig)

    mining: bool = False
    """Whether the node produces blocks once started."""

    def create(self, ctx: ServiceContext) -> FullNode:
        """
        Build the full node and import the bootstrap blocks.

        Raises:
            ConstructionError: If the signer is unreachable or the bootstrap
                blocks do not link to genesis.
        """
        store = ChainStore.from_genesis(self.blockchain.resolved_genesis(), full=True)
        if self.blockchain.chain:
            store.insert_chain(self.blockchain.chain)

        les: LightServerConfig | None = None
        if self.config.light_serv > 0:
            les = LightServerConfig(
                light_serv=self.config.light_serv,
                light_peers=self.config.light_peers,
                service_charge=self.config.service_charge,
                payment_address=self.config.payment_address,
            )

        service = FullNode(
            ctx=ctx,
            store=store,
            account_manager=_account_manager(ctx),
            les=les,
            mining=self.mining,
        )
        logger.debug("Created full node %s at #%d (mining=%s)", ctx.name, store.height, self.mining)
        return service


ServiceConstructor = Annotated[
    LesClientService | LesServerService,
    Field(discriminator="kind"),
]
"""Either constructor, tagged by `kind`."""

SERVICE_CONSTRUCTOR: TypeAdapter[LesClientService | LesServerService] = TypeAdapter(
    ServiceConstructor
)
"""Validates and serializes constructors of either kind."""


def new_client_service(
    config: ClientServiceConfig | None,
    blockchain: BlockchainConfig | None,
) -> LesClientService:
    """Bind a light client constructor to its settings and the bootstrap chain."""
    return LesClientService(
        config=config or ClientServiceConfig(),
        blockchain=blockchain or BlockchainConfig(),
    )


def new_server_service(
    config: ServerServiceConfig | None,
    blockchain: BlockchainConfig | None,
    mining: bool = False,
) -> LesServerService:
    """Bind a full node constructor to its settings and the bootstrap chain."""
    return LesServerService(
        config=config or ServerServiceConfig(),
        blockchain=blockchain or BlockchainConfig(),
        mining=mining,
    )
