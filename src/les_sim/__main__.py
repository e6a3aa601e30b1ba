"""
Cluster simulator CLI entry point.

Build a cluster of light clients and servers, start it, connect it and
serve the live network over HTTP until interrupted.

Usage::

    python -m les_sim --servers 3 --clients 5
    python -m les_sim --servers 2 --clients 4 --routes "c0->s0, c1->*, *->s1"
    python -m les_sim --config cluster.yaml --port 8080

Options:
    --servers              Number of servers (default: 10)
    --clients              Number of clients (default: 10)
    --routes               Topology string (default: every client to every server)
    --strict-routes        Reject invalid topology instructions instead of dropping them
    --adapter              Node adapter: sim or exec (default: sim)
    --blocks               Length of the bootstrap chain (default: 10)
    --config               YAML cluster config (overrides the count and chain flags)
    --host, --port         Simulation server address (default: 0.0.0.0:9999)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from les_sim.api import ApiServerConfig, SimulationServer
from les_sim.simulator import (
    ClientServiceConfig,
    Cluster,
    ClusterConfig,
    ServerServiceConfig,
    parse_topology,
)
from les_sim.types import SimulatorError

logger = logging.getLogger(__name__)


class ColoredFormatter(logging.Formatter):
    """Logging formatter with ANSI colors for better readability."""

    # ANSI color codes
    GREY = "\x1b[38;5;244m"
    BLUE = "\x1b[38;5;39m"
    GREEN = "\x1b[38;5;40m"
    YELLOW = "\x1b[38;5;220m"
    RED = "\x1b[38;5;196m"
    BOLD_RED = "\x1b[38;5;196;1m"
    CYAN = "\x1b[38;5;51m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        timestamp = f"{self.CYAN}{self.formatTime(record, self.datefmt)}{self.RESET}"
        levelname = f"{color}{record.levelname:8}{self.RESET}"
        name = f"{self.BLUE}{record.name}{self.RESET}"
        return f"{timestamp} {levelname} {name}: {record.getMessage()}"


def setup_logging(verbose: bool = False, no_color: bool = False) -> None:
    """Configure logging for the simulator with optional colors."""
    level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    handler.setLevel(level)

    if no_color:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = ColoredFormatter(datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)


def build_config(args: argparse.Namespace) -> ClusterConfig:
    """
    Turn the command line into a cluster config.

    A YAML config wins over the count and chain flags. Routes apply in
    both cases.

    Raises:
        ValueError: If the flags describe an empty cluster.
        TopologyError: If `--strict-routes` is set and a route is invalid.
    """
    if args.config is not None:
        config = ClusterConfig.from_yaml_file(args.config)
    else:
        if args.servers < 0 or args.clients < 0:
            raise ValueError("node counts must not be negative")
        if args.servers == 0 and args.clients == 0:
            raise ValueError("no servers and no clients specified")
        config = ClusterConfig(
            adapter=args.adapter,
            server_configs=tuple(ServerServiceConfig() for _ in range(args.servers)),
            client_configs=tuple(ClientServiceConfig() for _ in range(args.clients)),
            blocks=args.blocks,
            deploy_payment_contract=not args.no_payment_contract,
            deploy_oracle_contract=not args.no_oracle_contract,
        )

    if args.routes:
        conns = parse_topology(
            args.routes,
            len(config.client_configs),
            len(config.server_configs),
            strict=args.strict_routes,
        )
        config = config.model_copy(update={"conns": tuple(conns)})
    return config


async def run_simulation(cluster: Cluster, server_config: ApiServerConfig) -> None:
    """Start the cluster, connect it and serve it until cancelled."""
    logger.info("Starting cluster...")
    await asyncio.to_thread(cluster.start_nodes)

    logger.info("Connecting nodes...")
    try:
        await asyncio.to_thread(cluster.connect)
    except SimulatorError as e:
        # The cluster stays up so the topology can be repaired over HTTP.
        logger.error("Failed to connect the cluster: %s", e)

    server = SimulationServer(config=server_config, network_getter=lambda: cluster.network)
    logger.info(
        "Starting simulation server on %s:%d...",
        server_config.host,
        server_config.port,
    )
    await server.run()


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Light protocol cluster simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--servers", type=int, default=10, help="Number of servers (default: 10)")
    parser.add_argument("--clients", type=int, default=10, help="Number of clients (default: 10)")
    parser.add_argument(
        "--routes",
        default="",
        help='Topology, e.g. "c0->s1, *->s0" (default: every client to every server)',
    )
    parser.add_argument(
        "--strict-routes",
        action="store_true",
        help="Fail on invalid topology instructions instead of dropping them",
    )
    parser.add_argument(
        "--adapter",
        default="sim",
        choices=["sim", "in-process", "exec", "subprocess"],
        help="Node adapter (default: sim)",
    )
    parser.add_argument(
        "--blocks",
        type=int,
        default=10,
        help="Length of the bootstrap chain (default: 10)",
    )
    parser.add_argument(
        "--no-payment-contract",
        action="store_true",
        help="Do not deploy the payment contract in the bootstrap chain",
    )
    parser.add_argument(
        "--no-oracle-contract",
        action="store_true",
        help="Do not deploy the checkpoint oracle in the bootstrap chain",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML cluster config (overrides --servers, --clients, --adapter and chain flags)",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Server host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=9999, help="Server port (default: 9999)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored logging output",
    )

    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.no_color)

    try:
        config = build_config(args)
        cluster = Cluster(config)
    except (OSError, ValueError, SimulatorError) as e:
        logger.error("Failed to create cluster: %s", e)
        return 1

    try:
        asyncio.run(run_simulation(cluster, ApiServerConfig(host=args.host, port=args.port)))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except SimulatorError as e:
        logger.error("Simulation failed: %s", e)
        return 1
    finally:
        cluster.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
