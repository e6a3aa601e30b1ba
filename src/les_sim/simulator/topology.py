"""
Topology description language.

A topology is a comma-separated list of instructions ``<from>-><to>``:

- ``<from>`` is ``c<N>``, ``C<N>`` or ``*`` (every client),
- ``<to>`` is ``s<N>``, ``S<N>`` or ``*`` (every server).

Example: ``"c0->s1, *->s0"`` connects client 0 to server 1 and every client
to server 0.

Parsing is permissive: an instruction that is malformed or refers to a node
outside the configured counts is dropped, and parsing continues. Pass
``strict=True`` to raise `TopologyError` instead.

The module also provides the canonical shapes used between servers.
"""

from __future__ import annotations

import re
from typing import Final, NamedTuple

from les_sim.types import TopologyError

ARROW: Final = "->"
"""Separator between the two sides of an instruction."""

WILDCARD: Final = "*"
"""Stands for every index of a role."""

_INDEX_RE: Final = re.compile(r"[+-]?[0-9]+")
"""Base-10 integer with an optional sign. Range is checked separately."""


class Conn(NamedTuple):
    """A client-to-server connection, by position in the cluster configuration."""

    client: int
    """Index into the configured clients."""

    server: int
    """Index into the configured servers."""


def _resolve(side: str, prefixes: str, count: int) -> int | None:
    """
    Resolve one side of an instruction.

    Returns:
        -1 for the wildcard, the index for a valid reference, None otherwise.
    """
    if side == WILDCARD:
        return -1
    if not side or side[0] not in prefixes:
        return None
    digits = side[1:]
    if _INDEX_RE.fullmatch(digits) is None:
        return None
    try:
        index = int(digits)
    except ValueError:
        # Past the interpreter's integer string conversion limit.
        return None
    if not 0 <= index < count:
        return None
    return index


def parse_topology(
    spec: str,
    client_count: int,
    server_count: int,
    *,
    strict: bool = False,
) -> list[Conn]:
    """
    Compile a topology string into connections.

    Instructions expand in the order they appear:

    1. ``c<i>->s<j>`` gives one connection.
    2. ``*->*`` gives every pair, clients outer, servers inner.
    3. ``*->s<j>`` gives every client to server ``j``.
    4. ``c<i>->*`` gives client ``i`` to every server.

    Duplicates produced by overlapping instructions are kept.

    Args:
        spec: The topology string.
        client_count: Number of configured clients.
        server_count: Number of configured servers.
        strict: Raise on invalid instructions instead of dropping them.

    Returns:
        The connections, possibly empty.

    Raises:
        TopologyError: In strict mode, on the first invalid instruction.
    """
    conns: list[Conn] = []
    for raw in spec.split(","):
        token = raw.strip()
        if not token:
            continue

        parts = token.split(ARROW)
        if len(parts) != 2:
            if strict:
                raise TopologyError(token, f"expected exactly one {ARROW!r}")
            continue

        # The halves are not trimmed: "c1 -> s2" is malformed.
        src = _resolve(parts[0], "cC", client_count)
        if src is None:
            if strict:
                raise TopologyError(token, f"invalid client reference {parts[0]!r}")
            continue
        dst = _resolve(parts[1], "sS", server_count)
        if dst is None:
            if strict:
                raise TopologyError(token, f"invalid server reference {parts[1]!r}")
            continue

        if src != -1 and dst != -1:
            conns.append(Conn(src, dst))
        elif src == -1 and dst == -1:
            conns.extend(Conn(c, s) for c in range(client_count) for s in range(server_count))
        elif src == -1:
            conns.extend(Conn(c, dst) for c in range(client_count))
        else:
            conns.extend(Conn(src, s) for s in range(server_count))
    return conns


def format_topology(conns: list[Conn]) -> str:
    """Render connections as a topology string that parses back to them."""
    return ",".join(f"c{conn.client}->s{conn.server}" for conn in conns)


def full_bipartite(client_count: int, server_count: int) -> list[Conn]:
    """
    Every client to every server, client-major.

    Same as parsing ``"*->*"``.
    """
    return [Conn(c, s) for c in range(client_count) for s in range(server_count)]


def full_mesh(n: int) -> list[tuple[int, int]]:
    """
    Every distinct unordered pair of `n` nodes, once.

    Creates n*(n-1)/2 pairs, ordered by first then second index.

    Returns:
        List of (i, j) index pairs with i < j.
    """
    pairs: list[tuple[int, int]] = []
    for i in range(n):
        for j in range(i + 1, n):
            pairs.append((i, j))
    return pairs
