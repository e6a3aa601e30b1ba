"""
HTTP peer handle for subprocess nodes.

Every subprocess node runs a small control server. `RemotePeer` speaks to
it with httpx and implements the `Peer` protocol, so a service inside one
child process can peer with a service inside another exactly as it would
in-process.
"""

from __future__ import annotations

import logging
from functools import cached_property
from typing import Any, Final

import httpx

from les_sim.chain import Block, Header
from les_sim.node import Role
from les_sim.types import Hash32, PeerRejectedError, SimulatorError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT: Final = 10.0
"""Per-request timeout in seconds."""


class RemoteNodeError(SimulatorError):
    """Raised when a subprocess node cannot be reached or answers with a failure."""


def raise_for_error(response: httpx.Response) -> None:
    """
    Map an error response of the control server to a simulator exception.

    Conflicts (409) carry the name of the exception the node raised.
    """
    if response.is_success:
        return
    try:
        payload = response.json()
    except ValueError:
        payload = {"error": response.text[:200]}
    message = payload.get("error", response.reason_phrase)
    if response.status_code == 409 and payload.get("type") == PeerRejectedError.__name__:
        raise PeerRejectedError(message)
    raise RemoteNodeError(f"HTTP {response.status_code}: {message}")


class RemotePeer:
    """A peer reached through its node's control server."""

    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.url = url.rstrip("/")
        self._client = httpx.Client(base_url=self.url, timeout=timeout)

    def _get(self, path: str, **params: Any) -> Any:
        try:
            response = self._client.get(path, params=params or None)
        except httpx.RequestError as e:
            raise RemoteNodeError(f"network error talking to {self.url}: {e}") from e
        raise_for_error(response)
        return response.json()

    @cached_property
    def _identity(self) -> dict[str, Any]:
        return self._get("/info")

    @property
    def peer_id(self) -> str:
        return self._identity["id"]

    @property
    def name(self) -> str:
        return self._identity["name"]

    @property
    def role(self) -> Role:
        return Role(self._identity["role"])

    @property
    def serves_light(self) -> bool:
        return bool(self._identity["servesLight"])

    def genesis_hash(self) -> Hash32:
        return Hash32(self._identity["genesis"])

    def head(self) -> Header:
        return Header.model_validate(self._get("/chain/head"))

    def headers_from(self, number: int) -> list[Header]:
        return [Header.model_validate(h) for h in self._get("/chain/headers", start=number)]

    def blocks_from(self, number: int) -> list[Block]:
        return [Block.model_validate(b) for b in self._get("/chain/blocks", start=number)]

    def announce(self, block: Block, origin: str) -> None:
        body = {"block": block.model_dump(mode="json", by_alias=True), "origin": origin}
        try:
            response = self._client.post("/chain/announce", json=body)
        except httpx.RequestError as e:
            raise RemoteNodeError(f"network error talking to {self.url}: {e}") from e
        raise_for_error(response)

    def close(self) -> None:
        """Release the HTTP connection pool."""
        self._client.close()

    def __repr__(self) -> str:
        return f"RemotePeer({self.url})"
