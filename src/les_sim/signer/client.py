"""
Client side of the signing daemon.

Nodes hold an `AccountManager` backed by a `SignerClient`. Each request
opens a short-lived IPC connection, so a client is safe to share between
threads and survives daemon restarts.
"""

from __future__ import annotations

import json
import socket
from dataclasses import dataclass
from typing import Any

from les_sim.types import Address, SignerError


@dataclass(frozen=True, slots=True)
class SignerClient:
    """Speaks to a signing daemon over its IPC endpoint."""

    endpoint: str
    """Path of the daemon's unix-domain socket."""

    timeout: float = 5.0
    """Per-request socket timeout in seconds."""

    def call(self, method: str, *params: Any) -> Any:
        """
        Issue a single request.

        Raises:
            SignerError: If the daemon is unreachable or answers with an error.
        """
        request = json.dumps({"method": method, "params": list(params)}).encode() + b"\n"
        try:
            with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
                sock.settimeout(self.timeout)
                sock.connect(self.endpoint)
                sock.sendall(request)
                with sock.makefile("rb") as reader:
                    line = reader.readline()
        except OSError as e:
            raise SignerError(f"signer at {self.endpoint} unreachable: {e}") from e

        if not line:
            raise SignerError(f"signer at {self.endpoint} closed the connection")
        response = json.loads(line)
        if "error" in response:
            raise SignerError(response["error"])
        return response["result"]

    def list_accounts(self) -> list[Address]:
        """Accounts managed by the daemon."""
        return [Address(a) for a in self.call("account_list")]

    def has_account(self, address: Address) -> bool:
        """Whether the daemon manages `address`."""
        return bool(self.call("account_has", address.to_hex()))

    def info(self) -> dict[str, Any]:
        """Chain id, rule hash and unlocked accounts of the daemon."""
        return self.call("signer_info")


@dataclass(frozen=True, slots=True)
class AccountManager:
    """Account lookup for a node, backed by its external signer."""

    backend: SignerClient

    @classmethod
    def connect(cls, endpoint: str) -> AccountManager:
        """
        Attach to a signer, failing fast if it cannot be reached.

        Raises:
            SignerError: If the endpoint does not answer.
        """
        backend = SignerClient(endpoint)
        backend.info()
        return cls(backend=backend)

    def accounts(self) -> list[Address]:
        """All accounts available for signing."""
        return self.backend.list_accounts()

    def find(self, address: Address) -> Address:
        """
        Look up an account.

        Raises:
            SignerError: If the signer does not manage `address`.
        """
        if not self.backend.has_account(address):
            raise SignerError(f"unknown account {address}")
        return address
