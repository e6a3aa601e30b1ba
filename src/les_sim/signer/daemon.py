"""
External signing daemon.

Each node of a cluster can be given its own signer holding the node's account
passwords. Nodes only ever see the daemon's endpoint string; they talk to it
over a unix-domain socket with newline-delimited JSON requests.

Vault Layout
------------
::

    <dir>/
      signer.ipc                      IPC endpoint
      <keccak("vault" || seed)[:10]>/
        credentials.json              AES-GCM encrypted account passwords
        rules.js                      rule script, stored opaque

The rule script is never interpreted here. It is persisted so that the
daemon's policy can be inspected, and its hash is reported to clients.
"""

from __future__ import annotations

import json
import logging
import os
import socketserver
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from les_sim.types import Address, SignerError, keccak256

logger = logging.getLogger(__name__)

DEFAULT_MASTER_SEED: Final = "foobar"
"""Seed used when the configuration does not provide one."""

DEFAULT_ACCOUNT_PASSWORD: Final = "foobar"
"""Password stored for accounts configured with an empty password."""

IPC_FILENAME: Final = "signer.ipc"
"""Name of the IPC socket inside the daemon directory."""

_NONCE_SIZE: Final = 12
"""AES-GCM nonce length in bytes."""


@dataclass(frozen=True, slots=True)
class SignerConfig:
    """Configuration for a signing daemon."""

    dir: Path | str
    """Working directory holding the vault and the IPC socket."""

    keystore: Path | str
    """Directory of keystore files whose accounts the daemon manages."""

    chain_id: int
    """Chain id signatures are bound to."""

    master_seed: str = ""
    """Seed for the vault keys. Empty means DEFAULT_MASTER_SEED."""

    rules: bytes = b""
    """Rule script. Empty means no additional rules."""

    accounts: dict[Address, str] = field(default_factory=dict)
    """Accounts to unlock, with their passwords (empty means the default)."""


def read_keystore(keystore: Path | str) -> list[Address]:
    """
    List the accounts of a keystore directory.

    Keystore files are JSON documents with an "address" field (hex, with or
    without 0x). Files that are not keystore documents are ignored.
    """
    addresses: list[Address] = []
    for path in sorted(Path(keystore).iterdir()):
        if not path.is_file():
            continue
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
            addresses.append(Address(document["address"]))
        except (ValueError, KeyError, TypeError):
            logger.debug("Skipping non-keystore file %s", path)
    return addresses


class _CredentialStore:
    """Account passwords encrypted at rest with AES-GCM."""

    def __init__(self, path: Path, key: bytes) -> None:
        self._path = path
        self._aead = AESGCM(key)
        self._entries: dict[str, dict[str, str]] = {}
        if path.exists():
            self._entries = json.loads(path.read_text(encoding="utf-8"))

    def put(self, address: Address, password: str) -> None:
        nonce = os.urandom(_NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, password.encode(), bytes(address))
        self._entries[address.to_hex()] = {"nonce": nonce.hex(), "ciphertext": ciphertext.hex()}
        self._path.write_text(json.dumps(self._entries, indent=2), encoding="utf-8")

    def get(self, address: Address) -> str | None:
        entry = self._entries.get(address.to_hex())
        if entry is None:
            return None
        plaintext = self._aead.decrypt(
            bytes.fromhex(entry["nonce"]), bytes.fromhex(entry["ciphertext"]), bytes(address)
        )
        return plaintext.decode()

    def addresses(self) -> list[Address]:
        return [Address(key) for key in self._entries]


class _RequestHandler(socketserver.StreamRequestHandler):
    """Serves newline-delimited JSON requests on one IPC connection."""

    server: _IPCServer

    def handle(self) -> None:
        for line in self.rfile:
            if not line.strip():
                continue
            try:
                request = json.loads(line)
                method, params = request["method"], request.get("params", [])
                result = self.server.daemon_ref.dispatch(method, params)
                response: dict[str, Any] = {"result": result}
            except (ValueError, KeyError, TypeError, SignerError) as e:
                response = {"error": str(e)}
            self.wfile.write(json.dumps(response).encode() + b"\n")
            self.wfile.flush()


class _IPCServer(socketserver.ThreadingMixIn, socketserver.UnixStreamServer):
    daemon_threads = True

    def __init__(self, path: str, daemon_ref: SignerDaemon) -> None:
        self.daemon_ref = daemon_ref
        super().__init__(path, _RequestHandler)


class SignerDaemon:
    """
    A running signing daemon.

    Construction validates the configuration, unlocks the configured accounts
    into the encrypted vault and opens the IPC endpoint. `stop()` releases it.
    """

    def __init__(self, config: SignerConfig | None) -> None:
        if config is None:
            raise SignerError("empty config")
        if not config.dir:
            raise SignerError("no directory specified")
        if not config.keystore:
            raise SignerError("no keystore specified")

        self.config = config
        seed = (config.master_seed or DEFAULT_MASTER_SEED).encode()

        directory = Path(config.dir)
        self.vault = directory / keccak256(b"vault", seed)[:10].hex()
        self.vault.mkdir(parents=True, exist_ok=True)

        # Domain-separated keys derived from the seed.
        self._credentials = _CredentialStore(
            self.vault / "credentials.json", keccak256(b"credentials", seed)
        )
        for account, password in config.accounts.items():
            self._credentials.put(account, password or DEFAULT_ACCOUNT_PASSWORD)

        self.rules_hash: str | None = None
        if config.rules:
            (self.vault / "rules.js").write_bytes(config.rules)
            self.rules_hash = "0x" + keccak256(config.rules).hex()

        self._endpoint = str(directory / IPC_FILENAME)
        try:
            self._server = _IPCServer(self._endpoint, self)
        except OSError as e:
            raise SignerError(f"could not start IPC endpoint at {self._endpoint}: {e}") from e

        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name=f"signer-{directory.name}",
            daemon=True,
        )
        self._stopped = False
        self._thread.start()
        logger.info("IPC endpoint opened (url=%s)", self._endpoint)

    @property
    def endpoint(self) -> str:
        """Connection string handed to the node's configuration."""
        return self._endpoint

    def credential(self, address: Address) -> str | None:
        """Decrypted password of an unlocked account."""
        return self._credentials.get(address)

    def dispatch(self, method: str, params: list[Any]) -> Any:
        """Answer a single request."""
        if method == "account_list":
            return [address.to_hex() for address in read_keystore(self.config.keystore)]
        if method == "account_has":
            if len(params) != 1:
                raise SignerError("account_has takes exactly one address")
            return Address(params[0]) in read_keystore(self.config.keystore)
        if method == "signer_info":
            return {
                "chainId": self.config.chain_id,
                "rulesHash": self.rules_hash,
                "unlocked": [address.to_hex() for address in self._credentials.addresses()],
            }
        raise SignerError(f"unknown method {method!r}")

    def stop(self) -> None:
        """Close the IPC endpoint. Safe to call more than once."""
        if self._stopped:
            return
        self._stopped = True
        self._server.shutdown()
        self._server.server_close()
        self._thread.join(timeout=2.0)
        Path(self._endpoint).unlink(missing_ok=True)
        logger.info("IPC endpoint closed (url=%s)", self._endpoint)
