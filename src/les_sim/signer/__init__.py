"""External signing daemon and its client."""

from .client import AccountManager, SignerClient
from .daemon import (
    DEFAULT_ACCOUNT_PASSWORD,
    DEFAULT_MASTER_SEED,
    SignerConfig,
    SignerDaemon,
    read_keystore,
)

__all__ = [
    "AccountManager",
    "SignerClient",
    "SignerConfig",
    "SignerDaemon",
    "read_keystore",
    "DEFAULT_ACCOUNT_PASSWORD",
    "DEFAULT_MASTER_SEED",
]
