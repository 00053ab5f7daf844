"""Solana transaction signing.

Environment:
    TRAIDER_SOLANA_PRIVATE_KEY: base58 secret key (64 bytes, as exported
        by Phantom / solana-keygen)
"""

from __future__ import annotations

import base64

from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from traider.config import ConfigError, require_env


class SignerError(Exception):
    """Key material missing or a transaction could not be signed."""


def load_keypair(secret: str | None = None) -> Keypair:
    """Keypair from a base58 secret (argument or environment)."""
    encoded = require_env("TRAIDER_SOLANA_PRIVATE_KEY", secret)
    try:
        return Keypair.from_base58_string(encoded)
    except Exception as e:
        raise ConfigError(f"Invalid Solana private key: {e}") from e


def sign_transaction(unsigned_tx_b64: str, keypair: Keypair) -> str:
    """Sign a base64 versioned transaction. Returns base64.

    Signing goes through the VersionedTransaction constructor, which
    applies the versioned message prefix before hashing.
    """
    try:
        tx = VersionedTransaction.from_bytes(base64.b64decode(unsigned_tx_b64))
        signed = VersionedTransaction(tx.message, [keypair])
    except Exception as e:
        raise SignerError(f"Signing failed: {e}") from e
    return base64.b64encode(bytes(signed)).decode("ascii")
