"""Tests for Solana key loading and transaction signing.

These tests generate throwaway keypairs; no real key is ever used.
"""

from __future__ import annotations

import base64

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from traider.config import ConfigError
from traider.signer import SignerError, load_keypair, sign_transaction


def _unsigned_tx(payer: Keypair) -> str:
    ix = transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Keypair().pubkey(), lamports=1000))
    message = MessageV0.try_compile(payer.pubkey(), [ix], [], Hash.default())
    tx = VersionedTransaction.populate(message, [Signature.default()])
    return base64.b64encode(bytes(tx)).decode("ascii")


class TestLoadKeypair:

    def test_from_argument(self):
        kp = Keypair()
        assert load_keypair(str(kp)).pubkey() == kp.pubkey()

    def test_from_env(self, monkeypatch):
        kp = Keypair()
        monkeypatch.setenv("TRAIDER_SOLANA_PRIVATE_KEY", str(kp))
        assert load_keypair().pubkey() == kp.pubkey()

    def test_missing(self, monkeypatch):
        monkeypatch.delenv("TRAIDER_SOLANA_PRIVATE_KEY", raising=False)
        with pytest.raises(ConfigError, match="TRAIDER_SOLANA_PRIVATE_KEY"):
            load_keypair()


class TestSignTransaction:

    def test_signs_with_wallet(self):
        kp = Keypair()
        signed_b64 = sign_transaction(_unsigned_tx(kp), kp)

        signed = VersionedTransaction.from_bytes(base64.b64decode(signed_b64))
        assert signed.signatures[0] != Signature.default()
        assert signed.message.account_keys[0] == kp.pubkey()

    def test_garbage_payload(self):
        with pytest.raises(SignerError):
            sign_transaction(base64.b64encode(b"garbage").decode(), Keypair())

    def test_wrong_signer(self):
        with pytest.raises(SignerError):
            sign_transaction(_unsigned_tx(Keypair()), Keypair())
