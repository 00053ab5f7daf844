"""Solana venue: Jupiter-routed swaps signed locally and sent over JSON-RPC.

Flow per swap:
1. Resolve mints ("SOL" is wrapped SOL) and token decimals
2. Jupiter quote at the requested slippage
3. Jupiter swap transaction (unsigned), signed with the wallet keypair
4. sendTransaction with preflight, so failures come back with program logs
5. Poll getSignatureStatuses until the transaction lands

Environment:
    TRAIDER_SOLANA_PRIVATE_KEY: wallet secret (base58)
    TRAIDER_SOLANA_RPC_URL: primary RPC endpoint (optional)
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Awaitable, Callable

from solders.keypair import Keypair

from traider.clients.base import RPCFallbackClient
from traider.clients.jupiter import JUPSOL_MINT, SOL_MINT, JupiterClient
from traider.config import VenueConfig
from traider.models import StakeResult, SwapResult
from traider.signer import load_keypair, sign_transaction
from traider.venues.base import ConfirmationTimeout, VenueAdapter, VenueError, classify_venue_error

log = logging.getLogger("traider.venues.solana")

SOL_DECIMALS = 9
CONFIRM_POLLS = 8
CONFIRM_INTERVAL = 4.0
STAKE_SLIPPAGE_PCT = 1.0


class SolanaVenue(VenueAdapter):
    chain = "solana"
    native_symbol = "SOL"

    def __init__(
        self,
        config: VenueConfig | None = None,
        keypair: Keypair | None = None,
        jupiter: JupiterClient | None = None,
        rpc: RPCFallbackClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or VenueConfig()
        self.keypair = keypair or load_keypair()
        self.jupiter = jupiter or JupiterClient(base_url=self.config.jupiter_url)
        self.rpc = rpc or RPCFallbackClient([
            {"url": os.environ.get("TRAIDER_SOLANA_RPC_URL") or self.config.solana_rpc_url, "provider": "primary"},
            {"url": self.config.solana_fallback_rpc_url, "provider": "fallback"},
        ])
        self._sleep = sleep
        self._decimals: dict[str, int] = {SOL_MINT: SOL_DECIMALS}

    @property
    def public_key(self) -> str:
        return str(self.keypair.pubkey())

    def _mint(self, token: str) -> str:
        return SOL_MINT if token.upper() == self.native_symbol else token

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        reply = await self.rpc.call(method, params)
        error = reply.get("error")
        if error:
            data = error.get("data") or {}
            raise classify_venue_error(str(error.get("message", error)), data.get("logs") or [])
        return reply.get("result")

    async def token_decimals(self, mint: str) -> int:
        if mint not in self._decimals:
            result = await self._rpc("getTokenSupply", [mint])
            self._decimals[mint] = int(result["value"]["decimals"])
        return self._decimals[mint]

    async def _send(self, signed_tx_b64: str) -> str:
        signature = await self._rpc("sendTransaction", [
            signed_tx_b64,
            {"encoding": "base64", "skipPreflight": False, "preflightCommitment": "confirmed", "maxRetries": 3},
        ])
        if not signature:
            raise VenueError("RPC returned no transaction signature")
        return signature

    async def _confirm(self, signature: str) -> None:
        for _ in range(CONFIRM_POLLS):
            await self._sleep(CONFIRM_INTERVAL)
            result = await self._rpc("getSignatureStatuses", [[signature], {"searchTransactionHistory": True}])
            statuses = (result or {}).get("value") or []
            if statuses and statuses[0] is not None:
                if statuses[0].get("err") is None:
                    return
                raise classify_venue_error(f"Transaction {signature} failed on-chain: {statuses[0]['err']}")
        raise ConfirmationTimeout(signature, CONFIRM_POLLS * CONFIRM_INTERVAL)

    async def swap(self, from_token: str, to_token: str, amount: float, slippage_pct: float) -> SwapResult:
        input_mint, output_mint = self._mint(from_token), self._mint(to_token)
        raw_amount = int(amount * 10 ** await self.token_decimals(input_mint))
        if raw_amount <= 0:
            raise VenueError(f"Swap amount {amount} rounds to zero")

        quote = await self.jupiter.get_quote(input_mint, output_mint, raw_amount, slippage_bps=int(slippage_pct * 100))
        swap = await self.jupiter.get_swap_transaction(quote, self.public_key)
        unsigned = swap.get("swapTransaction", "")
        if not unsigned:
            raise VenueError("Jupiter returned no swap transaction")

        signature = await self._send(sign_transaction(unsigned, self.keypair))
        log.info("Submitted swap %s -> %s (%s): %s", from_token, to_token, amount, signature)
        await self._confirm(signature)

        out_decimals = await self.token_decimals(output_mint)
        return SwapResult(
            reference=signature,
            from_amount=amount,
            to_amount=int(quote.get("outAmount", 0)) / 10 ** out_decimals,
        )

    async def stake(self, amount: float) -> StakeResult:
        """Liquid-stake SOL by swapping it into jupSOL."""
        minimum = self.config.stake_minimum_sol
        if amount < minimum:
            raise VenueError(f"Minimum stake amount is {minimum} SOL")
        result = await self.swap(self.native_symbol, JUPSOL_MINT, amount, STAKE_SLIPPAGE_PCT)
        return StakeResult(reference=result.reference, amount=amount, received_amount=result.to_amount)

    async def close(self) -> None:
        await self.jupiter.close()
        await self.rpc.close()
