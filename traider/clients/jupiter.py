"""Jupiter v6 aggregator: the quote and swap-transaction half of a Solana swap.

SolanaVenue signs and submits what get_swap_transaction returns; this
module never touches keys.
"""

from __future__ import annotations

from typing import Any

import httpx

from traider.clients.base import BaseClient, RemoteFailure

SOL_MINT = "So11111111111111111111111111111111111111112"
JUPSOL_MINT = "jupSoLaHXQiZZTSfEWMTRRgpnyFm8f6sZdosWBjx93v"

DEFAULT_PRIORITY_FEE = 5000  # micro-lamports per compute unit


class JupiterClient:
    def __init__(self, base_url: str = "https://quote-api.jup.ag/v6", transport: httpx.AsyncBaseTransport | None = None):
        self._client = BaseClient(
            base_url=base_url,
            rate_limit=10.0,
            timeout=10.0,
            provider_name="jupiter",
            transport=transport,
        )

    async def get_quote(self, input_mint: str, output_mint: str, amount: int, slippage_bps: int = 100) -> dict[str, Any]:
        """Best route for `amount` raw units of input_mint.

        Raises RemoteFailure when Jupiter answers without a route.
        """
        quote = await self._client.get(
            "/quote",
            params={
                "inputMint": input_mint,
                "outputMint": output_mint,
                "amount": str(amount),
                "slippageBps": slippage_bps,
                "restrictIntermediateTokens": "true",
            },
        )
        if not isinstance(quote, dict) or not quote.get("outAmount"):
            reason = quote.get("error", "no route") if isinstance(quote, dict) else "no route"
            raise RemoteFailure(f"Jupiter quote {input_mint} -> {output_mint} failed: {reason}", provider="jupiter")
        return quote

    async def get_swap_transaction(
        self,
        quote: dict[str, Any],
        user_public_key: str,
        priority_fee: int = DEFAULT_PRIORITY_FEE,
    ) -> dict[str, Any]:
        """Unsigned base64 swap transaction for a quote."""
        return await self._client.post(
            "/swap",
            json_data={
                "quoteResponse": quote,
                "userPublicKey": user_public_key,
                "wrapAndUnwrapSol": True,
                "computeUnitPriceMicroLamports": priority_fee,
                "dynamicComputeUnitLimit": True,
            },
        )

    async def close(self) -> None:
        await self._client.close()
