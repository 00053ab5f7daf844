"""Base (EVM) venue: swaps through a Uniswap-V2-style router with web3.

Buys use swapExactETHForTokens, sells approve the router and use
swapExactTokensForETH. amountOutMin is the router quote reduced by the
slippage tolerance. web3 is synchronous, so every chain interaction runs
in a worker thread.

Environment:
    TRAIDER_BASE_PRIVATE_KEY: wallet private key (hex)
    TRAIDER_BASE_RPC_URL: RPC endpoint (optional)
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Any

from eth_account import Account
from web3 import Web3
from web3.exceptions import Web3Exception

from traider.config import ConfigError, VenueConfig, require_env
from traider.models import SwapResult
from traider.venues.base import VenueAdapter, VenueError, classify_venue_error

log = logging.getLogger("traider.venues.evm")

DEADLINE_SECONDS = 120
RECEIPT_TIMEOUT = 120

ROUTER_ABI = [
    {
        "inputs": [
            {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
            {"internalType": "address[]", "name": "path", "type": "address[]"},
        ],
        "name": "getAmountsOut",
        "outputs": [{"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "amountOutMin", "type": "uint256"},
            {"internalType": "address[]", "name": "path", "type": "address[]"},
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "deadline", "type": "uint256"},
        ],
        "name": "swapExactETHForTokens",
        "outputs": [{"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"}],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
            {"internalType": "uint256", "name": "amountOutMin", "type": "uint256"},
            {"internalType": "address[]", "name": "path", "type": "address[]"},
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "deadline", "type": "uint256"},
        ],
        "name": "swapExactTokensForETH",
        "outputs": [{"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

ERC20_ABI = [
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "owner", "type": "address"},
            {"internalType": "address", "name": "spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "spender", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
        ],
        "name": "approve",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


def amount_out_min(quoted_out: int, slippage_pct: float) -> int:
    return int(quoted_out * (1 - slippage_pct / 100.0))


class BaseVenue(VenueAdapter):
    chain = "base"
    native_symbol = "ETH"

    def __init__(self, config: VenueConfig | None = None, private_key: str | None = None, w3: Web3 | None = None):
        self.config = config or VenueConfig()
        try:
            self._account = Account.from_key(require_env("TRAIDER_BASE_PRIVATE_KEY", private_key))
        except ValueError as e:
            raise ConfigError(f"Invalid Base private key: {e}") from e
        rpc_url = os.environ.get("TRAIDER_BASE_RPC_URL") or self.config.base_rpc_url
        self._w3 = w3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 20}))
        self._router = self._w3.eth.contract(
            address=Web3.to_checksum_address(self.config.base_router_address), abi=ROUTER_ABI,
        )
        self._weth = Web3.to_checksum_address(self.config.base_weth_address)

    @property
    def address(self) -> str:
        return self._account.address

    def _is_native(self, token: str) -> bool:
        return token.upper() == self.native_symbol

    def _decimals(self, token: str) -> int:
        if self._is_native(token):
            return 18
        erc20 = self._w3.eth.contract(address=Web3.to_checksum_address(token), abi=ERC20_ABI)
        return int(erc20.functions.decimals().call())

    def _send(self, tx: dict[str, Any]) -> str:
        tx.setdefault("nonce", self._w3.eth.get_transaction_count(self._account.address))
        tx.setdefault("chainId", self._w3.eth.chain_id)
        tx["gas"] = int(self._w3.eth.estimate_gas(tx) * 1.2)
        signed = self._account.sign_transaction(tx)
        tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=RECEIPT_TIMEOUT)
        if receipt["status"] != 1:
            raise VenueError(f"Transaction {tx_hash.hex()} reverted")
        return tx_hash.hex()

    def _ensure_allowance(self, token: str, amount_in: int) -> None:
        erc20 = self._w3.eth.contract(address=token, abi=ERC20_ABI)
        allowance = erc20.functions.allowance(self._account.address, self._router.address).call()
        if allowance >= amount_in:
            return
        log.info("Approving router for %s", token)
        tx = erc20.functions.approve(self._router.address, amount_in).build_transaction({
            "from": self._account.address,
        })
        self._send(tx)

    def _swap_sync(self, from_token: str, to_token: str, amount: float, slippage_pct: float) -> SwapResult:
        buying = self._is_native(from_token)
        if not buying and not self._is_native(to_token):
            raise VenueError("Base venue only swaps between ETH and tokens")

        token = Web3.to_checksum_address(to_token if buying else from_token)
        path = [self._weth, token] if buying else [token, self._weth]
        amount_in = int(amount * 10 ** self._decimals(from_token))
        if amount_in <= 0:
            raise VenueError(f"Swap amount {amount} rounds to zero")

        quoted_out = int(self._router.functions.getAmountsOut(amount_in, path).call()[-1])
        min_out = amount_out_min(quoted_out, slippage_pct)
        deadline = int(time.time()) + DEADLINE_SECONDS
        params: dict[str, Any] = {"from": self._account.address}

        if buying:
            params["value"] = amount_in
            tx = self._router.functions.swapExactETHForTokens(
                min_out, path, self._account.address, deadline,
            ).build_transaction(params)
        else:
            self._ensure_allowance(token, amount_in)
            tx = self._router.functions.swapExactTokensForETH(
                amount_in, min_out, path, self._account.address, deadline,
            ).build_transaction(params)

        tx_hash = self._send(tx)
        return SwapResult(
            reference=tx_hash,
            from_amount=amount,
            to_amount=quoted_out / 10 ** self._decimals(to_token),
        )

    async def swap(self, from_token: str, to_token: str, amount: float, slippage_pct: float) -> SwapResult:
        try:
            return await asyncio.to_thread(self._swap_sync, from_token, to_token, amount, slippage_pct)
        except VenueError:
            raise
        except (Web3Exception, ValueError) as e:
            raise classify_venue_error(str(e)) from e
