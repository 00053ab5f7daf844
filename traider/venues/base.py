"""Venue adapter contract, venue errors and slippage escalation.

A venue executes swaps on one chain. Swaps that fail are retried with a
doubling slippage tolerance, capped, until the attempt budget runs out.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from traider.models import StakeResult, SwapResult

log = logging.getLogger("traider.venues")


class VenueError(Exception):
    """A swap or stake failed on-chain or at the venue."""

    retryable = True


class InsufficientFunds(VenueError):
    pass


class SlippageExceeded(VenueError):
    pass


class UnsupportedChain(VenueError):
    pass


class NoBalance(VenueError):
    pass


class ConfirmationTimeout(VenueError):
    """Submitted but never observed as confirmed. It may still land, so it is not retried."""

    retryable = False

    def __init__(self, signature: str, waited: float):
        super().__init__(f"Transaction {signature} not confirmed after {waited:.0f}s")
        self.signature = signature


class ExhaustedRetries(VenueError):
    def __init__(self, attempts: int, last_error: Exception | None, final_slippage: float):
        super().__init__(
            f"Swap failed after {attempts} attempts. Last error: {last_error}. "
            f"Final slippage tried: {final_slippage:.1f}%"
        )
        self.attempts = attempts
        self.last_error = last_error
        self.final_slippage = final_slippage


_INSUFFICIENT_MARKERS = ("insufficient funds", "insufficient lamports", "insufficient balance")
_SLIPPAGE_MARKERS = ("slippage tolerance exceeded", "0x1771", "insufficient_output_amount", "too little received")


def classify_venue_error(message: str, logs: list[str] | None = None) -> VenueError:
    """Map venue diagnostics (message plus program logs) to a typed error."""
    haystack = " ".join([message, *(logs or [])]).lower()
    if any(m in haystack for m in _INSUFFICIENT_MARKERS):
        return InsufficientFunds("Insufficient funds for swap")
    if any(m in haystack for m in _SLIPPAGE_MARKERS):
        return SlippageExceeded("Price moved too much, try increasing slippage")
    return VenueError(message)


class VenueAdapter(ABC):
    """Executes swaps (and optionally stakes) on one chain.

    Amounts are in display units of the input token; native currency is
    addressed by its symbol ("SOL", "ETH").
    """

    chain: str = ""
    native_symbol: str = ""

    @abstractmethod
    async def swap(self, from_token: str, to_token: str, amount: float, slippage_pct: float) -> SwapResult:
        ...

    async def stake(self, amount: float) -> StakeResult:
        raise VenueError(f"Staking not supported on {self.chain}")

    async def close(self) -> None:
        return None


class SlippageBackoff:
    """Slippage escalation state.

    Tries S, min(2S, C), min(4S, C), ... for at most max_attempts
    attempts. An initial slippage above the cap is rejected up front.
    """

    def __init__(self, initial: float, cap: float = 30.0, max_attempts: int = 5):
        if initial > cap:
            raise SlippageExceeded(f"Initial slippage {initial}% exceeds maximum allowed {cap}%")
        self.current = initial
        self.cap = cap
        self.max_attempts = max_attempts
        self.attempt = 0
        self.last_error: Exception | None = None

    @property
    def next_slippage(self) -> float:
        return min(self.current * 2, self.cap)

    def record_failure(self, error: Exception) -> bool:
        """Count a failed attempt. Returns True if another attempt is allowed."""
        self.attempt += 1
        self.last_error = error
        if self.attempt >= self.max_attempts:
            return False
        self.current = self.next_slippage
        return True

    def exhausted(self) -> ExhaustedRetries:
        return ExhaustedRetries(self.attempt, self.last_error, self.current)

    def schedule(self) -> list[float]:
        """Every slippage value the backoff would try, in order."""
        values = [self.current]
        value = self.current
        for _ in range(self.max_attempts - 1):
            value = min(value * 2, self.cap)
            values.append(value)
        return values


async def swap_with_retry(
    venue: VenueAdapter,
    from_token: str,
    to_token: str,
    amount: float,
    initial_slippage: float = 1.0,
    max_slippage: float = 30.0,
    max_attempts: int = 5,
    retry_delay: float = 5.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> SwapResult:
    """Swap, doubling slippage after each failure. Raises ExhaustedRetries.

    A VenueError marked non-retryable is re-raised at once.
    """
    backoff = SlippageBackoff(initial_slippage, cap=max_slippage, max_attempts=max_attempts)
    while True:
        try:
            return await venue.swap(from_token, to_token, amount, backoff.current)
        except Exception as e:
            log.warning(
                "Swap attempt %d on %s failed at %.1f%% slippage: %s",
                backoff.attempt + 1, venue.chain, backoff.current, e,
            )
            if isinstance(e, VenueError) and not e.retryable:
                raise
            if not backoff.record_failure(e):
                raise backoff.exhausted() from e
        await sleep(retry_delay)
