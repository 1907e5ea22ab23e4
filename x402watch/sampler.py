"""
Balance Sampler: reads every tracked router and reports increases.

For each account:
- read balanceOf(token, router)
- on success: store the new balance + timestamp, compare with the previous one
- on failure: log, leave the stored balance/timestamp untouched

A new account starts at a balance of 0, so its first non-zero read is an
increase. Whether increases are notified at all (seeding) is the watcher's
decision.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from x402watch.chain import BalanceReader
from x402watch.registry import AccountRegistry, TrackedAccount
from x402watch.units import format_units, isoformat_utc, utc_now

logger = logging.getLogger("x402.sampler")


@dataclass
class PaymentEvent:
    """A detected balance increase on one router. Amounts are display strings."""
    router_address: str
    router_name: str
    previous_balance: str
    new_balance: str
    increase: str
    detected_at: str

    def to_dict(self) -> dict:
        """Wire shape used by the agent hook."""
        return {
            "routerAddress": self.router_address,
            "routerName": self.router_name,
            "previousBalance": self.previous_balance,
            "newBalance": self.new_balance,
            "increase": self.increase,
            "detectedAt": self.detected_at,
        }


class BalanceSampler:
    """Samples token balances for every account in a registry."""

    def __init__(
        self,
        reader: BalanceReader,
        token_address: str,
        decimals: int = 6,
        token_symbol: str = "USDC",
    ):
        self._reader = reader
        self.token_address = token_address
        self.decimals = decimals
        self.token_symbol = token_symbol

    def format(self, raw: int) -> str:
        return format_units(raw, self.decimals)

    async def read_balance(self, address: str) -> int:
        """One-off read that does not touch any registry."""
        return await self._reader.balance_of(self.token_address, address)

    async def sample_all(self, registry: AccountRegistry) -> list[PaymentEvent]:
        """
        Sample every account; reads fan out concurrently.

        Returns increase events in registry order.
        """
        accounts = registry.all()
        if not accounts:
            return []

        results = await asyncio.gather(*(self._sample_one(a) for a in accounts))
        return [event for event in results if event is not None]

    async def _sample_one(self, account: TrackedAccount) -> Optional[PaymentEvent]:
        try:
            balance = await self.read_balance(account.address)
        except Exception as e:
            logger.warning(
                f"Failed to check balance for {account.name} ({account.address}): {e}"
            )
            return None

        previous = account.last_balance
        account.last_balance = balance
        account.last_checked_at = utc_now()

        if balance > previous:
            return PaymentEvent(
                router_address=account.address,
                router_name=account.name,
                previous_balance=self.format(previous),
                new_balance=self.format(balance),
                increase=self.format(balance - previous),
                detected_at=isoformat_utc(account.last_checked_at),
            )

        if balance < previous:
            logger.debug(
                f"Distribution from {account.name}: "
                f"{self.format(previous)} → {self.format(balance)} {self.token_symbol}"
            )
        return None
