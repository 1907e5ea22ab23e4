"""Shared fakes for the watcher tests."""

import asyncio
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from x402watch.chain import BalanceReader
from x402watch.config import WatcherConfig
from x402watch.discovery import RouterLink
from x402watch.registry import AccountRegistry
from x402watch.sampler import BalanceSampler
from x402watch.watcher import PaymentWatcher

WALLET = "0x1111111111111111111111111111111111111111"
USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
ALPHA = "0xAAaaAAaaAAaaAAaaAAaaAAaaAAaaAAaaAAaaAAaa"
BETA = "0xBBbbBBbbBBbbBBbbBBbbBBbbBBbbBBbbBBbbBBbb"
GAMMA = "0xCCccCCccCCccCCccCCccCCccCCccCCccCCccCCcc"


class FakeReader(BalanceReader):
    """In-memory balanceOf. A value that is an Exception is raised instead."""

    def __init__(self, balances: Optional[dict] = None):
        self.balances = {k.lower(): v for k, v in (balances or {}).items()}
        self.calls: list[str] = []
        self.block: Optional[asyncio.Event] = None

    def set(self, address: str, value):
        self.balances[address.lower()] = value

    async def balance_of(self, token_address: str, account_address: str) -> int:
        self.calls.append(account_address)
        if self.block is not None:
            await self.block.wait()
        value = self.balances[account_address.lower()]
        if isinstance(value, Exception):
            raise value
        return value


class FakeDirectory:
    """Directory double: returns self.links, or raises self.error."""

    def __init__(self, links: Optional[list[RouterLink]] = None):
        self.links = links or []
        self.error: Optional[Exception] = None
        self.fetch_calls = 0
        self.closed = False

    async def lookup(self, wallet_address: str) -> list[RouterLink]:
        if self.error is not None:
            raise self.error
        return list(self.links)

    async def fetch_links(self, wallet_address: str) -> list[RouterLink]:
        self.fetch_calls += 1
        return await self.lookup(wallet_address)

    async def close(self):
        self.closed = True


def make_notifier(result: bool = True) -> MagicMock:
    notifier = MagicMock()
    notifier.deliver = AsyncMock(return_value=result)
    notifier.close = AsyncMock()
    return notifier


async def wait_until(predicate, timeout: float = 1.0):
    """Spin the loop until predicate() is true."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def config():
    return WatcherConfig(
        links_api_url="http://directory.test",
        wallet_address=WALLET,
        poll_interval_ms=60_000,
        gateway_port=18789,
    )


@pytest.fixture
def reader():
    return FakeReader()


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def notifier():
    return make_notifier()


@pytest.fixture
def sampler(reader):
    return BalanceSampler(reader, token_address=USDC, decimals=6)


@pytest.fixture
def registry():
    return AccountRegistry()


@pytest.fixture
def watcher(config, directory, sampler, notifier, registry):
    return PaymentWatcher(config, directory, sampler, notifier, registry=registry)
