"""
Payment Watcher: background service that spots incoming router payments.

Every poll interval:
    1. ask the directory for routers that pay our wallet (new ones get tracked)
    2. read each router's USDC balance
    3. a balance that went up since the last read is a payment → count it and
       POST a hook to the agent gateway

Lifecycle: STOPPED → STARTING → RUNNING → STOPPED (start() may be called again).

The first cycle after start() seeds balances; its detections are suppressed so
a restart never reports existing balances as new payments.

Overlap guard: one cycle at a time. A timer tick that finds a cycle still in
flight (slow RPC, slow directory) is skipped entirely, not queued.
"""

import asyncio
import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Optional

from x402watch.chain import Web3BalanceReader
from x402watch.config import WatcherConfig
from x402watch.discovery import RouterDirectory
from x402watch.notifier import HookNotifier
from x402watch.registry import AccountRegistry
from x402watch.sampler import BalanceSampler, PaymentEvent
from x402watch.units import isoformat_utc, utc_now

logger = logging.getLogger("x402.watcher")


class WatcherState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


class PaymentWatcher:
    """
    Polls tracked routers and notifies the gateway on balance increases.

    Usage:
        watcher = create_watcher(WatcherConfig.from_env())
        await watcher.start()      # arms the timer, runs the seeding cycle
        watcher.get_status()
        await watcher.close()      # stop + release HTTP sessions
    """

    def __init__(
        self,
        config: WatcherConfig,
        directory: RouterDirectory,
        sampler: BalanceSampler,
        notifier: HookNotifier,
        registry: Optional[AccountRegistry] = None,
    ):
        self._config = config
        self._directory = directory
        self._sampler = sampler
        self._notifier = notifier
        self.registry = registry if registry is not None else AccountRegistry()

        self.state = WatcherState.STOPPED
        self._timer: Optional[asyncio.Task] = None
        self._cycles: set[asyncio.Task] = set()
        self._gate = threading.Lock()  # held for the whole duration of a cycle
        self._seeded = False
        self._payments_detected = 0
        self._last_poll_at: Optional[datetime] = None

    # ============================================================
    # READ-ONLY STATE
    # ============================================================

    @property
    def directory(self) -> RouterDirectory:
        return self._directory

    @property
    def sampler(self) -> BalanceSampler:
        return self._sampler

    @property
    def poll_interval_ms(self) -> int:
        return self._config.poll_interval_ms

    @property
    def running(self) -> bool:
        return self._timer is not None

    @property
    def is_sampling(self) -> bool:
        return self._gate.locked()

    @property
    def seeded(self) -> bool:
        return self._seeded

    @property
    def payments_detected(self) -> int:
        return self._payments_detected

    @property
    def last_poll_at(self) -> Optional[datetime]:
        return self._last_poll_at

    # ============================================================
    # LIFECYCLE
    # ============================================================

    async def start(self) -> None:
        """Arm the timer, then run the seeding cycle to completion."""
        if self.state is not WatcherState.STOPPED:
            logger.warning(f"Payment watcher already {self.state.value}, start ignored")
            return

        self.state = WatcherState.STARTING
        logger.info(f"Starting payment watcher (poll every {self.poll_interval_ms / 1000:g}s)")

        # Timer first so the watcher reports running even if the first poll fails
        self._timer = asyncio.create_task(self._timer_loop(), name="x402_watch_timer")

        try:
            await self.poll()
        finally:
            self._seeded = True
            if self._timer is not None:
                self.state = WatcherState.RUNNING

    async def stop(self) -> None:
        """Disarm the timer. A cycle already in flight is left to finish."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.state = WatcherState.STOPPED
        logger.info("Payment watcher stopped")

    async def close(self) -> None:
        """Stop, wait for in-flight cycles, release HTTP sessions."""
        await self.stop()
        if self._cycles:
            await asyncio.gather(*self._cycles, return_exceptions=True)
        await self._directory.close()
        await self._notifier.close()

    async def _timer_loop(self) -> None:
        interval = self.poll_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            self._fire()

    def _fire(self) -> None:
        """One timer tick: spawn a cycle unless one is still running."""
        if self.is_sampling:
            logger.debug("Previous poll still running, skipping this tick")
            return
        task = asyncio.create_task(self.poll(), name="x402_watch_cycle")
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)

    # ============================================================
    # CYCLE
    # ============================================================

    async def poll(self) -> bool:
        """
        Run one discovery + sampling cycle.

        Returns False without doing anything when another cycle holds the gate.
        Never raises on I/O failure.
        """
        if not self._gate.acquire(blocking=False):
            logger.debug("Poll skipped: a cycle is already in flight")
            return False

        try:
            await self._refresh_routers()
            events = await self._sampler.sample_all(self.registry)
            await self._handle_events(events)
            self._last_poll_at = utc_now()
        except Exception as e:
            logger.error(f"Watcher poll error: {type(e).__name__}: {e}")
        finally:
            self._gate.release()
        return True

    async def _refresh_routers(self) -> None:
        """Track any router the directory lists that we have not seen yet."""
        try:
            links = await self._directory.fetch_links(self._config.wallet_address)
        except Exception as e:
            logger.warning(f"Router discovery failed: {e}")
            return

        for link in links:
            if self.registry.upsert(link.router_address, link.name):
                logger.info(f"Tracking router: {link.name} ({link.router_address})")

        logger.debug(f"Tracking {len(self.registry)} router(s)")

    async def _handle_events(self, events: list[PaymentEvent]) -> None:
        if not events:
            return

        if not self._seeded:
            logger.debug(f"Seeding cycle: suppressed {len(events)} increase(s)")
            return

        symbol = self._sampler.token_symbol
        for event in events:
            self._payments_detected += 1
            logger.info(
                f"Payment detected on {event.router_name}: +{event.increase} {symbol} "
                f"({event.previous_balance} → {event.new_balance})"
            )
            if self._config.notify_on_payment:
                await self._notifier.deliver(event)

    # ============================================================
    # STATUS
    # ============================================================

    def get_status(self) -> dict:
        """Status for the API / CLI. Pure read."""
        routers = [
            {
                "address": account.address,
                "name": account.name,
                "balance": self._sampler.format(account.last_balance),
                "lastChecked": isoformat_utc(account.last_checked_at) or "never",
            }
            for account in self.registry.all()
        ]
        return {
            "running": self.running,
            "pollIntervalMs": self.poll_interval_ms,
            "trackedRouters": routers,
            "paymentsDetected": self._payments_detected,
            "lastPollAt": isoformat_utc(self._last_poll_at),
        }


def create_watcher(config: WatcherConfig) -> PaymentWatcher:
    """Wire a PaymentWatcher with the real directory, chain reader and notifier."""
    directory = RouterDirectory(config.links_api_url, timeout=config.request_timeout)
    sampler = BalanceSampler(
        Web3BalanceReader(config.rpc_endpoint, timeout=config.request_timeout),
        token_address=config.token_address,
        decimals=config.token_decimals,
        token_symbol=config.token_symbol,
    )
    notifier = HookNotifier(config.gateway_port, config.hooks_token)
    return PaymentWatcher(config, directory, sampler, notifier)
