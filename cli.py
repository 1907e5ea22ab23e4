#!/usr/bin/env python3
"""
x402 watch CLI

Usage:
    x402-watch watch [--interval MS]     Run the payment watcher in the foreground
    x402-watch status [--url URL]        Show watcher status (live query if the service is down)

Reads the same .env / environment variables as the service.
"""

import os
import sys
import signal
import asyncio
import argparse
import logging
import dataclasses
from typing import Optional

import aiohttp
from dotenv import load_dotenv

from x402watch.config import ConfigError, WatcherConfig
from x402watch.discovery import DirectoryError
from x402watch.logs import setup_logging
from x402watch.watcher import create_watcher

logger = logging.getLogger("x402.cli")


# ============================================================
# watch
# ============================================================

async def _run_foreground(config: WatcherConfig, stop_event: Optional[asyncio.Event] = None) -> None:
    """Run a watcher until stop_event is set (by default on SIGINT/SIGTERM)."""
    watcher = create_watcher(config)

    if stop_event is None:
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:  # Windows
                pass

    try:
        await watcher.start()
        await stop_event.wait()
    finally:
        await watcher.close()


def cmd_watch(args, config: WatcherConfig) -> int:
    try:
        config = dataclasses.replace(
            config,
            poll_interval_ms=args.interval,
            notify_on_payment=config.gateway_port > 0,
        )
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    print(f"Starting payment watcher in foreground for {config.wallet_address or '(no wallet)'}...")
    print(f"Poll interval: {config.poll_interval_ms / 1000:g}s")
    print("Press Ctrl+C to stop.\n")

    try:
        asyncio.run(_run_foreground(config))
    except KeyboardInterrupt:
        pass
    return 0


# ============================================================
# status
# ============================================================

async def _fetch_service_status(url: str) -> dict:
    """Status from a running service, or {} when it cannot be reached."""
    timeout = aiohttp.ClientTimeout(total=3)
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(f"{url.rstrip('/')}/status") as resp:
                if resp.status != 200:
                    return {}
                return await resp.json()
    except Exception as e:
        logger.debug(f"Service status unavailable at {url}: {e}")
        return {}


def print_service_status(status: dict, wallet_address: str) -> None:
    print("x402 Payment Watcher Status")
    print("===========================\n")
    print("Running:           Yes (background service)")
    print(f"Poll interval:     {status['pollIntervalMs'] / 1000:g}s")
    print(f"Payments detected: {status['paymentsDetected']}")
    print(f"Last poll:         {status.get('lastPollAt') or 'Never'}")
    print(f"Wallet address:    {wallet_address}")

    routers = status.get("trackedRouters", [])
    if not routers:
        print("\nNo routers tracked yet.")
        return

    print(f"\nTracked Routers ({len(routers)}):")
    for r in routers:
        print(f"  {r['name']}")
        print(f"    Address: {r['address']}")
        print(f"    Balance: {r['balance']} USDC")
        print(f"    Checked: {r['lastChecked']}")
        print("")


async def _live_status(config: WatcherConfig) -> int:
    """One-shot discovery + balance read, no watcher state involved."""
    watcher = create_watcher(config)
    sampler = watcher.sampler

    print("x402 Watcher Status (live query)")
    print("================================\n")
    print(f"Wallet: {config.wallet_address}")

    try:
        try:
            links = await watcher.directory.lookup(config.wallet_address)
        except DirectoryError as e:
            print(f"Failed to fetch routers: {e}")
            return 1

        if not links:
            print("No routers found for this wallet.")
            return 0

        print(f"Found {len(links)} router(s):\n")
        for link in links:
            try:
                raw = await sampler.read_balance(link.router_address)
                balance = f"{sampler.format(raw)} {sampler.token_symbol}"
            except Exception as e:
                logger.debug(f"Balance read failed for {link.router_address}: {e}")
                balance = "?"

            print(f"  {link.name}")
            print(f"    Router:  {link.router_address}")
            print(f"    Balance: {balance}")
            print("")
        return 0
    finally:
        await watcher.close()


def cmd_status(args, config: WatcherConfig) -> int:
    status = asyncio.run(_fetch_service_status(args.url))
    if status.get("running"):
        print_service_status(status, config.wallet_address)
        return 0

    code = asyncio.run(_live_status(config))
    if status:
        print("Note: The service is up but its watcher is not running.")
        print('Use "x402-watch watch" for foreground mode.')
    return code


# ============================================================
# ENTRY POINT
# ============================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="x402-watch", description="x402 payment router watcher")
    sub = parser.add_subparsers(dest="command", required=True)

    watch = sub.add_parser("watch", help="Start the payment watcher in foreground (for debugging)")
    watch.add_argument("--interval", type=int, default=30_000,
                       help="Poll interval in milliseconds (default: 30000)")
    watch.set_defaults(func=cmd_watch)

    default_url = f"http://127.0.0.1:{os.getenv('PORT', '8402')}"
    status = sub.add_parser("status", help="Show payment watcher status, tracked routers, and payment count")
    status.add_argument("--url", default=default_url,
                        help=f"Base URL of the running service (default: {default_url})")
    status.set_defaults(func=cmd_status)

    return parser


def main(argv=None) -> int:
    load_dotenv()
    setup_logging()

    args = build_parser().parse_args(argv)
    try:
        config = WatcherConfig.from_env()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
