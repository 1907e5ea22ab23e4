"""
x402 Watch API Server - FastAPI Backend

Endpoints:
- GET /health             Liveness
- GET /status             Payment watcher status (tracked routers, payments detected)
- GET /routers            Routers that list our wallet as beneficiary (optionally with balances)

Read-only. The server never moves funds.
"""

import os
import asyncio
import logging
from decimal import Decimal
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from x402watch.config import WatcherConfig
from x402watch.discovery import DirectoryError, RouterLink
from x402watch.watcher import PaymentWatcher

logger = logging.getLogger("x402.api")


# ============================================================
# MODELS
# ============================================================

class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TrackedRouterOut(_CamelModel):
    address: str
    name: str
    balance: str
    last_checked: str = Field(alias="lastChecked")


class WatcherStatusResponse(_CamelModel):
    running: bool
    poll_interval_ms: int = Field(alias="pollIntervalMs")
    tracked_routers: list[TrackedRouterOut] = Field(alias="trackedRouters")
    payments_detected: int = Field(alias="paymentsDetected")
    last_poll_at: Optional[str] = Field(alias="lastPollAt")


class RouterOut(_CamelModel):
    router_address: str = Field(alias="routerAddress")
    name: str
    chain_id: Optional[int] = Field(None, alias="chainId")
    share_percent: Optional[float] = Field(None, alias="sharePercent")
    created_at: Optional[str] = Field(None, alias="createdAt")
    balance: Optional[str] = None
    estimated_withdrawal: Optional[str] = Field(None, alias="estimatedWithdrawal")


class RoutersResponse(_CamelModel):
    success: bool
    address: str = ""
    routers: list[RouterOut] = []
    error: Optional[str] = None


# ============================================================
# HELPERS
# ============================================================

def estimate_withdrawal(raw_balance: int, decimals: int, share_percent: Optional[float]) -> str:
    """Our share of a router balance, 6 decimal places."""
    share = Decimal(str(share_percent or 0)) / 100
    amount = Decimal(raw_balance) / (Decimal(10) ** decimals) * share
    return f"{amount:.6f}"


def create_app(
    config: WatcherConfig,
    watcher: PaymentWatcher,
    watcher_enabled: bool = True,
) -> FastAPI:
    """
    Create FastAPI app over a watcher.

    watcher_enabled=False keeps /routers working (the watcher's directory and
    sampler are still usable) while /status reports the watcher as disabled.
    """
    app = FastAPI(
        title="x402 watch",
        description="Detects incoming payments on x402 payment routers.",
        version="0.1.0",
    )

    cors_origins = os.getenv("CORS_ORIGINS", "*").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        """Liveness endpoint."""
        return {"status": "ok"}

    @app.get("/status")
    async def status():
        """Payment watcher status."""
        if not watcher_enabled:
            return {"running": False, "error": "Watcher is not enabled"}
        return WatcherStatusResponse(**watcher.get_status()).model_dump(by_alias=True)

    @app.get("/routers")
    async def routers(with_balances: bool = False):
        """Routers where our wallet is a beneficiary."""
        try:
            links = await watcher.directory.lookup(config.wallet_address)
        except DirectoryError as e:
            logger.warning(f"/routers lookup failed: {e}")
            return RoutersResponse(success=False, address=config.wallet_address, error=str(e)).model_dump(
                by_alias=True, exclude_none=True
            )

        sampler = watcher.sampler

        async def _describe(link: RouterLink) -> RouterOut:
            out = RouterOut(
                router_address=link.router_address,
                name=link.name,
                chain_id=link.chain_id,
                share_percent=link.share_percent,
                created_at=link.created_at,
            )
            if with_balances:
                try:
                    raw = await sampler.read_balance(link.router_address)
                except Exception as e:
                    logger.debug(f"Balance read failed for {link.router_address}: {e}")
                    out.balance = "0"
                    out.estimated_withdrawal = estimate_withdrawal(0, sampler.decimals, link.share_percent)
                else:
                    out.balance = sampler.format(raw)
                    out.estimated_withdrawal = estimate_withdrawal(raw, sampler.decimals, link.share_percent)
            return out

        described = await asyncio.gather(*(_describe(link) for link in links))
        return RoutersResponse(
            success=True, address=config.wallet_address, routers=list(described)
        ).model_dump(by_alias=True, exclude_none=True)

    return app
