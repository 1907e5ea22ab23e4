"""
Hook Notifier: tells the local agent runtime about a detected payment.

    POST http://127.0.0.1:{gateway_port}/hooks/agent
    {"name": "x402-payment", "wakeMode": "now", "data": {...PaymentEvent}}

Fire-and-forget: one attempt, no queue, no retry. Failures are logged and
reported as False, never raised.
"""

import logging
from typing import Optional

import aiohttp

from x402watch.sampler import PaymentEvent

logger = logging.getLogger("x402.notifier")

HOOK_NAME = "x402-payment"


class HookNotifier:
    """Delivers PaymentEvents to the agent gateway."""

    def __init__(self, gateway_port: int, hooks_token: str = "", timeout: float = 10.0):
        self.gateway_port = gateway_port
        self._hooks_token = hooks_token
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def enabled(self) -> bool:
        return self.gateway_port > 0

    @property
    def hook_url(self) -> str:
        return f"http://127.0.0.1:{self.gateway_port}/hooks/agent"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    @staticmethod
    def envelope(event: PaymentEvent) -> dict:
        return {"name": HOOK_NAME, "wakeMode": "now", "data": event.to_dict()}

    async def deliver(self, event: PaymentEvent) -> bool:
        """POST the event once. Returns True only on a 2xx response."""
        if not self.enabled:
            logger.debug(f"Hook delivery disabled (gateway port {self.gateway_port})")
            return False

        headers = {"Content-Type": "application/json"}
        if self._hooks_token:
            headers["Authorization"] = f"Bearer {self._hooks_token}"

        try:
            session = await self._get_session()
            async with session.post(self.hook_url, json=self.envelope(event), headers=headers) as resp:
                if not 200 <= resp.status < 300:
                    logger.warning(
                        f"Hook POST failed for {event.router_name}: {resp.status} {resp.reason}"
                    )
                    return False
        except Exception as e:
            logger.warning(f"Hook POST error for {event.router_name}: {type(e).__name__}: {e}")
            return False

        logger.debug(f"Hook delivered for payment on {event.router_name}")
        return True

    async def close(self):
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
