"""
Router Directory: which payment routers list our wallet as beneficiary.

Protocol:
    GET {links_api_url}/api/links/beneficiary/{wallet}
    → 200 {"success": true, "links": [{"router_address": "0x..",
                                        "metadata": {"name": ".."}, ...}]}

lookup() raises DirectoryError on any failure so callers that need to report
the reason (status API, CLI) can. fetch_links() is the watcher's entry point:
every failure there means "no routers this cycle".
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

logger = logging.getLogger("x402.discovery")

UNNAMED = "Unnamed"


class DirectoryError(Exception):
    """The directory could not produce a router list."""


@dataclass
class RouterLink:
    """One payment link entry from the directory."""
    router_address: str
    name: str = UNNAMED
    chain_id: Optional[int] = None
    share_percent: Optional[float] = None   # beneficiary_percentage
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> Optional["RouterLink"]:
        """Parse a link entry. Returns None when it carries no router address."""
        address = data.get("router_address")
        if not address or not isinstance(address, str):
            return None
        metadata = data.get("metadata") or {}
        name = metadata.get("name") if isinstance(metadata, dict) else None
        return cls(
            router_address=address,
            name=name or UNNAMED,
            chain_id=data.get("chain_id"),
            share_percent=data.get("beneficiary_percentage"),
            created_at=data.get("created_at"),
        )


class RouterDirectory:
    """Client for the payment-links directory."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    def url_for(self, wallet_address: str) -> str:
        return f"{self.base_url}/api/links/beneficiary/{wallet_address}"

    async def lookup(self, wallet_address: str) -> list[RouterLink]:
        """List routers for wallet_address. Raises DirectoryError on any failure."""
        if not self.base_url:
            raise DirectoryError("no links API URL configured")
        if not wallet_address:
            raise DirectoryError("no wallet address configured")

        url = self.url_for(wallet_address)
        logger.debug(f"Fetching routers for {wallet_address} from {url}")

        session = await self._get_session()
        try:
            async with session.get(url) as resp:
                if not 200 <= resp.status < 300:
                    raise DirectoryError(f"HTTP {resp.status}")
                data: Any = await resp.json(content_type=None)
        except DirectoryError:
            raise
        except Exception as e:
            raise DirectoryError(f"{type(e).__name__}: {e}") from e

        if not isinstance(data, dict):
            raise DirectoryError("malformed response body")
        if not data.get("success"):
            raise DirectoryError(data.get("error") or "directory returned success=false")

        links = data.get("links")
        if links is None:
            return []
        if not isinstance(links, list):
            raise DirectoryError("malformed links list")

        parsed = [RouterLink.from_dict(item) for item in links if isinstance(item, dict)]
        return [link for link in parsed if link is not None]

    async def fetch_links(self, wallet_address: str) -> list[RouterLink]:
        """Like lookup(), but any failure is logged and yields an empty list."""
        try:
            return await self.lookup(wallet_address)
        except DirectoryError as e:
            logger.warning(f"Failed to fetch routers: {e}")
            return []

    async def close(self):
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
