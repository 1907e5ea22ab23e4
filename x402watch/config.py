"""
Watcher Configuration

Builds a single WatcherConfig that is passed by constructor into every
collaborator (directory, sampler, notifier, watcher). Nothing here writes
back to os.environ.

Priority chain (highest first):
1. Real environment variables (a .env file is loaded by the entry points)
2. Plugin config dict handed over by the host runtime
3. Defaults below

Chain settings per network live in CHAIN_DEFAULTS: rpc, chain id, token
address, token decimals.
"""

import os
import re
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from eth_account import Account

logger = logging.getLogger("x402.config")


# ============================================================
# CHAIN DEFAULTS
# ============================================================

CHAIN_DEFAULTS = {
    "mainnet": {
        "name": "base",
        "rpc": "https://mainnet.base.org",
        "chain_id": 8453,
        "token_address": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",  # USDC
        "token_symbol": "USDC",
        "token_decimals": 6,
    },
    "testnet": {
        "name": "base-sepolia",
        "rpc": "https://sepolia.base.org",
        "chain_id": 84532,
        "token_address": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",  # USDC
        "token_symbol": "USDC",
        "token_decimals": 6,
    },
}

DEFAULT_NETWORK = "mainnet"
DEFAULT_POLL_INTERVAL_MS = 30_000
DEFAULT_REQUEST_TIMEOUT = 30.0  # seconds, on the order of the poll interval

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


class ConfigError(ValueError):
    """Raised when the watcher cannot be configured from the given values."""


# ============================================================
# PARSING HELPERS
# ============================================================

def _parse_bool(name: str, value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name}: expected a boolean, got {value!r}")


def _parse_int(name: str, value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name}: expected an integer, got {value!r}") from None


def _first(*values: Any) -> Any:
    """First value that is neither None nor an empty string."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


def derive_wallet_address(private_key: str) -> str:
    """Checksummed address for a hex private key. The key never reaches logs or errors."""
    try:
        return Account.from_key(private_key).address
    except Exception as e:
        raise ConfigError(f"Invalid EVM private key ({type(e).__name__})") from None


# ============================================================
# CONFIG OBJECT
# ============================================================

@dataclass
class WatcherConfig:
    """Everything the payment watcher and its collaborators need."""
    links_api_url: str = ""
    wallet_address: str = ""
    network: str = DEFAULT_NETWORK
    rpc_url: str = ""
    enabled: bool = True
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    notify_on_payment: bool = True
    gateway_port: int = 0
    hooks_token: str = ""
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def __post_init__(self):
        if self.network not in CHAIN_DEFAULTS:
            raise ConfigError(
                f"Unknown network '{self.network}' (expected one of {sorted(CHAIN_DEFAULTS)})"
            )
        if self.poll_interval_ms <= 0:
            raise ConfigError(f"Poll interval must be positive, got {self.poll_interval_ms}ms")
        if self.wallet_address and not _ADDRESS_RE.match(self.wallet_address):
            raise ConfigError(f"Malformed wallet address: {self.wallet_address!r}")
        if self.request_timeout <= 0:
            raise ConfigError(f"Request timeout must be positive, got {self.request_timeout}")
        self.links_api_url = self.links_api_url.rstrip("/")

    @property
    def chain(self) -> dict:
        return CHAIN_DEFAULTS[self.network]

    @property
    def rpc_endpoint(self) -> str:
        return self.rpc_url or self.chain["rpc"]

    @property
    def token_address(self) -> str:
        return self.chain["token_address"]

    @property
    def token_symbol(self) -> str:
        return self.chain["token_symbol"]

    @property
    def token_decimals(self) -> int:
        return self.chain["token_decimals"]

    @property
    def delivery_enabled(self) -> bool:
        """Hooks are only posted when notifications are on and a gateway port is known."""
        return self.notify_on_payment and self.gateway_port > 0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "WatcherConfig":
        """Build from environment variables only."""
        return cls.from_mapping({}, env=env)

    @classmethod
    def from_mapping(
        cls,
        plugin_config: Mapping[str, Any],
        gateway_port: Optional[int] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "WatcherConfig":
        """
        Merge a plugin-style config dict with environment variables.

        Plugin shape:
            {evmPrivateKey, network, x402LinksApiUrl, hooksToken,
             watcher: {enabled, pollIntervalMs, notifyOnPayment}}

        Env vars win over plugin values. gateway_port comes from the host
        runtime; when not given, OPENCLAW_GATEWAY_PORT is used.
        """
        env = os.environ if env is None else env
        watcher_cfg = plugin_config.get("watcher") or {}

        wallet_address = _first(env.get("X402_WALLET_ADDRESS"), plugin_config.get("walletAddress"))
        if not wallet_address:
            private_key = _first(env.get("EVM_PRIVATE_KEY"), plugin_config.get("evmPrivateKey"))
            if private_key:
                wallet_address = derive_wallet_address(str(private_key))

        if gateway_port is None:
            gateway_port = _parse_int(
                "OPENCLAW_GATEWAY_PORT", env.get("OPENCLAW_GATEWAY_PORT"), 0
            )

        return cls(
            links_api_url=str(_first(env.get("X402_LINKS_API_URL"), plugin_config.get("x402LinksApiUrl")) or ""),
            wallet_address=str(wallet_address or ""),
            network=str(_first(env.get("X402_NETWORK"), plugin_config.get("network")) or DEFAULT_NETWORK),
            rpc_url=str(env.get("BASE_RPC_URL", "") or ""),
            enabled=_parse_bool(
                "X402_WATCHER_ENABLED",
                _first(env.get("X402_WATCHER_ENABLED"), watcher_cfg.get("enabled")),
                True,
            ),
            poll_interval_ms=_parse_int(
                "X402_POLL_INTERVAL_MS",
                _first(env.get("X402_POLL_INTERVAL_MS"), watcher_cfg.get("pollIntervalMs")),
                DEFAULT_POLL_INTERVAL_MS,
            ),
            notify_on_payment=_parse_bool(
                "X402_NOTIFY_ON_PAYMENT",
                _first(env.get("X402_NOTIFY_ON_PAYMENT"), watcher_cfg.get("notifyOnPayment")),
                True,
            ),
            gateway_port=gateway_port,
            hooks_token=str(_first(env.get("OPENCLAW_HOOKS_TOKEN"), plugin_config.get("hooksToken")) or ""),
        )
