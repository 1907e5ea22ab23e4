"""
Chain Reader: read-only ERC20 balance queries.

Design:
- Embedded minimal ABI, only balanceOf
- Sync Web3 calls wrapped in asyncio.run_in_executor()
- No signing, no gas: this module never builds a transaction
- Errors propagate to the caller; the sampler decides what a failed read means
"""

import asyncio
import logging
from abc import ABC, abstractmethod

from web3 import Web3

logger = logging.getLogger("x402.chain")


# ERC20: balanceOf only
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class BalanceReader(ABC):
    """Anything that can answer balanceOf(token, account)."""

    @abstractmethod
    async def balance_of(self, token_address: str, account_address: str) -> int:
        """Raw token balance of account_address. Raises on RPC/network failure."""


class Web3BalanceReader(BalanceReader):
    """
    balanceOf over a JSON-RPC endpoint.

    Usage:
        reader = Web3BalanceReader("https://mainnet.base.org")
        raw = await reader.balance_of(usdc, router)
    """

    def __init__(self, rpc_url: str, timeout: float = 30.0):
        self.rpc_url = rpc_url
        self._w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self._contracts: dict[str, object] = {}  # checksummed token address → contract

    def _contract_for(self, token_address: str):
        address = Web3.to_checksum_address(token_address)
        contract = self._contracts.get(address)
        if contract is None:
            contract = self._w3.eth.contract(address=address, abi=ERC20_ABI)
            self._contracts[address] = contract
        return contract

    async def balance_of(self, token_address: str, account_address: str) -> int:
        contract = self._contract_for(token_address)
        account = Web3.to_checksum_address(account_address)
        balance = await asyncio.get_running_loop().run_in_executor(
            None, contract.functions.balanceOf(account).call,
        )
        return int(balance)
