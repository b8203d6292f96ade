"""Read access to MessageSent events on an EVM source chain."""

import asyncio
import logging
from typing import Any

from web3 import Web3

from .utils.contract_utility import ContractUtility

logger = logging.getLogger(__name__)


class Web3MessageSource:
    """Queries a MessageSender contract over HTTP RPC.

    web3's HTTP provider is blocking, so every call runs in a worker thread
    to keep the monitor's event loop responsive.
    """

    def __init__(self, rpc_url: str, sender_address: str, request_timeout: int = 30) -> None:
        """
        Args:
            rpc_url: HTTP RPC endpoint of the source chain
            sender_address: Address of the MessageSender contract
            request_timeout: HTTP request timeout in seconds
        """
        self.contract_util = ContractUtility(rpc_url, request_timeout=request_timeout)
        self.sender_address = Web3.to_checksum_address(sender_address)
        self.contract = self.contract_util.get_contract("MessageSender", self.sender_address)
        self.event_obj = self.contract.events.MessageSent()

    @property
    def w3(self) -> Web3:
        return self.contract_util.w3

    async def get_chain_id(self) -> int:
        return await asyncio.to_thread(lambda: self.w3.eth.chain_id)

    async def get_block_number(self) -> int:
        return await asyncio.to_thread(lambda: self.w3.eth.block_number)

    async def get_message_events(self, from_block: int, to_block: int) -> list[Any]:
        """MessageSent logs in [from_block, to_block], ordered by block then log index."""
        events = await asyncio.to_thread(
            self.event_obj.get_logs,
            from_block=from_block,
            to_block=to_block,
        )
        logger.debug(f"{len(events)} MessageSent logs in blocks {from_block}-{to_block} on {self.sender_address}")
        return sorted(events, key=lambda e: (e["blockNumber"], e["logIndex"]))
