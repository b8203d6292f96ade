"""
In-process chains.

LocalSourceChain and LocalDestinationChain run the sender and the executor
inside the relayer's process behind the same async interfaces as the web3
clients. They back local runs and the relay tests.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from web3 import Web3

from .executor import MessageExecutor
from .models import CrossChainMessage, MessageSentEvent
from .sender import MessageSender

logger = logging.getLogger(__name__)


class LocalSourceChain:
    """A source chain that mines one block per sent message."""

    def __init__(self, sender: MessageSender, start_block: int = 0) -> None:
        self.sender = sender
        self.block_number = start_block
        self.events: list[MessageSentEvent] = []
        self._subscribers: list[asyncio.Queue[MessageSentEvent]] = []

    @property
    def chain_id(self) -> int:
        return self.sender.chain_id

    def mine(self, blocks: int = 1) -> int:
        """Advance the head without emitting events."""
        self.block_number += blocks
        return self.block_number

    def send_message(
        self,
        sender: str,
        target_chain_id: int,
        target: str,
        payload: bytes | str,
        signature: bytes | None = None,
    ) -> MessageSentEvent:
        """Create a message in a new block and announce it to subscribers."""
        message = self.sender.send_message(sender, target_chain_id, target, payload)
        self.block_number += 1

        tx_hash = Web3.keccak(text=f"{self.chain_id}-{self.block_number}-{message.message_id}")
        event = MessageSentEvent(
            message=message,
            transaction_hash="0x" + bytes(tx_hash).hex(),
            block_number=self.block_number,
            log_index=0,
            signature=signature,
        )
        self.events.append(event)

        for queue in self._subscribers:
            queue.put_nowait(event)
        return event

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def get_block_number(self) -> int:
        return self.block_number

    async def get_message_events(self, from_block: int, to_block: int) -> list[Any]:
        return [e for e in self.events if from_block <= e.block_number <= to_block]

    async def listen(self, callback: Callable[[Any], Awaitable[Any]]) -> None:
        """Push every newly sent event to callback until cancelled."""
        queue: asyncio.Queue[MessageSentEvent] = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            while True:
                event = await queue.get()
                await callback(event)
        finally:
            self._subscribers.remove(queue)

    async def stop(self) -> None:
        """Nothing to tear down; present for parity with the WebSocket listener."""

    def get_status(self) -> dict[str, Any]:
        return {
            "block_number": self.block_number,
            "events": len(self.events),
            "subscribers": len(self._subscribers),
        }


class LocalDestinationChain:
    """Exposes a MessageExecutor as a destination chain."""

    def __init__(self, executor: MessageExecutor, chain_id: int, initial_balance: int = 10**18) -> None:
        self.executor = executor
        self.chain_id = chain_id
        self.submissions: int = 0
        self.initial_balance = initial_balance
        self.balances: dict[str, int] = {}

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def process_message(self, message: CrossChainMessage, signature: bytes) -> str:
        self.submissions += 1
        receipt = self.executor.process(message, signature)
        tx_hash = Web3.keccak(text=f"{self.chain_id}-{self.submissions}-{receipt.message_id}")
        return "0x" + bytes(tx_hash).hex()

    async def get_expected_nonce(self, chain_id: int) -> int:
        return self.executor.get_expected_nonce(chain_id)

    async def is_message_processed(self, message_id: str) -> bool:
        return self.executor.is_message_processed(message_id)

    async def is_chain_enabled(self, chain_id: int) -> bool:
        return self.executor.is_chain_enabled(chain_id)

    async def is_trusted_relayer(self, address: str) -> bool:
        return self.executor.is_trusted_relayer(address)

    async def get_balance(self, address: str) -> int:
        return self.balances.get(Web3.to_checksum_address(address), self.initial_balance)
