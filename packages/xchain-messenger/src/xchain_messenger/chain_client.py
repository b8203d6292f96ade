"""
Interfaces the relayer uses to talk to chains.

Both the web3-backed clients and the in-process local chains implement these,
so the relay loop is written once.
"""

from typing import Any, Protocol

from .models import CrossChainMessage


class SourceChain(Protocol):
    """Read access to MessageSent events on a source chain."""

    async def get_chain_id(self) -> int: ...

    async def get_block_number(self) -> int: ...

    async def get_message_events(self, from_block: int, to_block: int) -> list[Any]:
        """Events in [from_block, to_block], ascending by block and log index."""
        ...


class DestinationChain(Protocol):
    """Submission and read-only queries against a destination messenger."""

    async def get_chain_id(self) -> int: ...

    async def process_message(self, message: CrossChainMessage, signature: bytes) -> str:
        """Submit a message; returns the transaction hash or raises a MessengerError."""
        ...

    async def get_expected_nonce(self, chain_id: int) -> int: ...

    async def is_message_processed(self, message_id: str) -> bool: ...

    async def is_chain_enabled(self, chain_id: int) -> bool: ...

    async def is_trusted_relayer(self, address: str) -> bool: ...

    async def get_balance(self, address: str) -> int:
        """Native balance in wei, used to spot a relayer that cannot pay for gas."""
        ...
