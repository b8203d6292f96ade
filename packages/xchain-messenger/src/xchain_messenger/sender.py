"""
Source-side message creation.

MessageSender is the component an application calls on the source chain. It
assigns the nonce and message ID and produces the message that the
MessageSent event announces.
"""

import logging
import time
from collections.abc import Callable

from .errors import ChainNotSupported, PayloadTooLarge
from .models import CrossChainMessage, to_payload_bytes
from .registry import ChainRegistry
from .state import MAX_PAYLOAD_SIZE
from .utils.message_encoder import MessageEncoder

logger = logging.getLogger(__name__)


class MessageSender:
    """Creates cross-chain messages on a source chain."""

    def __init__(
        self,
        chain_id: int,
        owner: str,
        enabled_chains: tuple[int, ...] = (),
        max_payload_size: int = MAX_PAYLOAD_SIZE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the sender.

        Args:
            chain_id: ID of the chain this sender lives on
            owner: Address allowed to enable destination chains
            enabled_chains: Destination chains enabled from the start
            max_payload_size: Payload cap, shared with the destination
            clock: Source of creation timestamps
        """
        self.chain_id = chain_id
        self.destinations = ChainRegistry(owner, enabled_chains)
        self.max_payload_size = max_payload_size
        self.message_counter: int = 0
        self._clock = clock
        # Counted per destination so each destination sees a gap-free sequence
        self._next_nonce: dict[int, int] = {}

    def enable_chain(self, chain_id: int, caller: str) -> None:
        self.destinations.enable_chain(chain_id, caller)

    def get_next_nonce(self, target_chain_id: int) -> int:
        return self._next_nonce.get(target_chain_id, 1)

    def send_message(
        self,
        sender: str,
        target_chain_id: int,
        target: str,
        payload: bytes | str,
    ) -> CrossChainMessage:
        """
        Create a message addressed to a target on another chain.

        Raises:
            PayloadTooLarge: If the payload exceeds the cap
            ChainNotSupported: If the destination chain is not enabled
        """
        data = to_payload_bytes(payload)
        if len(data) > self.max_payload_size:
            raise PayloadTooLarge(len(data), self.max_payload_size)
        if not self.destinations.is_chain_enabled(target_chain_id):
            raise ChainNotSupported(target_chain_id)

        nonce = self.get_next_nonce(target_chain_id)
        message = CrossChainMessage(
            message_id=MessageEncoder.generate_message_id(self.chain_id, sender, nonce),
            source_chain_id=self.chain_id,
            target_chain_id=target_chain_id,
            sender=sender,
            target=target,
            payload=data,
            nonce=nonce,
            timestamp=int(self._clock()),
        )

        self._next_nonce[target_chain_id] = nonce + 1
        self.message_counter += 1

        logger.info(f"Message created: {message}")
        return message
