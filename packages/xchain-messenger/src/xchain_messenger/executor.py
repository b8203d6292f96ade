"""
Destination-side message execution.

The executor is the only component that mutates the nonce ledger and the
processed set. It delegates acceptance to MessageValidator, calls the target,
and records the message only once the target call has succeeded.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from web3 import Web3

from .errors import TargetExecutionFailed
from .models import CrossChainMessage, ExecutionReceipt, MessageReceived
from .state import MessengerState
from .utils.message_encoder import MessageEncoder
from .validator import MessageValidator, ValidationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MessageContext:
    """Origin information handed to a target alongside the payload."""

    message_id: str
    source_chain_id: int
    sender: str
    nonce: int


TargetHandler = Callable[[bytes, MessageContext], Any]
ReceivedListener = Callable[[MessageReceived], None]


class MessageExecutor:
    """Validates, executes and records cross-chain messages."""

    def __init__(self, state: MessengerState, validator: MessageValidator | None = None) -> None:
        """
        Initialize the executor.

        Args:
            state: State store shared with the validator
            validator: Validator to delegate to (defaults to one over the same state)
        """
        self.state = state
        self.validator = validator or MessageValidator(state)

        self._targets: dict[str, TargetHandler] = {}
        self._listeners: list[ReceivedListener] = []

        # One lock per source chain: nonces are sequential per source chain
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def register_target(self, address: str, handler: TargetHandler) -> None:
        """Deploy a callable at a destination address."""
        self._targets[Web3.to_checksum_address(address)] = handler

    def subscribe(self, listener: ReceivedListener) -> None:
        """Register a listener for MessageReceived notifications."""
        self._listeners.append(listener)

    def _lock_for(self, chain_id: int) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(chain_id, threading.Lock())

    def dry_run(self, message: CrossChainMessage, signature: bytes | str) -> ValidationResult:
        """Validate without executing."""
        return self.validator.validate(message, signature)

    def process(self, message: CrossChainMessage, signature: bytes | str) -> ExecutionReceipt:
        """
        Execute a relayed message.

        Args:
            message: The message to execute
            signature: Relayer signature over the message digest

        Returns:
            ExecutionReceipt describing the execution

        Raises:
            ValidationError: A subclass naming the rejection reason
            TargetExecutionFailed: If the target call failed; the nonce is not
                consumed and the message is not marked processed
        """
        with self._lock_for(message.source_chain_id):
            result = self.validator.validate(message, signature)
            result.raise_for_rejection()

            handler = self._targets.get(message.target)
            if handler is None:
                raise TargetExecutionFailed(
                    f"No target deployed at {message.target}", message.message_id
                )

            context = MessageContext(
                message_id=message.message_id,
                source_chain_id=message.source_chain_id,
                sender=message.sender,
                nonce=message.nonce,
            )
            try:
                output = handler(message.payload, context)
            except Exception as e:
                logger.warning(f"Target {message.target} failed for {message}: {e}")
                raise TargetExecutionFailed(str(e), message.message_id) from e

            self.state.nonces.advance(message.source_chain_id)
            self.state.processed.add(message.message_id)

        logger.info(
            f"Executed message {message.message_id[:10]}... from chain "
            f"{message.source_chain_id} (nonce {message.nonce}) relayed by {result.signer}"
        )
        self._notify(MessageReceived.from_message(message))

        return ExecutionReceipt(
            message_id=message.message_id,
            source_chain_id=message.source_chain_id,
            nonce=message.nonce,
            relayer=result.signer or "",
            result=output,
        )

    def _notify(self, notification: MessageReceived) -> None:
        for listener in self._listeners:
            try:
                listener(notification)
            except Exception as e:
                logger.error(f"MessageReceived listener failed: {e}", exc_info=True)

    def get_expected_nonce(self, chain_id: int) -> int:
        return self.state.nonces.expected(chain_id)

    def is_message_processed(self, message_id: str) -> bool:
        return message_id in self.state.processed

    def is_chain_enabled(self, chain_id: int) -> bool:
        return self.state.chain_registry.is_chain_enabled(chain_id)

    def is_trusted_relayer(self, address: str) -> bool:
        return self.state.relayer_registry.is_trusted_relayer(address)

    @staticmethod
    def generate_message_id(source_chain_id: int, sender: str, nonce: int) -> str:
        return MessageEncoder.generate_message_id(source_chain_id, sender, nonce)
