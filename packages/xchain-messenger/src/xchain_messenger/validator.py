"""
Destination-side message validation.

Validation is a pure read over MessengerState: it never mutates the nonce
ledger or the processed set, so it can also serve dry runs.
"""

import logging
from dataclasses import dataclass

from .errors import (
    ChainNotSupported,
    InvalidNonce,
    MessageAlreadyProcessed,
    PayloadTooLarge,
    UnauthorizedRelayer,
    ValidationError,
)
from .models import CrossChainMessage
from .state import MessengerState
from .utils.message_signer import MessageSigner

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Accept, or reject with exactly one reason."""

    accepted: bool
    signer: str | None = None
    error: ValidationError | None = None

    @property
    def reason(self) -> str | None:
        return self.error.kind if self.error else None

    def raise_for_rejection(self) -> None:
        if self.error is not None:
            raise self.error


class MessageValidator:
    """Checks a (message, signature) pair against the current messenger state."""

    def __init__(self, state: MessengerState) -> None:
        self.state = state

    def validate(self, message: CrossChainMessage, signature: bytes | str) -> ValidationResult:
        """
        Run the checks in order; the first failure wins.

        1. payload size
        2. source and target chains enabled
        3. nonce equals the ledger's expected nonce
        4. signer recovered from the signature is a trusted relayer
        5. message not already processed

        A nonce mismatch for a message whose ID is already in the processed
        set is reported as MessageAlreadyProcessed: that is a replay, not an
        ordering problem.
        """
        try:
            signer = self._check(message, signature)
        except ValidationError as e:
            logger.debug(f"Rejected {message}: {e.kind} ({e})")
            return ValidationResult(accepted=False, error=e)
        return ValidationResult(accepted=True, signer=signer)

    def _check(self, message: CrossChainMessage, signature: bytes | str) -> str:
        state = self.state
        message_id = message.message_id

        if len(message.payload) > state.max_payload_size:
            raise PayloadTooLarge(len(message.payload), state.max_payload_size, message_id)

        for chain_id in (message.source_chain_id, message.target_chain_id):
            if not state.chain_registry.is_chain_enabled(chain_id):
                raise ChainNotSupported(chain_id, message_id)

        expected = state.nonces.expected(message.source_chain_id)
        if message.nonce != expected:
            if message_id in state.processed:
                raise MessageAlreadyProcessed(message_id)
            raise InvalidNonce(expected, message.nonce, message_id)

        signer = MessageSigner.recover_signer(message, signature)
        if not state.relayer_registry.is_trusted_relayer(signer):
            raise UnauthorizedRelayer(signer, message_id)

        if message_id in state.processed:
            raise MessageAlreadyProcessed(message_id)

        return signer
