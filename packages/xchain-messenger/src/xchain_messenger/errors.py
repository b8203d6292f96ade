"""
Error taxonomy for the cross-chain messenger.

Validation errors are deterministic: resubmitting the same message and
signature always yields the same rejection. Transient errors describe the
transport (RPC reachability, relayer funds) and are retried on a later tick.
"""

import asyncio
import logging

import httpx
from web3 import Web3
from web3.exceptions import ContractCustomError, ContractLogicError, TimeExhausted

logger = logging.getLogger(__name__)


class MessengerError(Exception):
    """Base class for all messenger errors."""

    retryable: bool = False

    def __init__(self, message: str = "", message_id: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message_id = message_id

    @property
    def kind(self) -> str:
        return self.__class__.__name__


class ValidationError(MessengerError):
    """A message was rejected by the destination's validation rules."""


class PayloadTooLarge(ValidationError):
    def __init__(self, size: int, limit: int, message_id: str | None = None) -> None:
        super().__init__(f"Payload of {size} bytes exceeds limit of {limit}", message_id)
        self.size = size
        self.limit = limit


class ChainNotSupported(ValidationError):
    def __init__(self, chain_id: int, message_id: str | None = None) -> None:
        super().__init__(f"Chain {chain_id} is not enabled", message_id)
        self.chain_id = chain_id


class InvalidNonce(ValidationError):
    def __init__(self, expected: int, actual: int, message_id: str | None = None) -> None:
        super().__init__(f"Invalid nonce {actual}, expected {expected}", message_id)
        self.expected = expected
        self.actual = actual


class UnauthorizedRelayer(ValidationError):
    def __init__(self, signer: str | None, message_id: str | None = None) -> None:
        super().__init__(f"Signer {signer or '<unrecoverable>'} is not a trusted relayer", message_id)
        self.signer = signer


class MessageAlreadyProcessed(ValidationError):
    def __init__(self, message_id: str | None = None) -> None:
        super().__init__(f"Message {message_id} already processed", message_id)


class TargetExecutionFailed(MessengerError):
    """The destination target call failed; no nonce or replay state was consumed."""


class TransientError(MessengerError):
    retryable = True


class ConnectivityError(TransientError):
    """An RPC endpoint or daemon could not be reached or timed out."""


class InsufficientResources(TransientError):
    """The relayer account cannot pay for submission."""


class UnauthorizedCaller(MessengerError):
    """An administrative operation was attempted by someone other than the owner."""


# Custom errors declared by the destination contract. Reverts carry the
# 4-byte selector of the error signature.
CONTRACT_ERRORS: dict[str, type[MessengerError]] = {
    "PayloadTooLarge": PayloadTooLarge,
    "ChainNotSupported": ChainNotSupported,
    "InvalidNonce": InvalidNonce,
    "UnauthorizedRelayer": UnauthorizedRelayer,
    "MessageAlreadyProcessed": MessageAlreadyProcessed,
    "TargetExecutionFailed": TargetExecutionFailed,
}

ERROR_SELECTORS: dict[str, str] = {
    Web3.keccak(text=f"{name}()")[:4].hex().removeprefix("0x"): name
    for name in CONTRACT_ERRORS
}

_RESOURCE_MARKERS = ("insufficient funds", "insufficient balance", "gas required exceeds allowance")


def _from_contract_error(name: str, detail: str, message_id: str | None) -> MessengerError:
    """Instantiate a taxonomy error from a contract error name."""
    match name:
        case "PayloadTooLarge":
            return PayloadTooLarge(-1, -1, message_id)
        case "ChainNotSupported":
            return ChainNotSupported(-1, message_id)
        case "InvalidNonce":
            return InvalidNonce(-1, -1, message_id)
        case "UnauthorizedRelayer":
            return UnauthorizedRelayer(None, message_id)
        case "MessageAlreadyProcessed":
            return MessageAlreadyProcessed(message_id)
        case _:
            return TargetExecutionFailed(detail, message_id)


def classify_error(exc: BaseException, message_id: str | None = None) -> MessengerError:
    """
    Map an arbitrary exception raised while talking to a chain onto the taxonomy.

    Args:
        exc: The exception raised by web3, httpx or the local executor
        message_id: Message the failure is attributable to

    Returns:
        A MessengerError instance; unrecognized failures become a plain
        MessengerError, which callers treat as retry-later.
    """
    if isinstance(exc, MessengerError):
        if exc.message_id is None:
            exc.message_id = message_id
        return exc

    detail = str(exc)

    if isinstance(exc, ContractCustomError):
        data = exc.data if isinstance(exc.data, str) else str(exc.data or "")
        selector = data.removeprefix("0x")[:8].lower()
        if name := ERROR_SELECTORS.get(selector):
            return _from_contract_error(name, detail, message_id)
        return TargetExecutionFailed(f"Unknown custom error {data}", message_id)

    if isinstance(exc, ContractLogicError):
        for name in CONTRACT_ERRORS:
            if name in detail:
                return _from_contract_error(name, detail, message_id)
        lowered = detail.lower()
        if any(marker in lowered for marker in _RESOURCE_MARKERS):
            return InsufficientResources(detail, message_id)
        return TargetExecutionFailed(detail, message_id)

    if isinstance(exc, (TimeExhausted, asyncio.TimeoutError, TimeoutError)):
        return ConnectivityError(f"Timed out: {detail or type(exc).__name__}", message_id)

    if isinstance(exc, (ConnectionError, OSError, httpx.TransportError)):
        return ConnectivityError(detail, message_id)

    lowered = detail.lower()
    if any(marker in lowered for marker in _RESOURCE_MARKERS):
        return InsufficientResources(detail, message_id)

    logger.debug(f"Unclassified error {type(exc).__name__}: {detail}")
    return MessengerError(detail, message_id)
