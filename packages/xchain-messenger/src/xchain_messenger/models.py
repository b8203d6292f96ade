"""
Shared data models for the cross-chain messenger.

This module contains immutable data classes for messages, the events that
announce them on the source chain and the notifications emitted when they
execute on the destination chain.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from hexbytes import HexBytes
from web3 import Web3


def normalize_hex32(value: Any) -> str:
    """Normalize a 32-byte identifier (int, bytes or hex string) to 0x-prefixed lowercase hex."""
    match value:
        case int():
            raw = value.to_bytes(32, "big")
        case bytes() | bytearray():
            raw = bytes(value)
        case str():
            raw = bytes(HexBytes(value))
        case _:
            raise TypeError(f"Unsupported identifier type: {type(value).__name__}")

    if len(raw) != 32:
        raise ValueError(f"Identifier must be 32 bytes, got {len(raw)}")
    return "0x" + raw.hex()


def to_payload_bytes(value: Any) -> bytes:
    """Convert a payload given as bytes or a hex string to bytes."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes(HexBytes(value)) if value else b""
    raise TypeError(f"Unsupported payload type: {type(value).__name__}")


@dataclass(frozen=True, slots=True)
class CrossChainMessage:
    """A message travelling from a source chain to a destination chain.

    Field order is the canonical order used for signing and verification.

    Attributes:
        message_id: keccak256 over (source_chain_id, sender, nonce)
        source_chain_id: Chain where the message was created
        target_chain_id: Chain where the message must execute
        sender: Address that created the message on the source chain
        target: Address invoked on the destination chain
        payload: Opaque calldata handed to the target
        nonce: Sequence number per source chain, starting at 1
        timestamp: Creation time on the source chain (Unix seconds)
    """

    message_id: str
    source_chain_id: int
    target_chain_id: int
    sender: str
    target: str
    payload: bytes
    nonce: int
    timestamp: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "message_id", normalize_hex32(self.message_id))
        object.__setattr__(self, "sender", Web3.to_checksum_address(self.sender))
        object.__setattr__(self, "target", Web3.to_checksum_address(self.target))
        object.__setattr__(self, "payload", to_payload_bytes(self.payload))

        if self.nonce < 1:
            raise ValueError(f"Nonce must be positive, got {self.nonce}")

    def __str__(self) -> str:
        return (
            f"CrossChainMessage(id={self.message_id[:10]}..., "
            f"{self.source_chain_id}->{self.target_chain_id}, "
            f"nonce={self.nonce}, payload={len(self.payload)}B)"
        )

    def as_abi_tuple(self) -> tuple[bytes, int, int, str, str, bytes, int, int]:
        """Struct tuple in the order expected by processMessage."""
        return (
            bytes(HexBytes(self.message_id)),
            self.source_chain_id,
            self.target_chain_id,
            self.sender,
            self.target,
            self.payload,
            self.nonce,
            self.timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "message_id": self.message_id,
            "source_chain_id": self.source_chain_id,
            "target_chain_id": self.target_chain_id,
            "sender": self.sender,
            "target": self.target,
            "payload": "0x" + self.payload.hex(),
            "nonce": self.nonce,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class MessageSentEvent:
    """A MessageSent event observed on the source chain.

    Attributes:
        message: The message announced by the event
        transaction_hash: Hash of the transaction that emitted the event
        block_number: Block number where the event occurred
        log_index: Index of the log entry in the block
        signature: Relayer signature attached upstream, if the variant forwards one
    """

    message: CrossChainMessage
    transaction_hash: str
    block_number: int
    log_index: int = 0
    signature: bytes | None = None

    def __str__(self) -> str:
        return (
            f"MessageSentEvent(id={self.message.message_id[:10]}..., "
            f"nonce={self.message.nonce}, block={self.block_number}, "
            f"tx={self.transaction_hash[:10]}...)"
        )

    @property
    def unique_key(self) -> tuple[str, str]:
        """Key used by the relayer to recognise an event it already forwarded."""
        return (self.transaction_hash, self.message.message_id)

    @property
    def position(self) -> tuple[int, int]:
        return (self.block_number, self.log_index)


@dataclass(frozen=True, slots=True)
class MessageReceived:
    """Notification emitted by the destination after a message executed."""

    message_id: str
    source_chain_id: int
    sender: str
    target: str
    payload: bytes
    nonce: int

    @classmethod
    def from_message(cls, message: CrossChainMessage) -> "MessageReceived":
        return cls(
            message_id=message.message_id,
            source_chain_id=message.source_chain_id,
            sender=message.sender,
            target=message.target,
            payload=message.payload,
            nonce=message.nonce,
        )


@dataclass(frozen=True, slots=True)
class ExecutionReceipt:
    """Outcome of a successful MessageExecutor.process call."""

    message_id: str
    source_chain_id: int
    nonce: int
    relayer: str
    result: Any = None


class RelayOutcome(Enum):
    """What became of one event handed to the relay consumer."""
    RELAYED = "relayed"
    ALREADY_PROCESSED = "already_processed"
    DEFERRED = "deferred"
    REJECTED = "rejected"
    FAILED = "failed"
    SKIPPED = "skipped"
