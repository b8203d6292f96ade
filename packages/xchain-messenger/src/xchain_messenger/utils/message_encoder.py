"""
Message encoding utilities.

Canonical ABI encodings and digests shared by the source-side sender, the
relayer and the destination-side validator. Every party must hash exactly the
same field set in exactly the same order.
"""

from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from ..models import CrossChainMessage

MESSAGE_ID_TYPES: list[str] = ["uint256", "address", "uint256"]

MESSAGE_DIGEST_TYPES: list[str] = [
    "bytes32",  # messageId
    "uint256",  # sourceChainId
    "uint256",  # targetChainId
    "address",  # sender
    "address",  # target
    "bytes",    # payload
    "uint256",  # nonce
    "uint256",  # timestamp
]


class MessageEncoder:
    """Utilities for encoding and hashing cross-chain messages."""

    @staticmethod
    def generate_message_id(source_chain_id: int, sender: str, nonce: int) -> str:
        """
        Compute the message identifier.

        keccak256(abi.encode(uint256 sourceChainId, address sender, uint256 nonce))

        Args:
            source_chain_id: Chain where the message originates
            sender: Address that created the message
            nonce: Sequence number assigned to the message

        Returns:
            0x-prefixed 32-byte hex identifier
        """
        encoded = encode(
            MESSAGE_ID_TYPES,
            [source_chain_id, Web3.to_checksum_address(sender), nonce],
        )
        return "0x" + bytes(Web3.keccak(encoded)).hex()

    @staticmethod
    def encode_message(message: CrossChainMessage) -> bytes:
        """ABI-encode all eight message fields in canonical order."""
        return encode(
            MESSAGE_DIGEST_TYPES,
            [
                bytes(HexBytes(message.message_id)),
                message.source_chain_id,
                message.target_chain_id,
                message.sender,
                message.target,
                message.payload,
                message.nonce,
                message.timestamp,
            ],
        )

    @staticmethod
    def message_digest(message: CrossChainMessage) -> bytes:
        """keccak256 of the canonical encoding; this is what relayers sign."""
        return bytes(Web3.keccak(MessageEncoder.encode_message(message)))


generate_message_id = MessageEncoder.generate_message_id
message_digest = MessageEncoder.message_digest
