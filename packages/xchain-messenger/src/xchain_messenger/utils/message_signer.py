import logging

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes

from ..errors import UnauthorizedRelayer
from ..models import CrossChainMessage
from .message_encoder import MessageEncoder

logger = logging.getLogger(__name__)


class MessageSigner:
    """
    Produces relayer signatures over message digests.

    Signatures follow EIP-191 personal_sign over the raw 32-byte digest, the
    same scheme as ethers' signMessage(getBytes(hash)).
    """

    def __init__(self, private_key: str) -> None:
        """
        Initialize the signer.

        Args:
            private_key: Relayer private key (hex, with or without 0x prefix)
        """
        self.account: LocalAccount = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self.account.address

    def sign(self, message: CrossChainMessage) -> bytes:
        """Sign the canonical digest of a message."""
        digest = MessageEncoder.message_digest(message)
        signed = self.account.sign_message(encode_defunct(primitive=digest))
        return bytes(signed.signature)

    @staticmethod
    def recover_signer(message: CrossChainMessage, signature: bytes | str) -> str:
        """
        Recover the address that signed a message.

        Raises:
            UnauthorizedRelayer: If the signature is malformed or unrecoverable
        """
        digest = MessageEncoder.message_digest(message)
        try:
            return Account.recover_message(
                encode_defunct(primitive=digest),
                signature=bytes(HexBytes(signature)),
            )
        except Exception as e:
            logger.debug(f"Signature recovery failed for {message.message_id[:10]}...: {e}")
            raise UnauthorizedRelayer(None, message.message_id) from e
