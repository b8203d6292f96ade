"""Message submission to a destination messenger contract.

This module submits relayed messages to the destination chain, supporting
both local mode (the relayer key signs through web3 middleware) and appd
mode (the app daemon signs and submits the transaction).
"""

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.types import TxParams, TxReceipt, Wei

from .errors import TargetExecutionFailed, classify_error
from .models import CrossChainMessage
from .utils.retry import retry_with_backoff

if TYPE_CHECKING:
    from .utils.appd_client import AppdClient
    from .utils.contract_utility import ContractUtility

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MessageSubmitter:
    """Submits messages to, and queries, the destination messenger contract."""

    def __init__(
        self,
        contract_util: "ContractUtility",
        appd_client: "AppdClient | None",
        receiver_address: str,
        relayer_address: str,
        request_timeout: float = 30,
        retry_count: int = 3,
        receipt_timeout: float = 120,
        gas_limit: int = 500_000,
    ) -> None:
        """
        Initialize the MessageSubmitter.

        Args:
            contract_util: Connection to the destination chain
            appd_client: App daemon client for submission (None for local mode)
            receiver_address: Address of the destination messenger contract
            relayer_address: Address transactions are sent from
            request_timeout: Timeout for each RPC call in seconds
            retry_count: Retries for transient query failures
            receipt_timeout: Seconds to wait for a transaction receipt
            gas_limit: Gas limit for processMessage transactions
        """
        self.contract_util: ContractUtility = contract_util
        self.appd_client: AppdClient | None = appd_client
        self.receiver_address: str = Web3.to_checksum_address(receiver_address)
        self.relayer_address: str = Web3.to_checksum_address(relayer_address)
        self.request_timeout = request_timeout
        self.retry_count = retry_count
        self.receipt_timeout = receipt_timeout
        self.gas_limit = gas_limit

        self.contract: Contract = self.contract_util.get_contract("MessageReceiver", self.receiver_address)

        mode = "appd" if appd_client else "local"
        logger.info(f"MessageSubmitter initialized in {mode} mode")
        logger.info(f"  Receiver Address: {self.receiver_address}")
        logger.info(f"  Relayer Address: {self.relayer_address}")

    @property
    def w3(self) -> Web3:
        return self.contract_util.w3

    async def _call(self, fn: Callable[..., T], *args: Any, timeout: float | None = None, **kwargs: Any) -> T:
        """Run a blocking web3 call in a worker thread with a timeout."""
        return await asyncio.wait_for(
            asyncio.to_thread(fn, *args, **kwargs),
            timeout=timeout or self.request_timeout,
        )

    async def _query(self, fn: Callable[..., T], *args: Any) -> T:
        return await retry_with_backoff(self._call, fn, *args, max_attempts=self.retry_count + 1)

    async def get_chain_id(self) -> int:
        return await self._query(lambda: self.w3.eth.chain_id)

    async def get_expected_nonce(self, chain_id: int) -> int:
        return await self._query(self.contract.functions.getExpectedNonce(chain_id).call)

    async def is_message_processed(self, message_id: str) -> bool:
        return await self._query(self.contract.functions.isMessageProcessed(bytes(HexBytes(message_id))).call)

    async def is_chain_enabled(self, chain_id: int) -> bool:
        return await self._query(self.contract.functions.supportedChains(chain_id).call)

    async def is_trusted_relayer(self, address: str) -> bool:
        return await self._query(
            self.contract.functions.trustedRelayers(Web3.to_checksum_address(address)).call
        )

    async def get_balance(self, address: str) -> int:
        return await self._query(self.w3.eth.get_balance, Web3.to_checksum_address(address))

    async def process_message(self, message: CrossChainMessage, signature: bytes) -> str:
        """
        Submit a message to the destination messenger.

        The call is simulated first so validation rejections surface as
        taxonomy errors without spending gas.

        Args:
            message: The message to relay
            signature: Relayer signature over the message digest

        Returns:
            Transaction hash of the submission

        Raises:
            MessengerError: The classified failure
        """
        function = self.contract.functions.processMessage(message.as_abi_tuple(), signature)

        try:
            await self._call(function.call, {"from": self.relayer_address})
            logger.debug(f"Dry run passed for {message}")

            match self.appd_client:
                case None:
                    return await self._submit_local(function, message)
                case appd_client:
                    return await self._submit_appd(function, appd_client, message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise classify_error(e, message.message_id) from e

    async def _submit_local(self, function: Any, message: CrossChainMessage) -> str:
        gas_price = await self._call(lambda: self.w3.eth.gas_price)
        tx_hash: HexBytes = await self._call(
            function.transact, {"from": self.relayer_address, "gas": self.gas_limit, "gasPrice": gas_price}
        )
        tx_hex = Web3.to_hex(tx_hash)
        logger.info(f"Transaction submitted for {message.message_id[:10]}...: {tx_hex}")

        # web3 raises TimeExhausted after receipt_timeout; wait_for is the outer bound
        receipt: TxReceipt = await self._call(
            self.w3.eth.wait_for_transaction_receipt,
            tx_hash,
            self.receipt_timeout,
            timeout=self.receipt_timeout + self.request_timeout,
        )

        if (status := receipt.get("status", 0)) != 1:
            raise TargetExecutionFailed(
                f"Transaction {tx_hex} reverted with status={status}", message.message_id
            )

        logger.info(f"Transaction confirmed in block {receipt['blockNumber']}")
        return tx_hex

    async def _submit_appd(self, function: Any, appd_client: "AppdClient", message: CrossChainMessage) -> str:
        gas_price = await self._call(lambda: self.w3.eth.gas_price)
        tx_params: TxParams = {
            "from": self.relayer_address,
            "gas": self.gas_limit,
            "gasPrice": gas_price,
            "value": Wei(0),
        }
        tx_data: dict[str, Any] = await self._call(function.build_transaction, tx_params)

        logger.debug(f"Submitting transaction through app daemon with gas={self.gas_limit}")
        result = await appd_client.submit_tx(tx_data, message.message_id)

        match result.get("ok"):
            case bytes() as raw if len(raw) == 32:
                return "0x" + raw.hex()
            case _:
                return ""
