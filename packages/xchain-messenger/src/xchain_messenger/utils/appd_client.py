import codecs
import json
import logging
from typing import Any

import cbor2
import httpx
from web3.exceptions import ContractLogicError
from web3.types import TxParams

from ..errors import ConnectivityError, MessengerError, classify_error

logger = logging.getLogger(__name__)


class AppdClient:
    """
    Client of the app daemon that holds the relayer key.

    In appd mode the relayer never sees its private key for submission: the
    daemon derives it, signs transactions and submits them. The key can still
    be fetched for message signing.
    """

    APPD_SOCKET_PATH = "/run/rofl-appd.sock"

    def __init__(self, url: str = '', timeout: float | None = 60.0):
        """
        Args:
            url: HTTP URL or unix socket path (empty for the default socket)
            timeout: Per-request timeout in seconds
        """
        self.url = url
        self.timeout = timeout

    def _transport(self) -> httpx.AsyncHTTPTransport | None:
        if self.url and not self.url.startswith('http'):
            logger.debug(f"Using unix domain socket: {self.url}")
            return httpx.AsyncHTTPTransport(uds=self.url)
        if not self.url:
            logger.debug(f"Using unix domain socket: {self.APPD_SOCKET_PATH}")
            return httpx.AsyncHTTPTransport(uds=self.APPD_SOCKET_PATH)
        return None

    async def _appd_post(self, path: str, payload: Any) -> Any:
        base = self.url if self.url.startswith('http') else "http://localhost"
        logger.debug(f"Posting to {base + path}: {json.dumps(payload)}")

        try:
            async with httpx.AsyncClient(transport=self._transport()) as client:
                response = await client.post(base + path, json=payload, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise MessengerError(f"App daemon returned {e.response.status_code} for {path}") from e
        except (httpx.TransportError, OSError) as e:
            raise ConnectivityError(f"App daemon unreachable: {e}") from e

    async def fetch_key(self, key_id: str) -> str:
        """Derive (or fetch) the secp256k1 key registered under key_id."""
        payload = {
            "key_id": key_id,
            "kind": "secp256k1"
        }

        response = await self._appd_post('/rofl/v1/keys/generate', payload)
        return response["key"]

    @staticmethod
    def _decode_cbor_response(response_hex: str) -> dict[str, Any]:
        """
        Decode the CBOR-encoded call result returned by the daemon.

        Args:
            response_hex: Hex-encoded CBOR response

        Returns:
            Decoded CBOR data as dictionary
        """
        try:
            data_bytes = codecs.decode(response_hex, "hex")
            cbor_result = cbor2.loads(data_bytes)
            logger.debug(f"Decoded CBOR: {cbor_result}")
            return cbor_result if isinstance(cbor_result, dict) else {"data": cbor_result}
        except (ValueError, cbor2.CBORDecodeError) as decode_error:
            logger.error(f"CBOR decode error: {decode_error}")
            return {"error": "decode_failed", "raw": response_hex}

    async def submit_tx(self, tx: TxParams, message_id: str | None = None) -> dict[str, Any]:
        """
        Sign and submit a transaction through the daemon.

        Args:
            tx: Transaction parameters (gas, to, value, data)
            message_id: Message the transaction relays, for error attribution

        Returns:
            The decoded call result

        Raises:
            MessengerError: Classified failure reported by the daemon
        """
        payload = {
            "tx": {
                "kind": "eth",
                "data": {
                    "gas_limit": tx["gas"],
                    "to": tx["to"].removeprefix("0x"),
                    "value": tx.get("value", 0),
                    "data": tx["data"].removeprefix("0x"),
                },
            },
            "encrypt": False,
        }

        response = await self._appd_post('/rofl/v1/tx/sign-submit', payload)
        response_hex = response["data"]
        logger.debug(f"App daemon raw response: {response_hex}")

        decoded_response = self._decode_cbor_response(response_hex)

        if 'ok' in decoded_response:
            logger.info("Transaction submitted successfully through app daemon")
            return decoded_response
        if 'error' in decoded_response or 'fail' in decoded_response:
            error_msg = decoded_response.get('error') or decoded_response.get('fail')
            logger.error(f"App daemon transaction failed: {error_msg}")
            raise classify_error(ContractLogicError(f"execution reverted: {error_msg}"), message_id)

        logger.warning(f"Unknown app daemon response format: {decoded_response}")
        return decoded_response
