#!/usr/bin/env python3
"""Unit tests for the app daemon client."""

from unittest.mock import AsyncMock, MagicMock, Mock, patch

import cbor2
import httpx
import pytest

from xchain_messenger.errors import ConnectivityError, InsufficientResources, MessengerError, TargetExecutionFailed
from xchain_messenger.utils.appd_client import AppdClient


def mock_http_client(mock_client_class, json_result=None, raise_for_status=None):
    mock_client = AsyncMock()
    mock_response = MagicMock()
    mock_response.json = MagicMock(return_value=json_result)
    mock_response.raise_for_status = MagicMock(side_effect=raise_for_status)
    mock_client.post = AsyncMock(return_value=mock_response)
    mock_client_class.return_value.__aenter__.return_value = mock_client
    return mock_client


TX = {
    "gas": 500_000,
    "to": "0x742D35Cc6634C0532925A3B844bC9e7595f0bEB7",
    "value": 0,
    "data": "0xdeadbeef",
}


@pytest.mark.asyncio
class TestAppdClient:
    """Test suite for AppdClient."""

    async def test_init_default(self):
        client = AppdClient()
        assert client.url == ''
        assert client.timeout == 60.0

    @patch('xchain_messenger.utils.appd_client.httpx.AsyncClient')
    async def test_appd_post_unix_socket(self, mock_client_class):
        """Default socket is used when no URL is given."""
        mock_client = mock_http_client(mock_client_class, {"result": "success"})

        result = await AppdClient()._appd_post("/test/path", {"test": "data"})

        transport_arg = mock_client_class.call_args[1]['transport']
        assert isinstance(transport_arg, httpx.AsyncHTTPTransport)
        mock_client.post.assert_called_once_with(
            "http://localhost/test/path",
            json={"test": "data"},
            timeout=60.0
        )
        assert result == {"result": "success"}

    @patch('xchain_messenger.utils.appd_client.httpx.AsyncClient')
    async def test_appd_post_http_url(self, mock_client_class):
        mock_client = mock_http_client(mock_client_class, {"result": "success"})

        await AppdClient("http://test.server:8080", timeout=5)._appd_post("/test/path", {})

        assert mock_client_class.call_args[1]['transport'] is None
        mock_client.post.assert_called_once_with("http://test.server:8080/test/path", json={}, timeout=5)

    @patch('xchain_messenger.utils.appd_client.httpx.AsyncClient')
    async def test_appd_post_status_error(self, mock_client_class):
        mock_http_client(
            mock_client_class,
            raise_for_status=httpx.HTTPStatusError("Server error", request=Mock(), response=Mock(status_code=500)),
        )

        with pytest.raises(MessengerError, match="500"):
            await AppdClient()._appd_post("/test/path", {})

    @patch('xchain_messenger.utils.appd_client.httpx.AsyncClient')
    async def test_appd_post_unreachable(self, mock_client_class):
        mock_client = mock_http_client(mock_client_class)
        mock_client.post.side_effect = httpx.ConnectError("no socket")

        with pytest.raises(ConnectivityError):
            await AppdClient()._appd_post("/test/path", {})

    @patch.object(AppdClient, '_appd_post')
    async def test_fetch_key(self, mock_appd_post):
        mock_appd_post.return_value = {"key": "0x" + "ab" * 32}

        key = await AppdClient().fetch_key("xchain-relayer")

        assert key == "0x" + "ab" * 32
        mock_appd_post.assert_called_once_with(
            '/rofl/v1/keys/generate',
            {"key_id": "xchain-relayer", "kind": "secp256k1"}
        )

    @patch.object(AppdClient, "_appd_post")
    async def test_submit_tx_unknown_response(self, mock_appd_post):
        mock_appd_post.return_value = {"data": cbor2.dumps({"pending": True}).hex()}
        assert await AppdClient().submit_tx(TX) == {"pending": True}

    @patch.object(AppdClient, '_appd_post')
    async def test_submit_tx_success(self, mock_appd_post):
        mock_appd_post.return_value = {"data": cbor2.dumps({"ok": b"\x01" * 32}).hex()}

        result = await AppdClient().submit_tx(TX)

        assert result == {"ok": b"\x01" * 32}
        path, payload = mock_appd_post.call_args[0]
        assert path == '/rofl/v1/tx/sign-submit'
        assert payload["tx"]["data"] == {
            "gas_limit": 500_000,
            "to": "742D35Cc6634C0532925A3B844bC9e7595f0bEB7",
            "value": 0,
            "data": "deadbeef",
        }
        assert payload["encrypt"] is False

    @patch.object(AppdClient, '_appd_post')
    async def test_submit_tx_revert_is_classified(self, mock_appd_post):
        mock_appd_post.return_value = {"data": cbor2.dumps({"fail": "target reverted"}).hex()}

        with pytest.raises(TargetExecutionFailed) as exc_info:
            await AppdClient().submit_tx(TX, message_id="0x" + "cd" * 32)
        assert exc_info.value.message_id == "0x" + "cd" * 32

    @patch.object(AppdClient, '_appd_post')
    async def test_submit_tx_insufficient_funds(self, mock_appd_post):
        mock_appd_post.return_value = {"data": cbor2.dumps({"error": "insufficient funds for gas"}).hex()}

        with pytest.raises(InsufficientResources):
            await AppdClient().submit_tx(TX)


class TestCborDecoding:
    """Decoding of daemon call results."""

    def test_decode_cbor_response(self):
        encoded = cbor2.dumps({"ok": b"\x01" * 32}).hex()
        assert AppdClient._decode_cbor_response(encoded) == {"ok": b"\x01" * 32}

    def test_decode_cbor_response_non_dict(self):
        assert AppdClient._decode_cbor_response(cbor2.dumps([1, 2]).hex()) == {"data": [1, 2]}

    def test_decode_cbor_response_invalid_hex(self):
        assert AppdClient._decode_cbor_response("zz")["error"] == "decode_failed"
