#!/usr/bin/env python3
"""Tests for the configuration module."""

import json
import logging

import pytest

from xchain_messenger.config import ChainConfig, ChainPairConfig, MonitoringConfig, RelayerConfig

SENDER_CONTRACT = "0x85BfE05492aFC3D04Ff3B2ca6771ACF6f853d90d"
RECEIVER_CONTRACT = "0x742D35Cc6634C0532925A3B844bC9e7595f0bEB7"
PRIVATE_KEY = "0x" + "11" * 32

ENV_VARS = (
    "RELAYER_CONFIG", "SOURCE_RPC_URL", "SOURCE_CHAIN_ID", "SOURCE_SENDER_ADDRESS", "SOURCE_WS_URL",
    "SOURCE_NAME", "TARGET_RPC_URL", "TARGET_CHAIN_ID", "TARGET_RECEIVER_ADDRESS", "TARGET_NAME",
    "POLLING_INTERVAL", "BACKFILL_BLOCKS", "FORWARD_SIGNATURES", "REQUEST_TIMEOUT", "RETRY_COUNT",
    "PRIVATE_KEY", "APPD_URL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def source():
    return ChainConfig(
        name="sepolia",
        chain_id=11155111,
        rpc_url="https://ethereum-sepolia.publicnode.com",
        sender_address=SENDER_CONTRACT,
        ws_url="wss://ethereum-sepolia.publicnode.com",
    )


@pytest.fixture
def destination():
    return ChainConfig(
        name="bsc-testnet",
        chain_id=97,
        rpc_url="https://bsc-testnet.publicnode.com",
        receiver_address=RECEIVER_CONTRACT,
    )


@pytest.fixture
def single_pair_env(monkeypatch):
    monkeypatch.setenv("SOURCE_RPC_URL", "https://ethereum-sepolia.publicnode.com")
    monkeypatch.setenv("SOURCE_CHAIN_ID", "11155111")
    monkeypatch.setenv("SOURCE_SENDER_ADDRESS", SENDER_CONTRACT.lower())
    monkeypatch.setenv("TARGET_RPC_URL", "https://bsc-testnet.publicnode.com")
    monkeypatch.setenv("TARGET_CHAIN_ID", "97")
    monkeypatch.setenv("TARGET_RECEIVER_ADDRESS", RECEIVER_CONTRACT)


class TestChainConfig:
    """Tests for ChainConfig."""

    def test_checksum_address_conversion(self):
        config = ChainConfig(name="c", chain_id=1, rpc_url="https://test.rpc", sender_address=SENDER_CONTRACT.lower())
        assert config.sender_address == SENDER_CONTRACT
        assert config.receiver_address is None

    def test_invalid_rpc_url_scheme(self):
        with pytest.raises(ValueError, match="Invalid RPC URL scheme"):
            ChainConfig(name="c", chain_id=1, rpc_url="ftp://invalid.scheme")

    def test_missing_rpc_url(self):
        with pytest.raises(ValueError, match="RPC URL is required"):
            ChainConfig(name="c", chain_id=1, rpc_url="")

    def test_invalid_address(self):
        with pytest.raises(ValueError, match="Invalid sender address"):
            ChainConfig(name="c", chain_id=1, rpc_url="https://test.rpc", sender_address="invalid-address")

    def test_invalid_ws_url(self):
        with pytest.raises(ValueError, match="Invalid WebSocket URL"):
            ChainConfig(name="c", chain_id=1, rpc_url="https://test.rpc", ws_url="https://not.ws")

    def test_chain_id_positive(self):
        with pytest.raises(ValueError, match="Chain ID must be positive"):
            ChainConfig(name="c", chain_id=0, rpc_url="https://test.rpc")


class TestChainPairConfig:
    """Tests for ChainPairConfig."""

    def test_valid_pair(self, source, destination):
        pair = ChainPairConfig(source=source, destination=destination)
        assert pair.name == "sepolia->bsc-testnet"
        assert pair.polling_interval == 15
        assert pair.backfill_blocks == 100
        assert pair.use_subscription

    def test_same_chain_rejected(self, source):
        with pytest.raises(ValueError, match="must differ"):
            ChainPairConfig(source=source, destination=source)

    def test_destination_needs_receiver(self, source):
        destination = ChainConfig(name="bsc", chain_id=97, rpc_url="https://test.rpc")
        with pytest.raises(ValueError, match="needs a receiver address"):
            ChainPairConfig(source=source, destination=destination)

    @pytest.mark.parametrize("interval", [0, 301])
    def test_polling_interval_bounds(self, source, destination, interval):
        with pytest.raises(ValueError, match="Polling interval"):
            ChainPairConfig(source=source, destination=destination, polling_interval=interval)

    def test_backfill_bounds(self, source, destination):
        with pytest.raises(ValueError, match="Backfill blocks too high"):
            ChainPairConfig(source=source, destination=destination, backfill_blocks=10_001)


class TestMonitoringConfig:
    """Tests for MonitoringConfig."""

    def test_defaults(self):
        config = MonitoringConfig()
        assert config.request_timeout == 30
        assert config.retry_count == 3
        assert config.dedupe_window == 10_000

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"request_timeout": 0}, "Request timeout must be positive"),
            ({"request_timeout": 121}, "Request timeout too long"),
            ({"retry_count": 11}, "Retry count too high"),
            ({"dedupe_window": 0}, "Dedupe window must be positive"),
        ],
    )
    def test_bounds(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            MonitoringConfig(**kwargs)


class TestRelayerConfig:
    """Tests for RelayerConfig loading."""

    def test_requires_pairs(self):
        with pytest.raises(ValueError, match="At least one chain pair"):
            RelayerConfig(pairs=())

    def test_local_mode_requires_key(self, source, destination):
        with pytest.raises(ValueError, match="Local mode requires PRIVATE_KEY"):
            RelayerConfig(pairs=(ChainPairConfig(source, destination),), local_mode=True)

    def test_invalid_private_key(self, source, destination):
        with pytest.raises(ValueError, match="Invalid private key length"):
            RelayerConfig(pairs=(ChainPairConfig(source, destination),), private_key="0x1234")

    def test_duplicate_pairs(self, source, destination):
        pair = ChainPairConfig(source, destination)
        with pytest.raises(ValueError, match="Duplicate chain pairs"):
            RelayerConfig(pairs=(pair, pair))

    def test_from_env_single_pair(self, single_pair_env, monkeypatch):
        monkeypatch.setenv("POLLING_INTERVAL", "5")
        monkeypatch.setenv("FORWARD_SIGNATURES", "true")
        monkeypatch.setenv("PRIVATE_KEY", PRIVATE_KEY)

        config = RelayerConfig.from_env(local_mode=True)

        [pair] = config.pairs
        assert pair.source.chain_id == 11155111
        assert pair.source.sender_address == SENDER_CONTRACT
        assert pair.destination.receiver_address == RECEIVER_CONTRACT
        assert pair.polling_interval == 5
        assert pair.forward_signatures
        assert config.local_mode
        assert config.private_key == PRIVATE_KEY

    def test_from_env_missing_variable(self, single_pair_env, monkeypatch):
        monkeypatch.delenv("TARGET_RECEIVER_ADDRESS")
        with pytest.raises(ValueError, match="TARGET_RECEIVER_ADDRESS environment variable is required"):
            RelayerConfig.from_env()

    def test_from_env_invalid_number(self, single_pair_env, monkeypatch):
        monkeypatch.setenv("SOURCE_CHAIN_ID", "sepolia")
        with pytest.raises(ValueError, match="Invalid relayer environment"):
            RelayerConfig.from_env()

    def test_from_file_multiple_pairs(self, tmp_path, monkeypatch):
        document = {
            "chains": {
                "sepolia": {
                    "chain_id": 11155111,
                    "rpc_url": "https://ethereum-sepolia.publicnode.com",
                    "sender_address": SENDER_CONTRACT,
                    "receiver_address": RECEIVER_CONTRACT,
                },
                "bsc-testnet": {
                    "chain_id": 97,
                    "rpc_url": "https://bsc-testnet.publicnode.com",
                    "sender_address": RECEIVER_CONTRACT,
                    "receiver_address": SENDER_CONTRACT,
                },
            },
            "pairs": [
                {"source": "sepolia", "destination": "bsc-testnet", "polling_interval": 10},
                {"source": "bsc-testnet", "destination": "sepolia", "use_subscription": False},
            ],
            "monitoring": {"request_timeout": 20},
        }
        path = tmp_path / "relayer.json"
        path.write_text(json.dumps(document))
        monkeypatch.setenv("RELAYER_CONFIG", str(path))

        config = RelayerConfig.from_env()

        assert [pair.name for pair in config.pairs] == ["sepolia->bsc-testnet", "bsc-testnet->sepolia"]
        assert config.pairs[0].polling_interval == 10
        assert not config.pairs[1].use_subscription
        assert config.monitoring.request_timeout == 20
        assert not config.local_mode

    def test_from_file_unknown_chain(self, tmp_path):
        path = tmp_path / "relayer.json"
        path.write_text(json.dumps({
            "chains": {"a": {"chain_id": 1, "rpc_url": "https://a.rpc", "sender_address": SENDER_CONTRACT}},
            "pairs": [{"source": "a", "destination": "b"}],
        }))
        with pytest.raises(ValueError, match="unknown chain"):
            RelayerConfig.from_file(path)

    def test_from_file_missing(self, tmp_path):
        with pytest.raises(ValueError, match="not found"):
            RelayerConfig.from_file(tmp_path / "missing.json")

    def test_from_file_invalid_json(self, tmp_path):
        path = tmp_path / "relayer.json"
        path.write_text("{not json")
        with pytest.raises(ValueError, match="Invalid JSON"):
            RelayerConfig.from_file(path)

    def test_log_config_hides_key(self, single_pair_env, monkeypatch, caplog):
        monkeypatch.setenv("PRIVATE_KEY", PRIVATE_KEY)
        config = RelayerConfig.from_env(local_mode=True)

        with caplog.at_level(logging.INFO):
            config.log_config()

        assert "[SET]" in caplog.text
        assert PRIVATE_KEY not in caplog.text
        assert "source->destination" in caplog.text
