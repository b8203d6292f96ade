"""Configuration management for the cross-chain relayer.

This module provides type-safe configuration dataclasses with validation.
A relayer instance serves one or more (source, destination) chain pairs; the
pairs are read from a JSON file, or a single pair from environment variables.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from web3 import Web3

# Get logger for this module
logger = logging.getLogger(__name__)


def _checksum(address: str | None, label: str) -> str | None:
    if not address:
        return None
    if not Web3.is_address(address):
        raise ValueError(f"Invalid {label}: {address}")
    return Web3.to_checksum_address(address)


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Connection details for one chain.

    Attributes:
        name: Human-readable name used in logs
        chain_id: Chain ID, checked against the RPC on startup
        rpc_url: HTTP(S) RPC endpoint
        sender_address: MessageSender contract (needed when used as a source)
        receiver_address: Messenger contract exposing processMessage (needed
            when used as a destination)
        ws_url: Optional WebSocket endpoint for live subscriptions
    """

    name: str
    chain_id: int
    rpc_url: str
    sender_address: str | None = None
    receiver_address: str | None = None
    ws_url: str | None = None

    def __post_init__(self) -> None:
        """Validate chain configuration."""
        if not self.name:
            raise ValueError("Chain name is required")

        if self.chain_id <= 0:
            raise ValueError(f"Chain ID must be positive, got {self.chain_id}")

        if not self.rpc_url:
            raise ValueError(f"RPC URL is required for chain {self.name}")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https', 'ws', 'wss'):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http, https, ws, or wss"
            )

        if self.ws_url and urlparse(self.ws_url).scheme not in ('ws', 'wss'):
            raise ValueError(f"Invalid WebSocket URL for chain {self.name}: {self.ws_url}")

        # Use object.__setattr__ since dataclass is frozen
        object.__setattr__(self, 'sender_address', _checksum(self.sender_address, "sender address"))
        object.__setattr__(self, 'receiver_address', _checksum(self.receiver_address, "receiver address"))


@dataclass(frozen=True, slots=True)
class ChainPairConfig:
    """One monitored (source, destination) pair."""

    source: ChainConfig
    destination: ChainConfig
    polling_interval: int = 15  # seconds between re-scans
    backfill_blocks: int = 100  # blocks scanned behind the head on startup
    use_subscription: bool = True  # also listen over WebSocket when ws_url is set
    forward_signatures: bool = False  # adopt signatures attached to events

    def __post_init__(self) -> None:
        """Validate pair configuration."""
        if self.source.chain_id == self.destination.chain_id:
            raise ValueError(f"Source and destination must differ, both are {self.source.chain_id}")

        if not self.source.sender_address:
            raise ValueError(f"Source chain {self.source.name} needs a sender address")

        if not self.destination.receiver_address:
            raise ValueError(f"Destination chain {self.destination.name} needs a receiver address")

        if self.polling_interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {self.polling_interval}")
        if self.polling_interval > 300:
            raise ValueError(f"Polling interval too long (max 300s), got {self.polling_interval}")

        if self.backfill_blocks < 0:
            raise ValueError(f"Backfill blocks must be non-negative, got {self.backfill_blocks}")
        if self.backfill_blocks > 10_000:
            raise ValueError(f"Backfill blocks too high (max 10000), got {self.backfill_blocks}")

    @property
    def name(self) -> str:
        return f"{self.source.name}->{self.destination.name}"


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Settings shared by all monitors."""
    request_timeout: int = 30  # per network call, seconds
    retry_count: int = 3  # retries for transient query errors
    receipt_timeout: int = 120  # seconds to wait for a transaction receipt
    status_interval: int = 30  # seconds between status log lines
    dedupe_window: int = 10_000  # forwarded events remembered per pair
    gas_limit: int = 500_000

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")

        if self.retry_count < 0:
            raise ValueError(f"Retry count must be non-negative, got {self.retry_count}")
        if self.retry_count > 10:
            raise ValueError(f"Retry count too high (max 10), got {self.retry_count}")

        if self.receipt_timeout <= 0:
            raise ValueError(f"Receipt timeout must be positive, got {self.receipt_timeout}")

        if self.status_interval <= 0:
            raise ValueError(f"Status interval must be positive, got {self.status_interval}")

        if self.dedupe_window <= 0:
            raise ValueError(f"Dedupe window must be positive, got {self.dedupe_window}")

        if self.gas_limit <= 0:
            raise ValueError(f"Gas limit must be positive, got {self.gas_limit}")


@dataclass(frozen=True, slots=True)
class RelayerConfig:
    """Main configuration for the relayer.

    Attributes:
        pairs: Monitored chain pairs
        monitoring: Shared monitoring settings
        local_mode: Sign and submit with a local private key
        private_key: Relayer key for local mode
        appd_url: App daemon URL or socket path (empty for the default socket)
        key_id: Key identifier requested from the app daemon
    """

    pairs: tuple[ChainPairConfig, ...]
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    local_mode: bool = False
    private_key: str | None = None
    appd_url: str = ""
    key_id: str = "xchain-relayer"

    def __post_init__(self) -> None:
        """Validate relayer configuration."""
        if not self.pairs:
            raise ValueError("At least one chain pair must be configured")

        names = [pair.name for pair in self.pairs]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate chain pairs configured: {names}")

        if self.local_mode and not self.private_key:
            raise ValueError("Local mode requires PRIVATE_KEY")

        if self.private_key:
            # Basic private key validation (64 hex chars, optionally with 0x prefix)
            key = self.private_key.removeprefix('0x')
            if len(key) != 64:
                raise ValueError(
                    f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
                )
            try:
                int(key, 16)
            except ValueError:
                raise ValueError("Invalid private key format. Must be hexadecimal") from None

    @classmethod
    def from_dict(cls, data: dict[str, Any], local_mode: bool = False) -> "RelayerConfig":
        """
        Build a configuration from a parsed JSON document.

        Expected shape::

            {
              "chains": {"sepolia": {"chain_id": 11155111, "rpc_url": "...",
                                      "sender_address": "0x..", "receiver_address": "0x.."}},
              "pairs": [{"source": "sepolia", "destination": "bsc-testnet",
                         "polling_interval": 15, "backfill_blocks": 100}],
              "monitoring": {"request_timeout": 30}
            }
        """
        chains_data = data.get("chains")
        if not chains_data:
            raise ValueError("Configuration must define 'chains'")

        chains = {
            name: ChainConfig(name=name, **{k: v for k, v in entry.items() if k != "name"})
            for name, entry in chains_data.items()
        }

        pairs = []
        for entry in data.get("pairs", []):
            entry = dict(entry)
            source_name = entry.pop("source", None)
            destination_name = entry.pop("destination", None)
            if source_name not in chains or destination_name not in chains:
                raise ValueError(f"Pair references unknown chain: {source_name} -> {destination_name}")
            pairs.append(ChainPairConfig(source=chains[source_name], destination=chains[destination_name], **entry))

        return cls(
            pairs=tuple(pairs),
            monitoring=MonitoringConfig(**data.get("monitoring", {})),
            local_mode=local_mode,
            private_key=os.environ.get("PRIVATE_KEY") or data.get("private_key"),
            appd_url=os.environ.get("APPD_URL", data.get("appd_url", "")),
            key_id=data.get("key_id", "xchain-relayer"),
        )

    @classmethod
    def from_file(cls, path: str | Path, local_mode: bool = False) -> "RelayerConfig":
        """Load configuration from a JSON file."""
        config_path = Path(path)
        if not config_path.exists():
            raise ValueError(f"Configuration file not found: {config_path}")

        with config_path.open() as file:
            try:
                data: dict[str, Any] = json.load(file)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON in {config_path}: {e}") from None

        return cls.from_dict(data, local_mode=local_mode)

    @classmethod
    def from_env(cls, local_mode: bool = False) -> "RelayerConfig":
        """Load configuration from environment variables.

        RELAYER_CONFIG, when set, points at a JSON file describing any number of
        pairs. Otherwise a single pair is read from SOURCE_* / TARGET_* variables.

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        if config_file := os.environ.get("RELAYER_CONFIG"):
            return cls.from_file(config_file, local_mode=local_mode)

        required = {
            "SOURCE_RPC_URL": "RPC endpoint of the source chain",
            "SOURCE_CHAIN_ID": "chain ID of the source chain",
            "SOURCE_SENDER_ADDRESS": "MessageSender contract on the source chain",
            "TARGET_RPC_URL": "RPC endpoint of the destination chain",
            "TARGET_CHAIN_ID": "chain ID of the destination chain",
            "TARGET_RECEIVER_ADDRESS": "messenger contract on the destination chain",
        }
        for name, description in required.items():
            if not os.environ.get(name):
                raise ValueError(f"{name} environment variable is required ({description})")

        try:
            source = ChainConfig(
                name=os.environ.get("SOURCE_NAME", "source"),
                chain_id=int(os.environ["SOURCE_CHAIN_ID"]),
                rpc_url=os.environ["SOURCE_RPC_URL"],
                sender_address=os.environ["SOURCE_SENDER_ADDRESS"],
                ws_url=os.environ.get("SOURCE_WS_URL") or None,
            )
            destination = ChainConfig(
                name=os.environ.get("TARGET_NAME", "destination"),
                chain_id=int(os.environ["TARGET_CHAIN_ID"]),
                rpc_url=os.environ["TARGET_RPC_URL"],
                receiver_address=os.environ["TARGET_RECEIVER_ADDRESS"],
            )
            pair = ChainPairConfig(
                source=source,
                destination=destination,
                polling_interval=int(os.environ.get("POLLING_INTERVAL", "15")),
                backfill_blocks=int(os.environ.get("BACKFILL_BLOCKS", "100")),
                forward_signatures=os.environ.get("FORWARD_SIGNATURES", "").lower() in ("1", "true", "yes"),
            )
            monitoring = MonitoringConfig(
                request_timeout=int(os.environ.get("REQUEST_TIMEOUT", "30")),
                retry_count=int(os.environ.get("RETRY_COUNT", "3")),
            )
        except ValueError as e:
            raise ValueError(f"Invalid relayer environment: {e}") from None

        return cls(
            pairs=(pair,),
            monitoring=monitoring,
            local_mode=local_mode,
            private_key=os.environ.get("PRIVATE_KEY") or None,
            appd_url=os.environ.get("APPD_URL", ""),
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format, hiding secrets."""
        logger.info("=" * 60)
        logger.info("Cross-Chain Relayer Configuration")
        logger.info("=" * 60)
        logger.info(f"Mode: {'LOCAL' if self.local_mode else 'APPD'}")
        logger.info(f"Private Key: {'[SET]' if self.private_key else '[NOT SET]'}")

        for pair in self.pairs:
            logger.info(f"Pair {pair.name}:")
            logger.info(f"  Source: chain {pair.source.chain_id} via {pair.source.rpc_url}")
            logger.info(f"    Sender: {pair.source.sender_address}")
            if pair.source.ws_url:
                logger.info(f"    WebSocket: {pair.source.ws_url}")
            logger.info(f"  Destination: chain {pair.destination.chain_id} via {pair.destination.rpc_url}")
            logger.info(f"    Receiver: {pair.destination.receiver_address}")
            logger.info(f"  Polling Interval: {pair.polling_interval}s")
            logger.info(f"  Backfill Blocks: {pair.backfill_blocks}")

        logger.info("Monitoring Settings:")
        logger.info(f"  Request Timeout: {self.monitoring.request_timeout}s")
        logger.info(f"  Retry Count: {self.monitoring.retry_count}")
        logger.info(f"  Dedupe Window: {self.monitoring.dedupe_window}")
        logger.info("=" * 60)
