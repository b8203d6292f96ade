#!/usr/bin/env python3
"""Entry point for the cross-chain relayer service.

Runs the relayer in appd mode (the app daemon holds the key and submits
transactions) or in local mode (a private key from the environment).
"""

import argparse
import asyncio
import logging
import os
import sys


# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


# Get logger for this module
logger = logging.getLogger(__name__)

from xchain_messenger.config import RelayerConfig
from xchain_messenger.errors import ConnectivityError
from xchain_messenger.relayer import CrossChainRelayer


async def main() -> None:
    """Main entry point for the relayer service.

    Raises:
        SystemExit: On configuration errors or when a chain is unreachable at startup
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Cross-chain relayer - carry MessageSent events to destination messengers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  RELAYER_CONFIG          - JSON file describing chains and pairs (overrides the variables below)
  SOURCE_RPC_URL          - RPC endpoint for the source chain
  SOURCE_CHAIN_ID         - Chain ID of the source chain
  SOURCE_SENDER_ADDRESS   - MessageSender contract on the source chain
  SOURCE_WS_URL           - Optional WebSocket endpoint for live events
  TARGET_RPC_URL          - RPC endpoint for the destination chain
  TARGET_CHAIN_ID         - Chain ID of the destination chain
  TARGET_RECEIVER_ADDRESS - Messenger contract on the destination chain
  POLLING_INTERVAL        - Re-scan interval in seconds (default: 15)
  BACKFILL_BLOCKS         - Blocks scanned on startup (default: 100)
  PRIVATE_KEY             - Relayer key (required with --local)
  LOG_LEVEL               - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--local",
        action="store_true",
        default=False,
        help="Sign and submit with PRIVATE_KEY instead of the app daemon"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a JSON configuration file"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)

    logger.info(f"=== Cross-Chain Relayer Starting ({'LOCAL' if args.local else 'APPD'} MODE) ===")

    try:
        if args.config:
            config = RelayerConfig.from_file(args.config, local_mode=args.local)
        else:
            config = RelayerConfig.from_env(local_mode=args.local)
        config.log_config()

        relayer = CrossChainRelayer(config)
        await relayer.run()

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Provide --config / RELAYER_CONFIG, or the SOURCE_* and TARGET_* variables")
        if args.local:
            logger.error("  - PRIVATE_KEY: Required for local mode")
        sys.exit(1)

    except ConnectivityError as e:
        logger.error(f"Startup connectivity check failed: {e}")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
