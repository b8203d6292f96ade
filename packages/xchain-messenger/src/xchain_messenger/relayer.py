"""
Cross-chain relayer service.

This module contains the service that builds one RelayMonitor per configured
chain pair, checks connectivity on startup and supervises the monitors.
"""

import asyncio
import logging

from .config import ChainPairConfig, RelayerConfig
from .event_processor import EventProcessor
from .message_source import Web3MessageSource
from .message_submitter import MessageSubmitter
from .relay_monitor import RelayMonitor
from .utils.appd_client import AppdClient
from .utils.contract_utility import ContractUtility
from .utils.event_listener_utility import EventListenerUtility
from .utils.message_signer import MessageSigner
from .utils.polling_event_listener import PollingEventListener

logger = logging.getLogger(__name__)


class CrossChainRelayer:
    """
    Main relayer service that orchestrates one monitor per chain pair.

    Pairs share nothing but the relayer key and run fully in parallel.
    """

    def __init__(self, config: RelayerConfig, monitors: list[RelayMonitor] | None = None):
        """
        Initialize the relayer.

        Args:
            config: Relayer configuration
            monitors: Pre-built monitors; built from config on startup when omitted
        """
        self.config = config
        self.local_mode = config.local_mode
        self.monitors: list[RelayMonitor] = list(monitors or [])
        self.running = False

        self.appd_client = None if self.local_mode else AppdClient(config.appd_url)
        self.signer: MessageSigner | None = None

        self.shutdown_event = asyncio.Event()

    async def _resolve_key(self) -> str:
        """Load the relayer key from config (local mode) or the app daemon."""
        match self.appd_client:
            case None:
                if not self.config.private_key:
                    raise ValueError("Local mode requires PRIVATE_KEY")
                key = self.config.private_key
            case appd_client:
                logger.info(f"Fetching relayer key '{self.config.key_id}' from app daemon")
                key = await appd_client.fetch_key(self.config.key_id)

        return key

    def _build_monitor(self, pair: ChainPairConfig, signer: MessageSigner, key: str) -> RelayMonitor:
        monitoring = self.config.monitoring

        source = Web3MessageSource(
            pair.source.rpc_url,
            pair.source.sender_address,
            request_timeout=monitoring.request_timeout,
        )
        destination = MessageSubmitter(
            contract_util=ContractUtility(
                pair.destination.rpc_url,
                secret=key if self.local_mode else "",
                request_timeout=monitoring.request_timeout,
            ),
            appd_client=self.appd_client,
            receiver_address=pair.destination.receiver_address,
            relayer_address=signer.address,
            request_timeout=monitoring.request_timeout,
            retry_count=monitoring.retry_count,
            receipt_timeout=monitoring.receipt_timeout,
            gas_limit=monitoring.gas_limit,
        )

        subscriber = None
        if pair.use_subscription and pair.source.ws_url:
            subscriber = EventListenerUtility(
                websocket_url=pair.source.ws_url,
                contract_address=pair.source.sender_address,
                event_obj=source.event_obj,
            )

        return RelayMonitor(
            name=pair.name,
            source=source,
            destination=destination,
            processor=EventProcessor(
                source_chain_id=pair.source.chain_id,
                destination_chain_id=pair.destination.chain_id,
                dedupe_window=monitoring.dedupe_window,
            ),
            poller=PollingEventListener(
                source,
                lookback_blocks=pair.backfill_blocks,
                request_timeout=monitoring.request_timeout,
                retry_count=monitoring.retry_count,
                name=f"{pair.name} MessageSent",
            ),
            signer=signer,
            subscriber=subscriber,
            polling_interval=pair.polling_interval,
            request_timeout=monitoring.request_timeout,
            submit_timeout=monitoring.receipt_timeout + 2 * monitoring.request_timeout,
            forward_signatures=pair.forward_signatures,
        )

    async def setup(self) -> None:
        """Build monitors from config unless they were injected."""
        if self.monitors:
            return

        key = await self._resolve_key()
        self.signer = MessageSigner(key)
        logger.info(f"Relayer address: {self.signer.address}")
        self.monitors = [self._build_monitor(pair, self.signer, key) for pair in self.config.pairs]
        logger.info(f"Built {len(self.monitors)} relay monitor(s)")

    async def check_connectivity(self) -> None:
        """
        Verify every monitored chain before starting.

        Raises:
            ConnectivityError: If any chain is unreachable; the relayer cannot
                make progress without it
        """
        for monitor in self.monitors:
            await monitor.check_connectivity()

    async def _periodic_status_logger(self) -> None:
        """Log status periodically while running."""
        while self.running:
            await asyncio.sleep(self.config.monitoring.status_interval)
            for monitor in self.monitors:
                status = monitor.get_status()
                logger.info(
                    f"Status [{monitor.name}]: state={status['state']} "
                    f"cursor={status['poller']['last_processed_block']} "
                    f"queued={status['queued_events']}"
                )
                monitor.processor.log_metrics()

    async def _check_task_health(self, tasks: dict[str, asyncio.Task]) -> bool:
        """Check if any critical task has failed."""
        for name, task in tasks.items():
            if task.done() and name != "status":
                if not task.cancelled() and (exc := task.exception()):
                    logger.error(f"{name} task failed: {exc}", exc_info=exc)
                else:
                    logger.error(f"{name} task exited")
                return False
        return True

    async def _cleanup_tasks(self, tasks: dict[str, asyncio.Task]) -> None:
        """Stop monitors and cancel all tasks."""
        for monitor in self.monitors:
            monitor.stop()

        for task in tasks.values():
            if not task.done():
                task.cancel()
        for task in tasks.values():
            try:
                await task
            except asyncio.CancelledError:
                pass  # Expected when cancelling
            except Exception as e:
                logger.debug(f"Task ended with {e}")

    async def run(self) -> None:
        """Main event loop for the relayer service."""
        logger.info("Cross-chain relayer starting...")

        await self.setup()
        await self.check_connectivity()

        self.running = True
        tasks: dict[str, asyncio.Task] = {}
        try:
            tasks = {monitor.name: asyncio.create_task(monitor.run()) for monitor in self.monitors}
            tasks["status"] = asyncio.create_task(self._periodic_status_logger())

            logger.info("Relay monitoring started, waiting for events...")

            while self.running:
                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=1.0)
                    break
                except asyncio.TimeoutError:
                    pass

                if not await self._check_task_health(tasks):
                    logger.error("Critical task failure, shutting down")
                    break
        finally:
            self.running = False
            await self._cleanup_tasks(tasks)
            logger.info("Cross-chain relayer stopped")

    def get_status(self) -> dict[str, dict]:
        return {monitor.name: monitor.get_status() for monitor in self.monitors}

    def stop(self) -> None:
        """Stop the relayer service."""
        self.running = False
        self.shutdown_event.set()
