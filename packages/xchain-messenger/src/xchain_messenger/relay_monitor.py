"""
Relay loop for one (source, destination) chain pair.

Two producers feed one queue: the periodic re-scan (PollingEventListener)
and, when configured, a live subscription. A single consumer takes events
in arrival order through filtering, signing and submission, so submissions
for a pair never overlap.
"""

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import (
    ConnectivityError,
    InsufficientResources,
    InvalidNonce,
    MessageAlreadyProcessed,
    MessengerError,
    ValidationError,
    classify_error,
)
from .event_processor import EventProcessor
from .models import MessageSentEvent, RelayOutcome
from .utils.polling_event_listener import PollingEventListener

if TYPE_CHECKING:
    from .chain_client import DestinationChain, SourceChain
    from .utils.message_signer import MessageSigner

logger = logging.getLogger(__name__)


class MonitorState(Enum):
    """Where the monitor's pipeline currently is."""
    IDLE = "idle"
    SCANNING = "scanning"
    FILTERING = "filtering"
    SIGNING = "signing"
    SUBMITTING = "submitting"
    STOPPED = "stopped"


class RelayMonitor:
    """
    Turns MessageSent events on a source chain into processMessage calls on
    a destination chain.

    Failures that a later attempt may cure (connectivity, funds, a failing
    target, an out-of-order nonce) rewind the poller to the event's block so
    the next scan reconsiders it. Deterministic rejections are logged and
    dropped.
    """

    def __init__(
        self,
        name: str,
        source: "SourceChain",
        destination: "DestinationChain",
        processor: EventProcessor,
        poller: PollingEventListener,
        signer: "MessageSigner | None" = None,
        subscriber: Any = None,
        polling_interval: float = 15,
        request_timeout: float = 30,
        submit_timeout: float | None = None,
        forward_signatures: bool = False,
    ) -> None:
        """
        Initialize the monitor.

        Args:
            name: Pair label used in logs, e.g. "sepolia->bsc-testnet"
            source: Source chain the events come from
            destination: Destination messenger to submit to
            processor: Parser and dedup set for this pair
            poller: Periodic re-scan producer over the source chain
            signer: Relayer key; required unless signatures are forwarded
            subscriber: Optional push producer exposing listen(callback) and stop()
            polling_interval: Seconds between re-scans
            request_timeout: Timeout for pre-check queries in seconds
            submit_timeout: Outer bound on one submission, including receipt wait
            forward_signatures: Adopt signatures attached to events instead of re-signing
        """
        if signer is None and not forward_signatures:
            raise ValueError(f"Monitor {name} needs a signer unless signatures are forwarded")

        self.name = name
        self.source = source
        self.destination = destination
        self.processor = processor
        self.poller = poller
        self.signer = signer
        self.subscriber = subscriber
        self.polling_interval = polling_interval
        self.request_timeout = request_timeout
        self.submit_timeout = submit_timeout
        self.forward_signatures = forward_signatures

        self.queue: asyncio.Queue[Any] = asyncio.Queue()
        self.state = MonitorState.IDLE
        self.running = False
        self.last_error: str | None = None
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def source_chain_id(self) -> int:
        return self.processor.source_chain_id

    @property
    def destination_chain_id(self) -> int:
        return self.processor.destination_chain_id

    async def check_connectivity(self) -> None:
        """
        Verify both chains answer and report the configured chain IDs.

        Raises:
            ConnectivityError: If either chain cannot be reached
            ValueError: If a chain reports an unexpected chain ID
        """
        for label, chain, expected in (
            ("source", self.source, self.source_chain_id),
            ("destination", self.destination, self.destination_chain_id),
        ):
            try:
                chain_id = await asyncio.wait_for(chain.get_chain_id(), timeout=self.request_timeout)
            except Exception as e:
                error = classify_error(e)
                raise ConnectivityError(f"[{self.name}] cannot reach {label} chain: {error}") from e

            if chain_id != expected:
                raise ValueError(
                    f"[{self.name}] {label} chain reports chain ID {chain_id}, configured {expected}"
                )

        logger.info(f"[{self.name}] Connected to chains {self.source_chain_id} and {self.destination_chain_id}")

        # Advisory only: registries may change while the monitor runs
        try:
            if not await self.destination.is_chain_enabled(self.source_chain_id):
                logger.warning(f"[{self.name}] Source chain {self.source_chain_id} is not enabled on the destination")
            if self.signer and not await self.destination.is_trusted_relayer(self.signer.address):
                logger.warning(f"[{self.name}] Relayer {self.signer.address} is not trusted on the destination")
            if self.signer and await self.destination.get_balance(self.signer.address) == 0:
                logger.warning(
                    f"[{self.name}] Relayer {self.signer.address} has zero balance on the destination, "
                    "submissions will fail until it is funded"
                )
        except MessengerError as e:
            logger.warning(f"[{self.name}] Could not read destination registries or balance: {e}")

    async def _enqueue(self, raw_event: Any) -> None:
        await self.queue.put(raw_event)

    async def scan_once(self) -> None:
        """Run one re-scan tick, feeding whatever it finds into the queue."""
        if self.state is MonitorState.IDLE:
            self.state = MonitorState.SCANNING
        try:
            await self.poller.scan(self._enqueue)
        finally:
            if self.state is MonitorState.SCANNING:
                self.state = MonitorState.IDLE

    async def _precheck(self, event: MessageSentEvent) -> RelayOutcome | None:
        """
        Consult destination state before spending a submission.

        Returns:
            An outcome that makes submission unnecessary, or None to submit.
            Query failures return None: the destination decides anyway.
        """
        message = event.message
        try:
            expected = await asyncio.wait_for(
                self.destination.get_expected_nonce(message.source_chain_id),
                timeout=self.request_timeout,
            )
            if message.nonce < expected and await asyncio.wait_for(
                self.destination.is_message_processed(message.message_id),
                timeout=self.request_timeout,
            ):
                return RelayOutcome.ALREADY_PROCESSED
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"[{self.name}] Pre-check failed for {message}: {classify_error(e)}")
            return None

        if message.nonce > expected:
            logger.info(
                f"[{self.name}] Deferring {message}: destination expects nonce {expected}"
            )
            return RelayOutcome.DEFERRED
        return None

    def _signature_for(self, event: MessageSentEvent) -> bytes | None:
        if self.forward_signatures and event.signature:
            return event.signature
        if self.signer is None:
            return None
        return self.signer.sign(event.message)

    async def relay_event(self, raw_event: Any) -> RelayOutcome:
        """
        Take one event through filtering, signing and submission.

        Args:
            raw_event: EventData from a web3 source or a MessageSentEvent

        Returns:
            What became of the event
        """
        self.state = MonitorState.FILTERING
        event = self.processor.process_event(raw_event)
        if event is None:
            return RelayOutcome.SKIPPED

        message = event.message

        if (outcome := await self._precheck(event)) is not None:
            return self._finish(event, outcome)

        self.state = MonitorState.SIGNING
        signature = self._signature_for(event)
        if signature is None:
            logger.error(f"[{self.name}] No signature available for {message}")
            return self._finish(event, RelayOutcome.REJECTED)

        self.state = MonitorState.SUBMITTING
        try:
            submission = self.destination.process_message(message, signature)
            if self.submit_timeout:
                tx_hash = await asyncio.wait_for(submission, timeout=self.submit_timeout)
            else:
                tx_hash = await submission
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return self._handle_failure(event, classify_error(e, message.message_id))

        logger.info(f"[{self.name}] Relayed {message} in {tx_hash or 'submitted transaction'}")
        return self._finish(event, RelayOutcome.RELAYED)

    def _handle_failure(self, event: MessageSentEvent, error: MessengerError) -> RelayOutcome:
        message = event.message

        match error:
            case MessageAlreadyProcessed():
                logger.info(f"[{self.name}] {message} was already processed on the destination")
                return self._finish(event, RelayOutcome.ALREADY_PROCESSED)
            case InvalidNonce():
                # Not remembered: a later scan may carry it again once earlier nonces land
                logger.warning(f"[{self.name}] Destination rejected {message}: {error}")
                return self._finish(event, RelayOutcome.REJECTED)
            case ValidationError():
                logger.error(f"[{self.name}] Destination rejected {message}: {error.kind} ({error})")
                self.processor.remember(event)
                return self._finish(event, RelayOutcome.REJECTED)
            case InsufficientResources():
                logger.warning(f"[{self.name}] Relayer has insufficient funds to submit {message}: {error}")
            case _:
                logger.warning(f"[{self.name}] Relaying {message} failed ({error.kind}): {error}")

        self.last_error = f"{error.kind}: {error}"
        return self._finish(event, RelayOutcome.FAILED)

    def _finish(self, event: MessageSentEvent, outcome: RelayOutcome) -> RelayOutcome:
        self.processor.record_outcome(event, outcome)
        if outcome in (RelayOutcome.DEFERRED, RelayOutcome.FAILED):
            self.poller.rewind(event.block_number)
        return outcome

    async def _consume(self) -> None:
        while self.running:
            raw_event = await self.queue.get()
            try:
                await self.relay_event(raw_event)
            except Exception as e:
                logger.error(f"[{self.name}] Unexpected error relaying event: {e}", exc_info=True)
            finally:
                self.queue.task_done()
                self.state = MonitorState.IDLE

    async def _scan_loop(self) -> None:
        while self.running:
            await self.scan_once()
            await asyncio.sleep(self.polling_interval)

    async def _subscribe(self) -> None:
        try:
            await self.subscriber.listen(self._enqueue)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Push delivery is optional; the re-scan keeps the pair live
            logger.warning(f"[{self.name}] Subscription ended, continuing with polling only: {e}")

    async def run(self) -> None:
        """Run producers and consumer until stop() or a task failure."""
        self.running = True
        self.state = MonitorState.IDLE
        logger.info(
            f"[{self.name}] Relay monitor starting "
            f"(poll every {self.polling_interval}s, backfill {self.poller.lookback_blocks} blocks, "
            f"subscription {'on' if self.subscriber else 'off'})"
        )

        self._tasks = {
            "consume": asyncio.create_task(self._consume()),
            "scan": asyncio.create_task(self._scan_loop()),
        }
        if self.subscriber is not None:
            self._tasks["subscribe"] = asyncio.create_task(self._subscribe())

        try:
            done, _ = await asyncio.wait(
                [self._tasks["consume"], self._tasks["scan"]],
                return_when=asyncio.FIRST_COMPLETED,
            )
            for task in done:
                if not task.cancelled() and (exc := task.exception()):
                    raise exc
        finally:
            await self._cleanup()

    async def _cleanup(self) -> None:
        self.running = False
        if self.subscriber is not None:
            await self.subscriber.stop()

        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        for task in self._tasks.values():
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"[{self.name}] Task ended with {e}")

        self._tasks = {}
        self.state = MonitorState.STOPPED
        logger.info(f"[{self.name}] Relay monitor stopped")

    def stop(self) -> None:
        """Stop scheduling ticks and abandon the in-flight submission."""
        self.running = False
        for task in self._tasks.values():
            task.cancel()

    def get_status(self) -> dict[str, Any]:
        status = {
            "name": self.name,
            "state": self.state.value,
            "running": self.running,
            "queued_events": self.queue.qsize(),
            "last_error": self.last_error,
            "poller": self.poller.get_status(),
            "metrics": self.processor.get_metrics(),
        }
        if self.subscriber is not None:
            status["subscription"] = self.subscriber.get_status()
        return status
