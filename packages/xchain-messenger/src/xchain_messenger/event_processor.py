"""Event processing module for the relayer.

This module handles the parsing, filtering and deduplication of MessageSent
events observed on a source chain, and keeps per-pair relay metrics.
"""

import logging
from collections import OrderedDict
from collections.abc import Mapping
from typing import Any

from hexbytes import HexBytes

from .models import CrossChainMessage, MessageSentEvent, RelayOutcome
from .utils.message_encoder import MessageEncoder

# Get logger for this module
logger = logging.getLogger(__name__)


def _normalize_tx_hash(tx_hash: Any) -> str:
    match tx_hash:
        case bytes() | bytearray():
            return "0x" + bytes(tx_hash).hex()
        case str() if tx_hash:
            return "0x" + tx_hash.lower().removeprefix("0x")
        case _:
            raise ValueError(f"Unexpected transaction hash: {tx_hash!r}")


class EventProcessor:
    """Parses and deduplicates MessageSent events for one chain pair.

    This class is responsible for:
    - Parsing raw event data into MessageSentEvent objects
    - Filtering events addressed to other destination chains
    - Recognising events already forwarded in this process's lifetime
    - Maintaining metrics on relay outcomes

    The dedup set only records an event once its relay succeeded, the
    destination reported it as already processed, or it was rejected for a
    reason resubmission cannot fix. It is an optimization: the destination's
    processed set is what makes duplicates harmless.
    """

    def __init__(
        self,
        source_chain_id: int,
        destination_chain_id: int,
        dedupe_window: int = 10_000
    ) -> None:
        """Initialize the EventProcessor.

        Args:
            source_chain_id: Chain the events are read from
            destination_chain_id: Chain this pair relays to
            dedupe_window: Maximum number of forwarded events to remember
        """
        self.source_chain_id = source_chain_id
        self.destination_chain_id = destination_chain_id
        self.dedupe_window = dedupe_window

        # (tx_hash, message_id) -> None, oldest first
        self.relayed_events: OrderedDict[tuple[str, str], None] = OrderedDict()

        # Metrics tracking
        self.events_received = 0
        self.events_filtered = 0
        self.events_duplicated = 0
        self.events_invalid = 0
        self.outcomes: dict[RelayOutcome, int] = {outcome: 0 for outcome in RelayOutcome}

        logger.info(
            f"EventProcessor initialized for chain {source_chain_id} -> {destination_chain_id} "
            f"with dedupe window of {dedupe_window} events"
        )

    def process_event(self, event_data: Any) -> MessageSentEvent | None:
        """Turn a raw event into a MessageSentEvent ready to relay.

        Accepts web3 EventData (from polling or the WebSocket listener) and
        MessageSentEvent (from in-process chains).

        Returns:
            The parsed event, or None if it is invalid, addressed elsewhere,
            or already forwarded
        """
        self.events_received += 1

        event = self._parse_event_data(event_data)
        if event is None:
            return None

        message = event.message
        expected_id = MessageEncoder.generate_message_id(message.source_chain_id, message.sender, message.nonce)
        if message.message_id.lower() != expected_id.lower():
            self.events_invalid += 1
            logger.error(
                f"Rejecting event with message ID {message.message_id}, "
                f"expected {expected_id} for nonce {message.nonce} from {message.sender}"
            )
            return None

        if event.message.target_chain_id != self.destination_chain_id:
            self.events_filtered += 1
            logger.debug(
                f"Filtered event for chain {event.message.target_chain_id} "
                f"(relaying to chain {self.destination_chain_id})"
            )
            return None

        if self.is_duplicate(event):
            self.events_duplicated += 1
            logger.debug(f"Duplicate event detected: {event}")
            return None

        return event

    def _parse_event_data(self, event_data: Any) -> MessageSentEvent | None:
        if isinstance(event_data, MessageSentEvent):
            if event_data.message.source_chain_id != self.source_chain_id:
                self.events_filtered += 1
                logger.warning(
                    f"Skipping event from chain {event_data.message.source_chain_id} "
                    f"(configured for chain {self.source_chain_id})"
                )
                return None
            return event_data

        try:
            args: Mapping[str, Any] = event_data["args"]
            signature = args.get("signature")
            message = CrossChainMessage(
                message_id=args["messageId"],
                source_chain_id=self.source_chain_id,
                target_chain_id=int(args["targetChainId"]),
                sender=args["sender"],
                target=args["target"],
                payload=args["payload"],
                nonce=int(args["nonce"]),
                timestamp=int(args["timestamp"]),
            )
            return MessageSentEvent(
                message=message,
                transaction_hash=_normalize_tx_hash(event_data["transactionHash"]),
                block_number=int(event_data["blockNumber"]),
                log_index=int(event_data.get("logIndex", 0) or 0),
                signature=bytes(HexBytes(signature)) if signature else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            self.events_invalid += 1
            logger.error(f"Failed to parse MessageSent event: {e}")
            return None

    def is_duplicate(self, event: MessageSentEvent) -> bool:
        return event.unique_key in self.relayed_events

    def remember(self, event: MessageSentEvent) -> None:
        """Remember an event as handled, evicting the oldest entry when full."""
        event_key = event.unique_key

        if event_key in self.relayed_events:
            self.relayed_events.move_to_end(event_key)
        else:
            if len(self.relayed_events) >= self.dedupe_window:
                self.relayed_events.popitem(last=False)
            self.relayed_events[event_key] = None

    def record_outcome(self, event: MessageSentEvent, outcome: RelayOutcome) -> None:
        """Count an outcome; relayed and already-processed events enter the dedup set."""
        self.outcomes[outcome] += 1
        if outcome in (RelayOutcome.RELAYED, RelayOutcome.ALREADY_PROCESSED):
            self.remember(event)

    def get_metrics(self) -> dict[str, int]:
        """Get current processing metrics.

        Returns:
            Dictionary of metric names to values
        """
        metrics = {
            "events_received": self.events_received,
            "events_filtered": self.events_filtered,
            "events_duplicated": self.events_duplicated,
            "events_invalid": self.events_invalid,
            "cache_size": len(self.relayed_events),
        }
        metrics.update({f"events_{outcome.value}": count for outcome, count in self.outcomes.items()})
        return metrics

    def log_metrics(self) -> None:
        """Log current processing metrics."""
        metrics = self.get_metrics()
        logger.info(
            f"EventProcessor Metrics ({self.source_chain_id}->{self.destination_chain_id}): "
            f"Received={metrics['events_received']}, "
            f"Relayed={metrics['events_relayed']}, "
            f"AlreadyProcessed={metrics['events_already_processed']}, "
            f"Deferred={metrics['events_deferred']}, "
            f"Rejected={metrics['events_rejected']}, "
            f"Failed={metrics['events_failed']}, "
            f"Filtered={metrics['events_filtered']}, "
            f"Duplicates={metrics['events_duplicated']}, "
            f"Invalid={metrics['events_invalid']}, "
            f"Cache={metrics['cache_size']}/{self.dedupe_window}"
        )
