#!/usr/bin/env python3
"""Unit tests for the EventProcessor module."""

import pytest
from hexbytes import HexBytes
from web3.datastructures import AttributeDict

from xchain_messenger.event_processor import EventProcessor
from xchain_messenger.models import MessageSentEvent, RelayOutcome

from conftest import DEST_CHAIN_ID, SENDER, SOURCE_CHAIN_ID, TARGET, make_message


@pytest.fixture
def processor():
    """Create an EventProcessor instance for testing."""
    return EventProcessor(
        source_chain_id=SOURCE_CHAIN_ID,
        destination_chain_id=DEST_CHAIN_ID,
        dedupe_window=3,
    )


def make_event_data(nonce=1, target_chain_id=DEST_CHAIN_ID, block=1000, log_index=0, **extra):
    """Decoded MessageSent log in the shape web3's process_log returns."""
    message = make_message(nonce=nonce, target_chain_id=target_chain_id, payload=b"\x01\x02")
    args = {
        "messageId": HexBytes(message.message_id),
        "targetChainId": target_chain_id,
        "sender": SENDER,
        "target": TARGET,
        "payload": b"\x01\x02",
        "nonce": nonce,
        "timestamp": message.timestamp,
    }
    args.update(extra)
    return AttributeDict({
        "args": AttributeDict(args),
        "event": "MessageSent",
        "blockNumber": block,
        "logIndex": log_index,
        "transactionHash": HexBytes("0x" + f"{nonce:064x}"),
        "address": SENDER,
    })


class TestEventProcessor:
    """Test suite for EventProcessor functionality."""

    def test_parse_event_data(self, processor):
        event = processor.process_event(make_event_data(nonce=2, block=1234, log_index=5))

        assert event is not None
        assert event.message == make_message(nonce=2, payload=b"\x01\x02")
        assert event.block_number == 1234
        assert event.log_index == 5
        assert event.transaction_hash == "0x" + f"{2:064x}"
        assert event.signature is None
        assert processor.events_received == 1

    def test_forwarded_signature_is_parsed(self, processor):
        event = processor.process_event(make_event_data(signature=HexBytes(b"\x07" * 65)))
        assert event.signature == b"\x07" * 65

    def test_local_event_passthrough(self, processor):
        local = MessageSentEvent(message=make_message(), transaction_hash="0xaa", block_number=1)
        assert processor.process_event(local) is local

    def test_local_event_from_other_source_skipped(self, processor):
        local = MessageSentEvent(
            message=make_message(source_chain_id=137), transaction_hash="0xaa", block_number=1
        )
        assert processor.process_event(local) is None
        assert processor.events_filtered == 1

    def test_filter_other_destination(self, processor):
        assert processor.process_event(make_event_data(target_chain_id=137)) is None
        assert processor.events_filtered == 1

    def test_invalid_event(self, processor):
        assert processor.process_event({"args": {"nonce": 1}}) is None
        assert processor.events_invalid == 1

    def test_mismatched_message_id_rejected(self, processor):
        forged = make_event_data(nonce=3, messageId=HexBytes(b"\x99" * 32))

        assert processor.process_event(forged) is None
        assert processor.events_invalid == 1
        assert processor.events_filtered == 0

    def test_duplicate_after_relay(self, processor):
        event = processor.process_event(make_event_data())
        processor.record_outcome(event, RelayOutcome.RELAYED)

        assert processor.process_event(make_event_data()) is None
        assert processor.events_duplicated == 1

    @pytest.mark.parametrize(
        "outcome, remembered",
        [
            (RelayOutcome.RELAYED, True),
            (RelayOutcome.ALREADY_PROCESSED, True),
            (RelayOutcome.DEFERRED, False),
            (RelayOutcome.FAILED, False),
            (RelayOutcome.REJECTED, False),
        ],
    )
    def test_only_settled_outcomes_remembered(self, processor, outcome, remembered):
        event = processor.process_event(make_event_data())
        processor.record_outcome(event, outcome)
        assert processor.is_duplicate(event) is remembered

    def test_dedupe_window_evicts_oldest(self, processor):
        events = [processor.process_event(make_event_data(nonce=n)) for n in range(1, 5)]
        for event in events:
            processor.remember(event)

        assert not processor.is_duplicate(events[0])
        assert all(processor.is_duplicate(e) for e in events[1:])
        assert len(processor.relayed_events) == 3

    def test_get_metrics(self, processor):
        event = processor.process_event(make_event_data())
        processor.record_outcome(event, RelayOutcome.RELAYED)
        processor.process_event(make_event_data(target_chain_id=137))

        metrics = processor.get_metrics()
        assert metrics["events_received"] == 2
        assert metrics["events_relayed"] == 1
        assert metrics["events_filtered"] == 1
        assert metrics["events_deferred"] == 0
        assert metrics["cache_size"] == 1
