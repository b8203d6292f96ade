"""Shared fixtures for the messenger and relayer tests."""

import pytest
from eth_account import Account

from xchain_messenger.executor import MessageExecutor
from xchain_messenger.local_chain import LocalDestinationChain, LocalSourceChain
from xchain_messenger.models import CrossChainMessage
from xchain_messenger.registry import ChainRegistry, RelayerRegistry
from xchain_messenger.sender import MessageSender
from xchain_messenger.state import MessengerState
from xchain_messenger.targets import CounterTarget
from xchain_messenger.utils.message_encoder import MessageEncoder
from xchain_messenger.utils.message_signer import MessageSigner

SOURCE_CHAIN_ID = 1
DEST_CHAIN_ID = 56

RELAYER_KEY = "0x" + "11" * 32
OTHER_KEY = "0x" + "22" * 32
OWNER = Account.from_key("0x" + "33" * 32).address

SENDER = "0x85BfE05492aFC3D04Ff3B2ca6771ACF6f853d90d"
TARGET = "0x742D35Cc6634C0532925A3B844bC9e7595f0bEB7"


def make_message(
    nonce: int = 1,
    payload: bytes = b"",
    source_chain_id: int = SOURCE_CHAIN_ID,
    target_chain_id: int = DEST_CHAIN_ID,
    sender: str = SENDER,
    target: str = TARGET,
    timestamp: int = 1_700_000_000,
) -> CrossChainMessage:
    """Build a message whose ID is derived the canonical way."""
    return CrossChainMessage(
        message_id=MessageEncoder.generate_message_id(source_chain_id, sender, nonce),
        source_chain_id=source_chain_id,
        target_chain_id=target_chain_id,
        sender=sender,
        target=target,
        payload=payload,
        nonce=nonce,
        timestamp=timestamp,
    )


@pytest.fixture
def relayer_signer():
    return MessageSigner(RELAYER_KEY)


@pytest.fixture
def other_signer():
    return MessageSigner(OTHER_KEY)


@pytest.fixture
def state(relayer_signer):
    """Messenger state with both test chains enabled and the relayer trusted."""
    return MessengerState(
        chain_registry=ChainRegistry(OWNER, (SOURCE_CHAIN_ID, DEST_CHAIN_ID)),
        relayer_registry=RelayerRegistry(OWNER, (relayer_signer.address,)),
    )


@pytest.fixture
def counter_target():
    return CounterTarget()


@pytest.fixture
def executor(state, counter_target):
    executor = MessageExecutor(state)
    executor.register_target(TARGET, counter_target)
    return executor


@pytest.fixture
def message_sender():
    return MessageSender(
        SOURCE_CHAIN_ID,
        OWNER,
        enabled_chains=(DEST_CHAIN_ID,),
        clock=lambda: 1_700_000_000,
    )


@pytest.fixture
def source_chain(message_sender):
    return LocalSourceChain(message_sender, start_block=1_000)


@pytest.fixture
def destination_chain(executor):
    return LocalDestinationChain(executor, DEST_CHAIN_ID)
