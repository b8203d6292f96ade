"""
Reference destination target.

CounterTarget mirrors the test target contract deployed next to the
messenger: it keeps a counter and a stored value and dispatches ABI calldata
by function selector.
"""

import logging
from typing import Any

from eth_abi import decode, encode
from web3 import Web3

from .executor import MessageContext

logger = logging.getLogger(__name__)


def function_selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


class CounterTarget:
    """A target holding a counter and a stored value."""

    FUNCTIONS: dict[str, list[str]] = {
        "setCounter(uint256)": ["uint256"],
        "setStoredValue(uint256)": ["uint256"],
        "increment()": [],
    }

    def __init__(self) -> None:
        self.counter: int = 0
        self.stored_value: int = 0
        self.last_sender: str | None = None
        self.calls: int = 0
        self._dispatch = {function_selector(sig): sig for sig in self.FUNCTIONS}

    @staticmethod
    def encode_call(signature: str, *args: Any) -> bytes:
        """Build calldata for one of the target's functions."""
        types = CounterTarget.FUNCTIONS[signature]
        return function_selector(signature) + encode(types, list(args))

    def __call__(self, payload: bytes, context: MessageContext) -> int:
        if len(payload) < 4:
            raise ValueError("Payload too short for a function call")

        signature = self._dispatch.get(payload[:4])
        if signature is None:
            raise ValueError(f"Unknown function selector 0x{payload[:4].hex()}")

        args = decode(self.FUNCTIONS[signature], payload[4:]) if self.FUNCTIONS[signature] else ()

        match signature:
            case "setCounter(uint256)":
                self.counter = args[0]
            case "setStoredValue(uint256)":
                self.stored_value = args[0]
            case "increment()":
                self.counter += 1

        self.last_sender = context.sender
        self.calls += 1
        logger.debug(f"{signature} from {context.sender} (chain {context.source_chain_id})")
        return self.counter
