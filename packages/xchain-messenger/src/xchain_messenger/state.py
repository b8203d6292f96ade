"""
State store owned by the message executor.

Holds the per-source-chain nonce ledger, the set of executed message IDs and
handles to the registries. The validator receives this store by reference
instead of reaching for ambient globals, so every test can build its own.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field

from .models import normalize_hex32
from .registry import ChainRegistry, RelayerRegistry

MAX_PAYLOAD_SIZE: int = 10_000


class NonceLedger:
    """Next expected nonce per source chain. Nonces start at 1."""

    def __init__(self) -> None:
        self._next: dict[int, int] = {}

    def expected(self, chain_id: int) -> int:
        return self._next.get(chain_id, 1)

    def advance(self, chain_id: int) -> int:
        """Consume the current nonce for a chain and return the new expected value."""
        self._next[chain_id] = self.expected(chain_id) + 1
        return self._next[chain_id]

    def snapshot(self) -> dict[int, int]:
        return dict(self._next)


class ProcessedSet:
    """Append-only set of executed message IDs."""

    def __init__(self) -> None:
        self._processed: dict[str, None] = {}

    def add(self, message_id: str) -> None:
        self._processed[normalize_hex32(message_id)] = None

    def __contains__(self, message_id: object) -> bool:
        try:
            return normalize_hex32(message_id) in self._processed
        except (TypeError, ValueError):
            return False

    def __len__(self) -> int:
        return len(self._processed)

    def __iter__(self) -> Iterator[str]:
        return iter(self._processed)


@dataclass
class MessengerState:
    """Everything the validator consults and the executor mutates."""

    chain_registry: ChainRegistry
    relayer_registry: RelayerRegistry
    nonces: NonceLedger = field(default_factory=NonceLedger)
    processed: ProcessedSet = field(default_factory=ProcessedSet)
    max_payload_size: int = MAX_PAYLOAD_SIZE
