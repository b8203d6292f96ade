"""
Chain and relayer allowlists.

The messenger core only reads these registries, and reads them on every
validation so that enablement changes take effect immediately. Mutation is an
owner-only administrative capability.
"""

import logging
from collections.abc import Iterable

from web3 import Web3

from .errors import UnauthorizedCaller

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _normalize_address(address: str, error: str) -> str:
    if not address or not Web3.is_address(address):
        raise ValueError(error)
    checksummed = Web3.to_checksum_address(address)
    if checksummed == ZERO_ADDRESS:
        raise ValueError(error)
    return checksummed


class _OwnedRegistry:
    def __init__(self, owner: str) -> None:
        self.owner = _normalize_address(owner, "Invalid owner address")

    def _only_owner(self, caller: str) -> None:
        if not caller or not Web3.is_address(caller) or Web3.to_checksum_address(caller) != self.owner:
            raise UnauthorizedCaller(f"Caller {caller} is not the registry owner")


class ChainRegistry(_OwnedRegistry):
    """Set of chain IDs messages may originate from or be addressed to."""

    def __init__(self, owner: str, enabled_chains: Iterable[int] = ()) -> None:
        super().__init__(owner)
        self._enabled: set[int] = set()
        for chain_id in enabled_chains:
            self._enabled.add(self._check_chain_id(chain_id))

    @staticmethod
    def _check_chain_id(chain_id: int) -> int:
        if not isinstance(chain_id, int) or chain_id <= 0:
            raise ValueError("Invalid chain id")
        return chain_id

    def is_chain_enabled(self, chain_id: int) -> bool:
        return chain_id in self._enabled

    @property
    def enabled_chains(self) -> frozenset[int]:
        return frozenset(self._enabled)

    def enable_chain(self, chain_id: int, caller: str) -> None:
        self._only_owner(caller)
        self._enabled.add(self._check_chain_id(chain_id))
        logger.info(f"Chain {chain_id} enabled")

    def disable_chain(self, chain_id: int, caller: str) -> None:
        self._only_owner(caller)
        self._enabled.discard(chain_id)
        logger.info(f"Chain {chain_id} disabled")


class RelayerRegistry(_OwnedRegistry):
    """Set of addresses whose signatures authorize message execution."""

    def __init__(self, owner: str, relayers: Iterable[str] = ()) -> None:
        super().__init__(owner)
        self._relayers: set[str] = {
            _normalize_address(relayer, "Invalid relayer address") for relayer in relayers
        }

    def is_trusted_relayer(self, address: str) -> bool:
        if not address or not Web3.is_address(address):
            return False
        return Web3.to_checksum_address(address) in self._relayers

    @property
    def relayers(self) -> frozenset[str]:
        return frozenset(self._relayers)

    def add_relayer(self, address: str, caller: str) -> None:
        self._only_owner(caller)
        relayer = _normalize_address(address, "Invalid relayer address")
        self._relayers.add(relayer)
        logger.info(f"Relayer {relayer} added")

    def remove_relayer(self, address: str, caller: str) -> None:
        self._only_owner(caller)
        relayer = _normalize_address(address, "Invalid relayer address")
        self._relayers.discard(relayer)
        logger.info(f"Relayer {relayer} removed")
