"""
Signer registry: the ordered list of addresses allowed to initiate and
approve transactions.
"""
import logging

from .core import DuplicateSigner, InvalidAddress, OutOfRange, QuorumUnreachable
from .crypto import is_valid_address
from .state import StateStore

logger = logging.getLogger(__name__)

SIGNER_LIST_KEY = b"WALLET:SIGNERS"
SIGNER_INDEX_PREFIX = b"SIGNER:"


class SignerRegistry:
    """
    Signers are kept as a list (for index reads) plus one index entry per
    address (for constant-time membership). Removal compacts the list, so
    every signer after the removed one moves down an index.
    """

    def __init__(self, state: StateStore):
        self.state = state

    def _get_signers(self) -> list:
        return self.state.get_obj(SIGNER_LIST_KEY, [])

    def _set_signers(self, signers: list):
        self.state.set_obj(SIGNER_LIST_KEY, signers)

    def is_signer(self, address: bytes) -> bool:
        if not isinstance(address, bytes):
            return False
        return self.state.get(SIGNER_INDEX_PREFIX + address) is not None

    def index_of(self, address: bytes) -> int:
        index = self.state.get_obj(SIGNER_INDEX_PREFIX + address)
        if index is None:
            raise OutOfRange(f"{address.hex()} is not a signer")
        return index

    def count(self) -> int:
        return len(self._get_signers())

    def get(self, index: int) -> bytes:
        signers = self._get_signers()
        if not isinstance(index, int) or index < 0 or index >= len(signers):
            raise OutOfRange(f"Signer index {index} out of range (count {len(signers)})")
        return signers[index]

    def all(self) -> list:
        return list(self._get_signers())

    def add(self, address: bytes) -> int:
        """Append a signer and return its index."""
        if not is_valid_address(address):
            raise InvalidAddress(f"Invalid signer address: {address!r}")
        if self.is_signer(address):
            raise DuplicateSigner(f"{address.hex()} is already a signer")

        signers = self._get_signers()
        index = len(signers)
        signers.append(address)
        self._set_signers(signers)
        self.state.set_obj(SIGNER_INDEX_PREFIX + address, index)
        logger.info(f"Signer {address.hex()} added at index {index}")
        return index

    def remove_at(self, index: int, min_signers: int = 0) -> bytes:
        """
        Remove the signer at `index` and return its address.

        Refuses to leave fewer than `min_signers` entries behind.
        """
        signers = self._get_signers()
        if not isinstance(index, int) or index < 0 or index >= len(signers):
            raise OutOfRange(f"Signer index {index} out of range (count {len(signers)})")
        if len(signers) - 1 < min_signers:
            raise QuorumUnreachable(
                f"Removing a signer would leave {len(signers) - 1} signers, "
                f"quorum needs {min_signers}"
            )

        removed = signers.pop(index)
        self.state.delete(SIGNER_INDEX_PREFIX + removed)
        for shifted in range(index, len(signers)):
            self.state.set_obj(SIGNER_INDEX_PREFIX + signers[shifted], shifted)
        self._set_signers(signers)
        logger.info(f"Signer {removed.hex()} removed from index {index}")
        return removed
