"""
Two-phase ownership handshake.

The owner proposes a successor, and the successor must claim. Ownership
never moves to an address that cannot sign for itself.
"""
import logging
from typing import Optional

from .core import InvalidAddress, NotOwner, NotPendingOwner
from .crypto import is_valid_address
from .state import StateStore

logger = logging.getLogger(__name__)

OWNER_KEY = b"WALLET:OWNER"


class OwnershipHandshake:
    def __init__(self, state: StateStore):
        self.state = state

    def _get_record(self) -> dict:
        return self.state.get_obj(OWNER_KEY, {'owner': None, 'pending_owner': None})

    def _set_record(self, record: dict):
        self.state.set_obj(OWNER_KEY, record)

    @property
    def owner(self) -> Optional[bytes]:
        return self._get_record()['owner']

    @property
    def pending_owner(self) -> Optional[bytes]:
        return self._get_record()['pending_owner']

    def initialize(self, owner: bytes):
        if not is_valid_address(owner):
            raise InvalidAddress(f"Invalid owner address: {owner!r}")
        self._set_record({'owner': owner, 'pending_owner': None})

    def require_owner(self, caller: bytes):
        if caller is None or caller != self.owner:
            raise NotOwner()

    def transfer_ownership(self, caller: bytes, candidate: bytes):
        """Propose `candidate` as the next owner. Supersedes any earlier proposal."""
        self.require_owner(caller)
        if not is_valid_address(candidate):
            raise InvalidAddress(f"Invalid owner candidate: {candidate!r}")

        record = self._get_record()
        record['pending_owner'] = candidate
        self._set_record(record)
        logger.info(f"Ownership transfer proposed to {candidate.hex()}")

    def claim_ownership(self, caller: bytes):
        record = self._get_record()
        if record['pending_owner'] is None or caller != record['pending_owner']:
            raise NotPendingOwner()

        previous = record['owner']
        record['owner'] = caller
        record['pending_owner'] = None
        self._set_record(record)
        logger.info(f"Ownership claimed by {caller.hex()} (was {previous.hex()})")
