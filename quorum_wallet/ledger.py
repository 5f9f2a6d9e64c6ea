"""
Append-only ledger of wallet transactions.

Transactions are stored by position (zero-based creation order) and looked
up by id (one-based, never reused) through an id -> position index.
"""
import logging

from .core import InvalidAddress, InvalidAmount, NotFound, PendingTransaction
from .crypto import is_valid_address
from .state import StateStore

logger = logging.getLogger(__name__)

LAST_ID_KEY = b"LEDGER:LAST_ID"
SIZE_KEY = b"LEDGER:SIZE"
POSITION_PREFIX = b"LEDGER:POS:"
ID_INDEX_PREFIX = b"LEDGER:ID:"


def _u64(value: int) -> bytes:
    return value.to_bytes(8, "big")


class TransactionLedger:
    def __init__(self, state: StateStore):
        self.state = state

    def count(self) -> int:
        return self.state.get_obj(SIZE_KEY, 0)

    def last_id(self) -> int:
        return self.state.get_obj(LAST_ID_KEY, 0)

    def position_of(self, tx_id: int) -> int:
        if not isinstance(tx_id, int) or tx_id < 1:
            raise NotFound(f"Transaction {tx_id} not found")
        position = self.state.get_obj(ID_INDEX_PREFIX + _u64(tx_id))
        if position is None:
            raise NotFound(f"Transaction {tx_id} not found")
        return position

    def create(self, amount: int, receiver: bytes, initiator: bytes) -> int:
        """
        Store a new pending transaction and return its id.

        The initiator is recorded as the first approval.
        """
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise InvalidAmount(f"Invalid amount: {amount!r}")
        if not is_valid_address(receiver):
            raise InvalidAddress(f"Invalid receiver: {receiver!r}")

        tx_id = self.last_id() + 1
        position = self.count()
        tx = PendingTransaction(
            id=tx_id,
            amount=amount,
            receiver=receiver,
            approvals=[initiator],
        )

        self.state.set_obj(POSITION_PREFIX + _u64(position), tx.to_dict())
        self.state.set_obj(ID_INDEX_PREFIX + _u64(tx_id), position)
        self.state.set_obj(LAST_ID_KEY, tx_id)
        self.state.set_obj(SIZE_KEY, position + 1)

        logger.info(f"Transaction {tx_id} created: {amount} to {receiver.hex()} by {initiator.hex()}")
        return tx_id

    def get(self, tx_id: int) -> PendingTransaction:
        position = self.position_of(tx_id)
        return self._get_at(position)

    def _get_at(self, position: int) -> PendingTransaction:
        data = self.state.get_obj(POSITION_PREFIX + _u64(position))
        if data is None:
            raise NotFound(f"No transaction stored at position {position}")
        return PendingTransaction.from_dict(data)

    def save(self, tx: PendingTransaction):
        """Persist an updated transaction at its existing position."""
        position = self.position_of(tx.id)
        self.state.set_obj(POSITION_PREFIX + _u64(position), tx.to_dict())

    def list_all(self) -> list[PendingTransaction]:
        return [self._get_at(position) for position in range(self.count())]

    def pending(self) -> list[PendingTransaction]:
        return [tx for tx in self.list_all() if not tx.executed]
