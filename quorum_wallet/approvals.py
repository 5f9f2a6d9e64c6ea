"""
Approval tracking and quorum evaluation.
"""
import logging

from .core import (
    AlreadyExecuted,
    AlreadySigned,
    NotValidSigner,
    PendingTransaction,
)
from .executor import ExecutionEngine
from .ledger import TransactionLedger
from .registry import SignerRegistry

logger = logging.getLogger(__name__)


class ApprovalEngine:
    def __init__(self, registry: SignerRegistry, ledger: TransactionLedger,
                 executor: ExecutionEngine, quorum: int):
        self.registry = registry
        self.ledger = ledger
        self.executor = executor
        self.quorum = quorum

    def quorum_reached(self, tx: PendingTransaction) -> bool:
        return tx.signers_count >= self.quorum

    def remaining(self, tx: PendingTransaction) -> int:
        """Approvals still needed before `tx` executes."""
        return max(0, self.quorum - tx.signers_count)

    def approve(self, tx_id: int, caller: bytes) -> bool:
        """
        Record `caller`'s approval of `tx_id`.

        Returns True if this approval brought the transaction to quorum and
        it was executed.
        """
        if not self.registry.is_signer(caller):
            raise NotValidSigner()

        tx = self.ledger.get(tx_id)
        if tx.executed:
            raise AlreadyExecuted(f"Transaction {tx_id} already executed")
        if tx.has_approved(caller):
            raise AlreadySigned()

        tx.approvals.append(caller)
        self.ledger.save(tx)
        logger.info(
            f"Transaction {tx_id} approved by {caller.hex()} "
            f"({tx.signers_count}/{self.quorum})"
        )

        if self.quorum_reached(tx):
            self.executor.execute(tx)
            return True
        return False
