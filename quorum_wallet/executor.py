"""
Execution of transactions that reached quorum.
"""
import logging

from .accounts import AccountBook
from .core import AlreadyExecuted, PendingTransaction
from .ledger import TransactionLedger

logger = logging.getLogger(__name__)


class ExecutionEngine:
    def __init__(self, ledger: TransactionLedger, accounts: AccountBook, vault: bytes):
        self.ledger = ledger
        self.accounts = accounts
        self.vault = vault

    def execute(self, tx: PendingTransaction):
        """
        Pay out `tx` from the vault.

        The EXECUTED flag is persisted before the transfer runs, so a receiver
        that calls back into the wallet sees the transaction as finished.
        A failed transfer raises TransferFailed; the caller's atomic scope
        is responsible for reverting the flag.
        """
        current = self.ledger.get(tx.id)
        if current.executed:
            raise AlreadyExecuted(f"Transaction {tx.id} already executed")

        tx.executed = True
        self.ledger.save(tx)

        self.accounts.transfer(self.vault, tx.receiver, tx.amount)
        logger.info(
            f"Transaction {tx.id} executed: {tx.amount} sent to {tx.receiver.hex()} "
            f"with {tx.signers_count} approvals"
        )
