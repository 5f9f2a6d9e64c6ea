"""
A persistent multi-signature wallet.

A fixed quorum of registered signers must approve a transfer out of the
shared vault before it is paid. The owner manages the signer list and hands
ownership over through a propose/claim handshake.

Every mutating call is atomic: state changes are journaled and either all
committed to the database at the end of the call or all reverted.
"""
import logging
import time
from contextlib import contextmanager
from typing import Optional

from .accounts import AccountBook
from .approvals import ApprovalEngine
from .config import Config
from .core import (
    ADD_VALID_SIGNER,
    APPROVE_TRANSACTION,
    CALL_METHODS,
    CLAIM_OWNERSHIP,
    INITIATE_TRANSACTION,
    REMOVE_SIGNER,
    TRANSFER_OWNERSHIP,
    AlreadyDeployed,
    Call,
    InvalidNonce,
    InvalidQuorum,
    InvalidSignature,
    NotValidSigner,
    PendingTransaction,
    UnknownMethod,
    ValidationError,
    WrongChain,
    to_address,
)
from .crypto import vault_address
from .db import DB
from .executor import ExecutionEngine
from .ledger import TransactionLedger
from .monitoring import Monitor
from .ownership import OwnershipHandshake
from .registry import SignerRegistry
from .state import StateStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CONFIG_KEY = b"WALLET:CONFIG"

TOKEN_UNIT = 10 ** 18


class MultiSigWallet:
    def __init__(self, db: DB, monitor: Optional[Monitor] = None):
        self.db = db
        self.state = StateStore(db)

        config = self.state.get_obj(CONFIG_KEY)
        if config is None:
            raise RuntimeError("Wallet not deployed. Please deploy it first.")

        self.chain_id = config['chain_id']
        self.quorum = config['quorum']
        self.vault = config['vault']

        self.accounts = AccountBook(self.state)
        self.registry = SignerRegistry(self.state)
        self.ownership = OwnershipHandshake(self.state)
        self.ledger = TransactionLedger(self.state)
        self.executor = ExecutionEngine(self.ledger, self.accounts, self.vault)
        self.approvals = ApprovalEngine(self.registry, self.ledger, self.executor, self.quorum)

        self._depth = 0
        self._executed: list[int] = []

        self.monitor = monitor
        if monitor is not None:
            monitor.bind(self)
            monitor.update()

    # ==========================================================================
    # DEPLOYMENT
    # ==========================================================================

    @staticmethod
    def is_deployed(db: DB) -> bool:
        return db.get(CONFIG_KEY) is not None

    @classmethod
    def deploy(cls, db: DB, signers: list, quorum: int, owner: Optional[bytes] = None,
               initial_balance: int = 0, chain_id: int = 1,
               monitor: Optional[Monitor] = None) -> 'MultiSigWallet':
        """
        Write the initial wallet state and return the wallet.

        The owner defaults to the first signer. Nothing is persisted if any
        check fails.
        """
        if cls.is_deployed(db):
            raise AlreadyDeployed("A wallet is already deployed in this database")

        signers = [to_address(s) for s in signers]
        if not isinstance(quorum, int) or isinstance(quorum, bool) or quorum <= 0:
            raise InvalidQuorum(f"Quorum must be a positive integer, got {quorum!r}")
        if quorum > len(signers):
            raise InvalidQuorum(f"Quorum {quorum} exceeds signer count {len(signers)}")

        owner = to_address(owner) if owner is not None else signers[0]
        vault = vault_address(signers, quorum, chain_id)

        state = StateStore(db)
        state.set_obj(CONFIG_KEY, {
            'chain_id': chain_id,
            'quorum': quorum,
            'vault': vault,
            'deployed_at': time.time(),
        })

        registry = SignerRegistry(state)
        for signer in signers:
            registry.add(signer)
        OwnershipHandshake(state).initialize(owner)
        AccountBook(state).credit(vault, initial_balance)
        state.commit()

        logger.info(
            f"Wallet deployed: {quorum}-of-{len(signers)}, owner {owner.hex()}, "
            f"vault {vault.hex()} funded with {initial_balance}"
        )
        return cls(db, monitor=monitor)

    @classmethod
    def from_config(cls, config: Config, db: Optional[DB] = None) -> 'MultiSigWallet':
        """Load the wallet stored at the configured path, deploying it first if needed."""
        owns_db = db is None
        if owns_db:
            db = DB(
                config.database.path,
                write_buffer_size=config.database.write_buffer_size,
                max_open_files=config.database.max_open_files,
                compression=config.database.compression,
            )

        monitor = None
        if config.monitoring.enabled:
            monitor = Monitor(host=config.monitoring.host, port=config.monitoring.port)

        try:
            if cls.is_deployed(db):
                wallet = cls(db, monitor=monitor)
            else:
                wallet_config = config.wallet
                wallet = cls.deploy(
                    db,
                    signers=wallet_config.signer_addresses(),
                    quorum=wallet_config.quorum,
                    owner=wallet_config.owner_address(),
                    initial_balance=wallet_config.initial_balance,
                    chain_id=wallet_config.chain_id,
                    monitor=monitor,
                )
            if monitor is not None:
                logger.info(f"Initializing Monitor with host={config.monitoring.host}, port={config.monitoring.port}")
                monitor.start_server()
        except Exception:
            if owns_db:
                db.close()
            raise
        return wallet

    def close(self):
        if self.monitor is not None:
            self.monitor.stop_server()
        self.db.close()

    # ==========================================================================
    # ATOMIC CALL SCOPE
    # ==========================================================================

    @contextmanager
    def _atomic(self, method: str):
        """
        Run a call as one unit.

        Any exception reverts every write made inside the scope. The outermost
        scope commits; nested scopes (calls made from a receiver hook while a
        transfer is running) only fold their writes into the outer one.
        Executions are reported to the monitor once the outermost scope has
        committed them.
        """
        snapshot = self.state.snapshot()
        executed_mark = len(self._executed)
        start = time.time()
        self._depth += 1
        try:
            yield
        except Exception as e:
            self.state.revert(snapshot)
            del self._executed[executed_mark:]
            logger.warning(f"{method} rejected: {e}")
            self._record_call(method, 'rejected', start)
            raise
        finally:
            self._depth -= 1

        if self._depth == 0:
            try:
                self.state.commit()
            except Exception:
                self.state.revert(snapshot)
                del self._executed[executed_mark:]
                self._record_call(method, 'error', start)
                raise
        self._record_call(method, 'ok', start)
        if self._depth == 0:
            self._flush_executions()

    def _record_call(self, method: str, status: str, start: float):
        if self.monitor is not None:
            self.monitor.record_call(method, status, time.time() - start)

    def _flush_executions(self):
        executed, self._executed = self._executed, []
        if self.monitor is None or not executed:
            return
        for tx_id in executed:
            self.monitor.record_execution(self.ledger.get(tx_id).amount)
        self.monitor.update()

    # ==========================================================================
    # SIGNER OPERATIONS
    # ==========================================================================

    def initiate_transaction(self, caller: bytes, amount: int, receiver) -> int:
        """
        Propose paying `amount` from the vault to `receiver`.

        The caller's approval is recorded with the proposal. Returns the new
        transaction id.
        """
        with self._atomic(INITIATE_TRANSACTION):
            if not self.registry.is_signer(caller):
                raise NotValidSigner()
            tx_id = self.ledger.create(amount, to_address(receiver), caller)
            tx = self.ledger.get(tx_id)
            if self.approvals.quorum_reached(tx):
                self.executor.execute(tx)
                self._executed.append(tx_id)
        return tx_id

    def approve_transaction(self, caller: bytes, tx_id: int) -> bool:
        """Approve `tx_id`. Returns True if this approval executed it."""
        with self._atomic(APPROVE_TRANSACTION):
            executed = self.approvals.approve(tx_id, caller)
            if executed:
                self._executed.append(tx_id)
        return executed

    # ==========================================================================
    # OWNER OPERATIONS
    # ==========================================================================

    def transfer_ownership(self, caller: bytes, candidate):
        with self._atomic(TRANSFER_OWNERSHIP):
            self.ownership.transfer_ownership(caller, to_address(candidate))

    def claim_ownership(self, caller: bytes):
        with self._atomic(CLAIM_OWNERSHIP):
            self.ownership.claim_ownership(caller)

    def add_valid_signer(self, caller: bytes, address) -> int:
        with self._atomic(ADD_VALID_SIGNER):
            self.ownership.require_owner(caller)
            index = self.registry.add(to_address(address))
        if self.monitor is not None:
            self.monitor.update()
        return index

    def remove_signer(self, caller: bytes, index: int) -> bytes:
        with self._atomic(REMOVE_SIGNER):
            self.ownership.require_owner(caller)
            removed = self.registry.remove_at(index, min_signers=self.quorum)
        if self.monitor is not None:
            self.monitor.update()
        return removed

    # ==========================================================================
    # FUNDING
    # ==========================================================================

    def fund(self, amount: int):
        """Add spendable value to the vault."""
        with self._atomic("fund"):
            self.accounts.credit(self.vault, amount)
        logger.info(f"Vault funded with {amount}")

    # ==========================================================================
    # SIGNED CALLS
    # ==========================================================================

    def submit(self, call: Call):
        """
        Verify a signed call and run it on behalf of its sender.

        The sender's nonce is consumed before the operation runs and stays
        consumed if the operation fails, so the same call never applies twice.
        """
        is_valid, error = call.validate_basic()
        if not is_valid:
            if call.method not in CALL_METHODS:
                raise UnknownMethod(error)
            raise ValidationError(error)

        if call.chain_id != self.chain_id:
            raise WrongChain(f"Wrong chain ID. Expected {self.chain_id}, got {call.chain_id}")

        if not call.verify_signature():
            raise InvalidSignature("Invalid call signature")

        sender = call.sender
        expected_nonce = self.accounts.get_nonce(sender)
        if call.nonce != expected_nonce:
            raise InvalidNonce(f"Invalid nonce. Expected {expected_nonce}, got {call.nonce}")

        self.accounts.bump_nonce(sender)
        if self._depth == 0:
            self.state.commit()

        logger.debug(f"Call {call.id.hex()[:8]} {call.method} from {sender.hex()[:8]}")
        return self._dispatch(sender, call.method, call.args)

    def _dispatch(self, sender: bytes, method: str, args: dict):
        if method == INITIATE_TRANSACTION:
            return self.initiate_transaction(sender, args['amount'], args['receiver'])
        elif method == APPROVE_TRANSACTION:
            return self.approve_transaction(sender, args['tx_id'])
        elif method == TRANSFER_OWNERSHIP:
            return self.transfer_ownership(sender, args['address'])
        elif method == CLAIM_OWNERSHIP:
            return self.claim_ownership(sender)
        elif method == ADD_VALID_SIGNER:
            return self.add_valid_signer(sender, args['address'])
        elif method == REMOVE_SIGNER:
            return self.remove_signer(sender, args['index'])
        raise UnknownMethod(f"Unknown method: {method}")

    # ==========================================================================
    # READ-ONLY ACCESSORS
    # ==========================================================================

    def signers(self, index: int) -> bytes:
        return self.registry.get(index)

    def signer_count(self) -> int:
        return self.registry.count()

    def is_signer(self, address: bytes) -> bool:
        return self.registry.is_signer(address)

    def get_all_transactions(self) -> list[PendingTransaction]:
        return self.ledger.list_all()

    def get_transaction(self, tx_id: int) -> PendingTransaction:
        return self.ledger.get(tx_id)

    @property
    def owner(self) -> bytes:
        return self.ownership.owner

    @property
    def pending_owner(self) -> Optional[bytes]:
        return self.ownership.pending_owner

    def vault_balance(self) -> int:
        return self.accounts.balance_of(self.vault)

    def balance_of(self, address: bytes) -> int:
        return self.accounts.balance_of(address)

    def get_nonce(self, address: bytes) -> int:
        return self.accounts.get_nonce(address)

    def state_root(self) -> bytes:
        return self.state.state_root()

    def get_stats(self) -> dict:
        transactions = self.ledger.list_all()
        return {
            'chain_id': self.chain_id,
            'quorum': self.quorum,
            'signers': self.signer_count(),
            'owner': self.owner.hex(),
            'pending_owner': self.pending_owner.hex() if self.pending_owner else None,
            'vault': self.vault.hex(),
            'vault_balance': self.vault_balance(),
            'transactions': len(transactions),
            'executed': sum(1 for tx in transactions if tx.executed),
        }
