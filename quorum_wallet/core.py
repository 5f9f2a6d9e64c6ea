"""
Core data structures for the multi-signature wallet.
"""
import time
import msgpack
from typing import Optional
from .crypto import (
    generate_hash,
    public_key_to_address,
    sign,
    verify_signature,
)

PENDING = "PENDING"
EXECUTED = "EXECUTED"

# Methods reachable through a signed Call envelope
INITIATE_TRANSACTION = "initiate_transaction"
APPROVE_TRANSACTION = "approve_transaction"
TRANSFER_OWNERSHIP = "transfer_ownership"
CLAIM_OWNERSHIP = "claim_ownership"
ADD_VALID_SIGNER = "add_valid_signer"
REMOVE_SIGNER = "remove_signer"

CALL_METHODS = (
    INITIATE_TRANSACTION,
    APPROVE_TRANSACTION,
    TRANSFER_OWNERSHIP,
    CLAIM_OWNERSHIP,
    ADD_VALID_SIGNER,
    REMOVE_SIGNER,
)


class ValidationError(Exception):
    """Raised when a wallet call is rejected."""
    pass


class NotValidSigner(ValidationError):
    def __init__(self, message: str = "not valid signer"):
        super().__init__(message)


class NotOwner(ValidationError):
    def __init__(self, message: str = "not owner"):
        super().__init__(message)


class NotPendingOwner(ValidationError):
    def __init__(self, message: str = "not pending owner"):
        super().__init__(message)


class AlreadySigned(ValidationError):
    def __init__(self, message: str = "can't sign twice"):
        super().__init__(message)


class AlreadyExecuted(ValidationError):
    def __init__(self, message: str = "transaction already executed"):
        super().__init__(message)


class NotFound(ValidationError):
    def __init__(self, message: str = "transaction not found"):
        super().__init__(message)


class OutOfRange(ValidationError):
    def __init__(self, message: str = "index out of range"):
        super().__init__(message)


class TransferFailed(ValidationError):
    pass


class DuplicateSigner(ValidationError):
    pass


class InvalidAddress(ValidationError):
    pass


class InvalidAmount(ValidationError):
    pass


class InvalidQuorum(ValidationError):
    pass


class QuorumUnreachable(ValidationError):
    pass


class AlreadyDeployed(ValidationError):
    pass


class InvalidSignature(ValidationError):
    pass


class WrongChain(ValidationError):
    pass


class InvalidNonce(ValidationError):
    pass


class UnknownMethod(ValidationError):
    pass


def to_address(value) -> bytes:
    """Accept raw 20-byte addresses or their hex form (with or without 0x)."""
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        text = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            return bytes.fromhex(text)
        except ValueError:
            raise InvalidAddress(f"Invalid address: {value!r}")
    raise InvalidAddress(f"Invalid address: {value!r}")


class PendingTransaction:
    """A value transfer waiting for (or past) its quorum of approvals."""

    def __init__(self,
                 id: int,
                 amount: int,
                 receiver: bytes,
                 approvals: Optional[list] = None,
                 executed: bool = False,
                 created_at: Optional[float] = None):
        self.id = id
        self.amount = amount
        self.receiver = receiver
        self.approvals = list(approvals or [])
        self.executed = executed
        self.created_at = created_at or time.time()

    @property
    def signers_count(self) -> int:
        return len(self.approvals)

    @property
    def initiator(self) -> Optional[bytes]:
        return self.approvals[0] if self.approvals else None

    @property
    def state(self) -> str:
        return EXECUTED if self.executed else PENDING

    def has_approved(self, address: bytes) -> bool:
        return address in self.approvals

    @classmethod
    def from_dict(cls, data: dict):
        """Creates a PendingTransaction from its stored dictionary."""
        return cls(
            id=data["id"],
            amount=data["amount"],
            receiver=data["receiver"],
            approvals=data.get("approvals", []),
            executed=data.get("executed", False),
            created_at=data.get("created_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": self.amount,
            "receiver": self.receiver,
            "approvals": list(self.approvals),
            "executed": self.executed,
            "created_at": self.created_at,
        }

    def __repr__(self) -> str:
        return (
            f"PendingTransaction("
            f"id={self.id}, "
            f"amount={self.amount}, "
            f"receiver={self.receiver.hex()}, "
            f"approvals={self.signers_count}, "
            f"state={self.state})"
        )


class Call:
    """
    A signed request to run one wallet operation on behalf of its sender.

    The sender's address is derived from the public key, and the nonce must
    match the sender's account nonce, so a signed call can be applied once.
    """

    def __init__(self,
                 sender_public_key: str,
                 method: str,
                 args: dict,
                 nonce: int,
                 chain_id: int = 1,
                 signature: Optional[bytes] = None,
                 timestamp: Optional[float] = None):
        self.sender_public_key = sender_public_key
        self.method = method
        self.args = args
        self.nonce = nonce
        self.chain_id = chain_id
        self.signature = signature
        self.timestamp = timestamp or time.time()

    @classmethod
    def from_dict(cls, data: dict):
        """Creates a Call object from a dictionary."""
        signature = data.get("signature")
        if isinstance(signature, str):
            signature = bytes.fromhex(signature)
        return cls(
            sender_public_key=data["sender_public_key"],
            method=data["method"],
            args=data["args"],
            nonce=data["nonce"],
            chain_id=data.get("chain_id", 1),
            signature=signature,
            timestamp=data.get("timestamp"),
        )

    def to_dict(self, include_signature=True):
        data = {
            "sender_public_key": self.sender_public_key,
            "method": self.method,
            "args": self.args,
            "nonce": self.nonce,
            "chain_id": self.chain_id,
            "timestamp": self.timestamp,
        }
        if include_signature and self.signature:
            data["signature"] = self.signature
        return data

    def get_signing_data(self) -> bytes:
        """Returns the canonical byte representation for signing."""
        return msgpack.packb(self.to_dict(include_signature=False), use_bin_type=True)

    def sign(self, private_key):
        self.signature = sign(private_key, self.get_signing_data())

    def verify_signature(self) -> bool:
        if not self.signature:
            return False
        return verify_signature(
            self.sender_public_key,
            self.signature,
            self.get_signing_data()
        )

    @property
    def sender(self) -> bytes:
        return public_key_to_address(self.sender_public_key)

    @property
    def id(self) -> bytes:
        """The unique hash identifier of the call."""
        return generate_hash(self.get_signing_data())

    def validate_basic(self) -> tuple[bool, str]:
        """
        Performs basic shape checks on the call.
        Returns (is_valid, error_message)
        """
        if self.method not in CALL_METHODS:
            return False, f"Unknown method: {self.method}"

        if not isinstance(self.args, dict):
            return False, "args must be a dict"

        if not isinstance(self.nonce, int) or self.nonce < 0:
            return False, "nonce must be a non-negative integer"

        if self.method == INITIATE_TRANSACTION:
            if 'amount' not in self.args or 'receiver' not in self.args:
                return False, "initiate_transaction requires 'amount' and 'receiver'"
            if not isinstance(self.args['amount'], int):
                return False, "amount must be an integer"

        elif self.method == APPROVE_TRANSACTION:
            if not isinstance(self.args.get('tx_id'), int):
                return False, "approve_transaction requires integer 'tx_id'"

        elif self.method in (TRANSFER_OWNERSHIP, ADD_VALID_SIGNER):
            if 'address' not in self.args:
                return False, f"{self.method} requires 'address'"

        elif self.method == REMOVE_SIGNER:
            if not isinstance(self.args.get('index'), int):
                return False, "remove_signer requires integer 'index'"

        return True, ""
