"""
Quorum-authorized multi-signature wallet.
"""
from .core import Call, PendingTransaction, ValidationError
from .wallet import MultiSigWallet, TOKEN_UNIT

__all__ = ["Call", "MultiSigWallet", "PendingTransaction", "TOKEN_UNIT", "ValidationError"]
