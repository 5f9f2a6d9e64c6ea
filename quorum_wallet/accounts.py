"""
Account balances and nonces.

Balances live in the same state store as the wallet, so a value transfer is
reverted together with the call that made it.
"""
import logging
from typing import Callable, Optional

from .core import InvalidAmount, TransferFailed
from .state import StateStore

logger = logging.getLogger(__name__)

ACCOUNT_PREFIX = b"ACCOUNT:"

# hook(sender, amount), run after a credit lands on the hooked address
ReceiverHook = Callable[[bytes, int], None]


class AccountBook:
    def __init__(self, state: StateStore):
        self.state = state
        self._receivers: dict[bytes, ReceiverHook] = {}

    def _get_account(self, addr: bytes) -> dict:
        return self.state.get_obj(ACCOUNT_PREFIX + addr, {'balance': 0, 'nonce': 0})

    def _set_account(self, addr: bytes, account: dict):
        self.state.set_obj(ACCOUNT_PREFIX + addr, account)

    def balance_of(self, address: bytes) -> int:
        return self._get_account(address)['balance']

    def get_nonce(self, address: bytes) -> int:
        return self._get_account(address)['nonce']

    def bump_nonce(self, address: bytes) -> int:
        account = self._get_account(address)
        account['nonce'] += 1
        self._set_account(address, account)
        return account['nonce']

    def credit(self, address: bytes, amount: int):
        if not isinstance(amount, int) or amount < 0:
            raise InvalidAmount(f"Invalid credit amount: {amount}")
        account = self._get_account(address)
        account['balance'] += amount
        self._set_account(address, account)

    # ==========================================================================
    # RECEIVER HOOKS
    # ==========================================================================

    def register_receiver(self, address: bytes, hook: ReceiverHook):
        """Run `hook` whenever `address` receives a transfer."""
        self._receivers[address] = hook

    def unregister_receiver(self, address: bytes):
        self._receivers.pop(address, None)

    def receiver_hook(self, address: bytes) -> Optional[ReceiverHook]:
        return self._receivers.get(address)

    # ==========================================================================
    # TRANSFERS
    # ==========================================================================

    def transfer(self, sender: bytes, recipient: bytes, amount: int):
        """
        Move `amount` from `sender` to `recipient`, then notify the recipient.

        Raises TransferFailed when the sender cannot cover the amount or the
        recipient's hook raises.
        """
        if not isinstance(amount, int) or amount < 0:
            raise InvalidAmount(f"Invalid transfer amount: {amount}")

        sender_account = self._get_account(sender)
        if sender_account['balance'] < amount:
            raise TransferFailed(
                f"Insufficient funds: balance {sender_account['balance']}, need {amount}"
            )

        if sender != recipient:
            sender_account['balance'] -= amount
            self._set_account(sender, sender_account)
            recipient_account = self._get_account(recipient)
            recipient_account['balance'] += amount
            self._set_account(recipient, recipient_account)

        hook = self.receiver_hook(recipient)
        if hook is not None:
            try:
                hook(sender, amount)
            except Exception as e:
                raise TransferFailed(f"Receiver {recipient.hex()} rejected transfer: {e}") from e

        logger.debug(f"Transferred {amount} from {sender.hex()[:8]} to {recipient.hex()[:8]}")
