"""
Signed call envelopes: signature checks, chain binding and replay protection.
"""
import pytest
import tempfile
import shutil
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa
from quorum_wallet.wallet import MultiSigWallet
from quorum_wallet.core import (
    Call,
    AlreadySigned,
    InvalidNonce,
    InvalidSignature,
    NotOwner,
    UnknownMethod,
    ValidationError,
    WrongChain,
    INITIATE_TRANSACTION,
    APPROVE_TRANSACTION,
    TRANSFER_OWNERSHIP,
    CLAIM_OWNERSHIP,
    ADD_VALID_SIGNER,
    REMOVE_SIGNER,
    EXECUTED,
)
from quorum_wallet.crypto import new_identity
from quorum_wallet.db import DB


@pytest.fixture
def identities():
    return [new_identity() for _ in range(4)]


@pytest.fixture
def wallet(identities):
    temp_dir = tempfile.mkdtemp()
    db = DB(temp_dir)
    signers = [address for _, _, address in identities[:3]]
    wallet = MultiSigWallet.deploy(db, signers=signers, quorum=2, initial_balance=500, chain_id=7)
    yield wallet
    db.close()
    shutil.rmtree(temp_dir)


def make_call(identity, method, args, nonce, chain_id=7):
    private_key, pem, _ = identity
    call = Call(sender_public_key=pem, method=method, args=args, nonce=nonce, chain_id=chain_id)
    call.sign(private_key)
    return call


def test_signed_calls_drive_a_payment(wallet, identities):
    alice, bob, _, outsider = identities
    receiver = outsider[2]

    tx_id = wallet.submit(make_call(alice, INITIATE_TRANSACTION,
                                    {'amount': 120, 'receiver': receiver}, nonce=0))
    executed = wallet.submit(make_call(bob, APPROVE_TRANSACTION, {'tx_id': tx_id}, nonce=0))

    assert executed is True
    assert wallet.get_transaction(tx_id).state == EXECUTED
    assert wallet.balance_of(receiver) == 120
    assert wallet.get_nonce(alice[2]) == 1
    assert wallet.get_nonce(bob[2]) == 1


def test_replayed_call_is_rejected(wallet, identities):
    alice = identities[0]
    call = make_call(alice, INITIATE_TRANSACTION, {'amount': 1, 'receiver': identities[3][2]}, nonce=0)

    wallet.submit(call)
    with pytest.raises(InvalidNonce):
        wallet.submit(call)
    assert len(wallet.get_all_transactions()) == 1


def test_nonce_is_consumed_when_operation_fails(wallet, identities):
    alice = identities[0]
    tx_id = wallet.submit(make_call(alice, INITIATE_TRANSACTION,
                                    {'amount': 1, 'receiver': identities[3][2]}, nonce=0))

    with pytest.raises(AlreadySigned):
        wallet.submit(make_call(alice, APPROVE_TRANSACTION, {'tx_id': tx_id}, nonce=1))
    assert wallet.get_nonce(alice[2]) == 2
    assert wallet.get_transaction(tx_id).signers_count == 1


def test_tampered_call_fails_signature_check(wallet, identities):
    alice = identities[0]
    call = make_call(alice, INITIATE_TRANSACTION, {'amount': 1, 'receiver': identities[3][2]}, nonce=0)
    call.args['amount'] = 400

    with pytest.raises(InvalidSignature):
        wallet.submit(call)
    assert wallet.get_nonce(alice[2]) == 0


def test_unsigned_call_is_rejected(wallet, identities):
    _, pem, _ = identities[0]
    call = Call(sender_public_key=pem, method=CLAIM_OWNERSHIP, args={}, nonce=0, chain_id=7)
    with pytest.raises(InvalidSignature):
        wallet.submit(call)


def test_call_for_other_chain_is_rejected(wallet, identities):
    call = make_call(identities[0], CLAIM_OWNERSHIP, {}, nonce=0, chain_id=1)
    with pytest.raises(WrongChain):
        wallet.submit(call)


def test_unknown_method(wallet, identities):
    call = make_call(identities[0], "drain_vault", {}, nonce=0)
    with pytest.raises(UnknownMethod):
        wallet.submit(call)


def test_malformed_args(wallet, identities):
    call = make_call(identities[0], APPROVE_TRANSACTION, {'tx_id': "1"}, nonce=0)
    with pytest.raises(ValidationError, match="tx_id"):
        wallet.submit(call)


def test_owner_operations_through_calls(wallet, identities):
    alice, bob, _, outsider = identities

    with pytest.raises(NotOwner):
        wallet.submit(make_call(bob, TRANSFER_OWNERSHIP, {'address': bob[2].hex()}, nonce=0))

    wallet.submit(make_call(alice, TRANSFER_OWNERSHIP, {'address': bob[2].hex()}, nonce=0))
    wallet.submit(make_call(bob, CLAIM_OWNERSHIP, {}, nonce=1))
    assert wallet.owner == bob[2]

    index = wallet.submit(make_call(bob, ADD_VALID_SIGNER, {'address': outsider[2]}, nonce=2))
    assert wallet.signers(index) == outsider[2]

    removed = wallet.submit(make_call(bob, REMOVE_SIGNER, {'index': index}, nonce=3))
    assert removed == outsider[2]
    assert not wallet.is_signer(outsider[2])


def test_call_serialization(identities):
    call = make_call(identities[0], APPROVE_TRANSACTION, {'tx_id': 3}, nonce=5)
    restored = Call.from_dict(call.to_dict())

    assert restored.verify_signature()
    assert restored.id == call.id
    assert restored.sender == identities[0][2]

    as_hex = dict(call.to_dict(), signature=call.signature.hex())
    assert Call.from_dict(as_hex).verify_signature()


@pytest.mark.parametrize("key_factory", [
    lambda: rsa.generate_private_key(public_exponent=65537, key_size=2048),
    ed25519.Ed25519PrivateKey.generate,
])
def test_call_with_non_ec_key_is_rejected(wallet, key_factory):
    pem = key_factory().public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode('utf-8')
    call = Call(sender_public_key=pem, method=CLAIM_OWNERSHIP, args={}, nonce=0,
                chain_id=7, signature=b'\x01' * 64)

    with pytest.raises(InvalidSignature):
        wallet.submit(call)
    assert wallet.get_nonce(call.sender) == 0
