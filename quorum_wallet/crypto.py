"""
Cryptographic helpers for the wallet: hashing, keys, addresses and signatures.
"""
import hashlib
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives import serialization
from cryptography.exceptions import InvalidSignature

ADDRESS_LENGTH = 20
ZERO_ADDRESS = b'\x00' * ADDRESS_LENGTH


def generate_hash(data: bytes) -> bytes:
    """Generates a Keccak-256 hash."""
    from Crypto.Hash import keccak
    return keccak.new(digest_bits=256, data=data).digest()

def generate_key_pair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """Generates an ECDSA private/public key pair (SECP256R1)."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_key = private_key.public_key()
    return private_key, public_key

def serialize_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """Serializes a public key object into PEM format (string)."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')

def deserialize_public_key(pem_data: str) -> ec.EllipticCurvePublicKey:
    """Deserializes a public key from a PEM formatted string."""
    return serialization.load_pem_public_key(pem_data.encode('utf-8'))

def public_key_to_address(public_key_pem: str) -> bytes:
    """Derives a 20-byte wallet address from a public key PEM string."""
    public_key = deserialize_public_key(public_key_pem)
    der_bytes = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )
    address_hash = hashlib.sha256(der_bytes).digest()
    return address_hash[:ADDRESS_LENGTH]

def new_identity() -> tuple[ec.EllipticCurvePrivateKey, str, bytes]:
    """Returns (private_key, public_key_pem, address) for a fresh identity."""
    private_key, public_key = generate_key_pair()
    pem = serialize_public_key(public_key)
    return private_key, pem, public_key_to_address(pem)

def vault_address(signers: list[bytes], quorum: int, chain_id: int) -> bytes:
    """
    Deterministic address of the vault account holding the wallet's funds.

    Derived from the initial signer set, quorum and chain so two deployments
    with different parameters never share an account.
    """
    data = b"".join(signers) + quorum.to_bytes(4, "big") + chain_id.to_bytes(8, "big")
    return generate_hash(b"MULTISIG_VAULT:" + data)[-ADDRESS_LENGTH:]

def is_valid_address(address) -> bool:
    return (
        isinstance(address, bytes)
        and len(address) == ADDRESS_LENGTH
        and address != ZERO_ADDRESS
    )

def sign(private_key: ec.EllipticCurvePrivateKey, data: bytes) -> bytes:
    """Signs byte data using ECDSA with SHA256."""
    return private_key.sign(data, ec.ECDSA(hashes.SHA256()))

def verify_signature(public_key_pem: str, signature: bytes, data: bytes) -> bool:
    """Verifies an ECDSA/SHA256 signature."""
    try:
        public_key = deserialize_public_key(public_key_pem)
        if not isinstance(public_key, ec.EllipticCurvePublicKey):
            return False
        public_key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
        return True
    except (InvalidSignature, ValueError):
        return False
