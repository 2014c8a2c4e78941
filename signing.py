import base64
import json
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from utils import canonical_json

Json = Dict[str, Any]


# ---------- Transactions ----------
@dataclass(frozen=True)
class Transaction:
    program_id: str
    instruction: str
    address: str
    args: Json
    signer: str
    nonce: str = field(default_factory=lambda: secrets.token_hex(16))

    def message(self) -> bytes:
        return canonical_json({
            "program_id": self.program_id,
            "instruction": self.instruction,
            "address": self.address,
            "args": self.args,
            "signer": self.signer,
            "nonce": self.nonce,
        })


@dataclass(frozen=True)
class SignedTransaction:
    transaction: Transaction
    signature: str


# ---------- Signers ----------
class Signer(Protocol):
    """Anything that can expose a public address and sign a transaction."""

    @property
    def public_key(self) -> str: ...

    def sign_transaction(self, tx: Transaction) -> SignedTransaction: ...


def _decode_bytes(s: str) -> bytes:
    s = s.strip()
    if not s:
        raise ValueError("empty key material")
    if s.startswith("["):
        return bytes(json.loads(s))
    try:
        return bytes.fromhex(s)
    except ValueError:
        pass
    try:
        padding = "=" * (-len(s) % 4)
        return base64.b64decode((s + padding).replace("-", "+").replace("_", "/"), validate=True)
    except ValueError as e:
        raise ValueError("key material is not a JSON byte array, hex or base64") from e


class SigningIdentity:
    """An Ed25519 key pair held in memory. Immutable once constructed."""

    __slots__ = ("_key", "_public_key")

    def __init__(self, private_key: Ed25519PrivateKey):
        self._key = private_key
        raw = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw
        )
        self._public_key = raw.hex()

    @classmethod
    def generate(cls) -> "SigningIdentity":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_secret(cls, secret: str) -> "SigningIdentity":
        """Accepts a 32-byte seed or a 64-byte seed+pubkey secret key, as a JSON array, hex or base64."""
        raw = _decode_bytes(secret)
        if len(raw) not in (32, 64):
            raise ValueError("ed25519 secret key must be a 32-byte seed or 64-byte keypair")
        identity = cls(Ed25519PrivateKey.from_private_bytes(raw[:32]))
        if len(raw) == 64 and raw[32:].hex() != identity.public_key:
            raise ValueError("secret key does not match its embedded public key")
        return identity

    @property
    def public_key(self) -> str:
        return self._public_key

    def sign_transaction(self, tx: Transaction) -> SignedTransaction:
        if tx.signer != self._public_key:
            raise ValueError("transaction signer does not match this identity")
        return SignedTransaction(transaction=tx, signature=self._key.sign(tx.message()).hex())

    def __repr__(self) -> str:
        return f"SigningIdentity(public_key={self._public_key!r})"


def verify_transaction(signed: SignedTransaction) -> bool:
    try:
        key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(signed.transaction.signer))
        key.verify(bytes.fromhex(signed.signature), signed.transaction.message())
        return True
    except (InvalidSignature, ValueError):
        return False
