import base64
import json
import os
from dataclasses import replace

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from signing import SignedTransaction, SigningIdentity, Transaction, verify_transaction


def _tx(identity, **overrides):
    fields = dict(
        program_id="verifresh-program",
        instruction="add_log",
        address="ab" * 32,
        args={"status": "Shipped", "location": "Warehouse B"},
        signer=identity.public_key,
    )
    fields.update(overrides)
    return Transaction(**fields)


def test_secret_key_formats_yield_same_identity():
    seed = os.urandom(32)
    reference = SigningIdentity(Ed25519PrivateKey.from_private_bytes(seed))
    keypair = seed + bytes.fromhex(reference.public_key)

    assert SigningIdentity.from_secret(json.dumps(list(keypair))).public_key == reference.public_key
    assert SigningIdentity.from_secret(seed.hex()).public_key == reference.public_key
    assert SigningIdentity.from_secret(base64.b64encode(seed).decode()).public_key == reference.public_key


def test_keypair_with_foreign_public_key_is_rejected():
    seed = os.urandom(32)
    other = SigningIdentity.generate()
    with pytest.raises(ValueError):
        SigningIdentity.from_secret(json.dumps(list(seed + bytes.fromhex(other.public_key))))


@pytest.mark.parametrize("secret", ["", "[1, 2, 3]", "not a key!!"])
def test_malformed_secrets_are_rejected(secret):
    with pytest.raises(ValueError):
        SigningIdentity.from_secret(secret)


def test_signed_transaction_verifies():
    identity = SigningIdentity.generate()
    signed = identity.sign_transaction(_tx(identity))
    assert verify_transaction(signed)


def test_tampered_transaction_fails_verification():
    identity = SigningIdentity.generate()
    signed = identity.sign_transaction(_tx(identity))
    forged = SignedTransaction(
        transaction=replace(signed.transaction, args={"status": "Spoiled", "location": "Warehouse B"}),
        signature=signed.signature,
    )
    assert not verify_transaction(forged)


def test_identity_refuses_to_sign_for_another_signer():
    identity = SigningIdentity.generate()
    other = SigningIdentity.generate()
    with pytest.raises(ValueError):
        identity.sign_transaction(_tx(other))


def test_nonce_makes_identical_instructions_distinct():
    identity = SigningIdentity.generate()
    assert _tx(identity).message() != _tx(identity).message()


def test_repr_does_not_leak_private_key():
    identity = SigningIdentity.generate()
    assert repr(identity) == f"SigningIdentity(public_key={identity.public_key!r})"
