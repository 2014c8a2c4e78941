"""Deterministic addressing for ledger-resident product records.

A product's address is derived from a fixed domain tag and the product id, so
any party that knows the id can locate the record without an index.
"""
import hashlib
from typing import Sequence

PRODUCT_SEED = b"product"
PDA_MARKER = b"ProgramDerivedAddress"
MAX_PRODUCT_ID = 2 ** 64 - 1


def derive_program_address(seeds: Sequence[bytes], program_id: str) -> str:
    """The ledger's standard derivation hash: sha256(seeds || program id || marker)."""
    h = hashlib.sha256()
    for seed in seeds:
        h.update(seed)
    h.update(program_id.encode("utf-8"))
    h.update(PDA_MARKER)
    return h.hexdigest()


def product_seeds(product_id: int) -> list:
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        raise ValueError(f"product id must be an integer, got {type(product_id).__name__}")
    if product_id < 0 or product_id > MAX_PRODUCT_ID:
        raise ValueError(f"product id {product_id} is outside the unsigned 64-bit range")
    return [PRODUCT_SEED, product_id.to_bytes(8, "little")]


class ProductAddressDeriver:
    def __init__(self, program_id: str):
        self.program_id = program_id

    def derive(self, product_id: int) -> str:
        return derive_program_address(product_seeds(product_id), self.program_id)
