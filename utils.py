import hashlib
import json
from typing import Any, Dict, Iterable

GENESIS = "GENESIS"


def canonical_json(obj: Any) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def transaction_hash(prev_hash: str, payload: dict, timestamp: int) -> str:
    """Chain hash of one ledger transaction.

    `timestamp` is the node's whole-second unix time. It is stored as an
    integer column, so the hash recomputes identically on audit.
    """
    link = {"prev": prev_hash, "tx": payload, "at": int(timestamp)}
    return hashlib.sha256(canonical_json(link)).hexdigest()


def verify_chain(transactions: Iterable[Dict[str, Any]]) -> bool:
    """True if every transaction links to its predecessor and hashes to its stored value."""
    expected_prev = GENESIS
    for tx in transactions:
        if tx["prev_hash"] != expected_prev:
            return False
        if tx["hash"] != transaction_hash(tx["prev_hash"], tx["payload"], tx["timestamp"]):
            return False
        expected_prev = tx["hash"]
    return True
