"""Ledger gateway primitives and the local SQLAlchemy-backed ledger node.

The client side only relies on four primitives: address derivation, signed
transaction submission, account fetch and per-address write serialization.
`SqlLedger` provides them on top of a relational database, keeping every
account's transactions in a hash chain so that tampering is detectable.

Within one process, writes to an address are serialized by a striped lock.
Across processes sharing a database, the account's version column and the
one-successor-per-link constraint reject a write based on stale state; the
node then re-runs the transaction against the fresh account, up to
`max_attempts` times, before rejecting it with `WriteConflict`.
"""
import asyncio
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from addressing import derive_program_address
from database import Base, make_session_factory
from errors import NetworkUnavailable, TransactionRejected
from models import Account, LedgerTransaction
from program import ProductProgram
from signing import SignedTransaction, verify_transaction
from utils import GENESIS, transaction_hash, verify_chain

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64


@dataclass(frozen=True)
class AccountInfo:
    address: str
    owner: str
    data: str


@dataclass(frozen=True)
class AuditReport:
    address: str
    verified: bool
    transactions: int


class LedgerGateway(Protocol):
    program_id: str

    def derive_address(self, seeds: Sequence[bytes]) -> str: ...

    async def submit(self, signed: SignedTransaction) -> str: ...

    async def fetch_account(self, address: str) -> Optional[AccountInfo]: ...

    async def audit(self, address: str) -> Optional[AuditReport]: ...


class SqlLedger:
    def __init__(self, engine: Engine, program: ProductProgram, clock: Callable[[], float] = time.time,
                 max_attempts: int = 5):
        self.engine = engine
        self.program = program
        self.program_id = program.program_id
        self._sessions = make_session_factory(engine)
        self._clock = clock
        self.max_attempts = max_attempts
        self._locks: Tuple[threading.Lock, ...] = tuple(threading.Lock() for _ in range(LOCK_STRIPES))

    def create_schema(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def derive_address(self, seeds: Sequence[bytes]) -> str:
        return derive_program_address(seeds, self.program_id)

    async def submit(self, signed: SignedTransaction) -> str:
        return await asyncio.to_thread(self._submit, signed)

    async def fetch_account(self, address: str) -> Optional[AccountInfo]:
        return await asyncio.to_thread(self._fetch_account, address)

    async def audit(self, address: str) -> Optional[AuditReport]:
        return await asyncio.to_thread(self._audit, address)

    # ---------- internals (run in worker threads) ----------
    def _lock_for(self, address: str) -> threading.Lock:
        return self._locks[hash(address) % len(self._locks)]

    def _submit(self, signed: SignedTransaction) -> str:
        tx = signed.transaction
        if tx.program_id != self.program_id:
            raise TransactionRejected("InvalidProgramId", f"unknown program {tx.program_id!r}")
        if not verify_transaction(signed):
            raise TransactionRejected("InvalidSignature", "signature verification failed")

        conflict = None
        with self._lock_for(tx.address):
            for attempt in range(1, self.max_attempts + 1):
                try:
                    h = self._apply(signed)
                except (IntegrityError, StaleDataError) as e:
                    # another node wrote this account first; re-run against its state
                    logger.info("write conflict on %s (attempt %d/%d)", tx.address, attempt, self.max_attempts)
                    conflict = e
                    continue
                except OperationalError as e:
                    raise NetworkUnavailable(f"ledger database unavailable: {e.orig}") from e
                logger.info("applied %s to %s (tx %s)", tx.instruction, tx.address, h[:16])
                return h

        raise TransactionRejected(
            "WriteConflict", f"account {tx.address} kept changing; gave up after {self.max_attempts} attempts"
        ) from conflict

    def _apply(self, signed: SignedTransaction) -> str:
        tx = signed.transaction
        with self._sessions() as db:
            seen = db.scalar(select(LedgerTransaction.id).where(LedgerTransaction.signature == signed.signature))
            if seen is not None:
                raise TransactionRejected("DuplicateTransaction", "transaction already processed")

            account = db.scalar(select(Account).where(Account.address == tx.address))
            if account is not None and account.owner != self.program_id:
                raise TransactionRejected("InvalidAccountOwner", f"account {tx.address} belongs to another program")
            current = json.loads(account.data) if account is not None else None
            now = int(self._clock())
            state = self.program.execute(tx.instruction, tx.address, tx.args, tx.signer, current, now)

            if account is None:
                account = Account(address=tx.address, owner=self.program_id,
                                  data=json.dumps(state), created_at=now)
                db.add(account)
            else:
                account.data = json.dumps(state)
            # the version-checked write lands before the chain head is read
            db.flush()

            prev = db.scalar(
                select(LedgerTransaction)
                .where(LedgerTransaction.account_id == account.id)
                .order_by(LedgerTransaction.id.desc())
            )
            prev_hash = prev.hash if prev else GENESIS
            payload = {
                "instruction": tx.instruction,
                "args": tx.args,
                "signer": tx.signer,
                "signature": signed.signature,
            }
            h = transaction_hash(prev_hash, payload, now)
            db.add(LedgerTransaction(
                account_id=account.id,
                instruction=tx.instruction,
                payload=json.dumps(payload),
                signer=tx.signer,
                signature=signed.signature,
                timestamp=now,
                prev_hash=prev_hash,
                hash=h,
            ))
            db.commit()
        return h

    def _fetch_account(self, address: str) -> Optional[AccountInfo]:
        try:
            with self._sessions() as db:
                account = db.scalar(select(Account).where(Account.address == address))
                if account is None:
                    return None
                return AccountInfo(address=account.address, owner=account.owner, data=account.data)
        except OperationalError as e:
            raise NetworkUnavailable(f"ledger database unavailable: {e.orig}") from e

    def _audit(self, address: str) -> Optional[AuditReport]:
        try:
            with self._sessions() as db:
                account = db.scalar(select(Account).where(Account.address == address))
                if account is None:
                    return None
                rows = db.scalars(
                    select(LedgerTransaction)
                    .where(LedgerTransaction.account_id == account.id)
                    .order_by(LedgerTransaction.id.asc())
                ).all()
                chain = [{
                    "payload": json.loads(r.payload),
                    "timestamp": r.timestamp,
                    "prev_hash": r.prev_hash,
                    "hash": r.hash,
                } for r in rows]
                stored = json.loads(account.data)
        except OperationalError as e:
            raise NetworkUnavailable(f"ledger database unavailable: {e.orig}") from e

        verified = verify_chain(chain) and self._replay(address, chain) == stored
        if not verified:
            logger.warning("audit failed for account %s", address)
        return AuditReport(address=address, verified=verified, transactions=len(chain))

    def _replay(self, address: str, chain: list) -> Optional[dict]:
        state = None
        for entry in chain:
            p = entry["payload"]
            try:
                state = self.program.execute(p["instruction"], address, p["args"], p["signer"], state, entry["timestamp"])
            except (TransactionRejected, KeyError):
                return None
        return state
