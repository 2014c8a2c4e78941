import asyncio
from typing import Optional

import pytest

from database import make_engine
from ledger import SqlLedger
from ledger_client import LedgerClient
from program import ProductProgram
from signing import SigningIdentity

PROGRAM_ID = "verifresh-test-program"


class FakeClock:
    def __init__(self, now: int = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeModel:
    """Scripted stand-in for the generative model."""

    def __init__(self, reply: Optional[str] = None, error: Optional[Exception] = None, delay: float = 0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls = []

    async def generate(self, prompt, attachment=None):
        self.calls.append((prompt, attachment))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def program():
    return ProductProgram(PROGRAM_ID)


@pytest.fixture
def ledger(engine, program, clock):
    node = SqlLedger(engine, program, clock=clock)
    node.create_schema()
    return node


@pytest.fixture
def identity():
    return SigningIdentity.generate()


@pytest.fixture
def client(ledger, identity):
    return LedgerClient(ledger, identity)
