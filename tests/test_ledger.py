"""
Usage Ledger Tests

Tests the increment strategies against an in-memory SQLite database:
- atomic path counts every increment
- fallback path is used when the atomic path fails
- missing rows and total failure are reported, never raised

Example usage:
    pytest tests/test_ledger.py -v
"""

import pytest

from core.errors import LedgerError
from core.identity import LedgerRef
from core.ledger import (
    AtomicIncrement,
    IncrementStrategy,
    ReadModifyWriteIncrement,
    UsageLedger,
)


class BrokenIncrement(IncrementStrategy):
    name = "broken"

    def __init__(self):
        self.attempts = 0

    async def increment(self, session, ref):
        self.attempts += 1
        raise LedgerError("rpc unavailable")


class CrashingIncrement(IncrementStrategy):
    name = "crashing"

    async def increment(self, session, ref):
        raise RuntimeError("unexpected")


class TestAtomicIncrement:

    async def test_sequential_increments_count_exactly(self, session_factory, make_account, get_account):
        account, _ = await make_account(images_used=0)
        ledger = UsageLedger(session_factory)

        results = [await ledger.increment(LedgerRef("account", account.id)) for _ in range(7)]

        assert [r.value for r in results] == list(range(1, 8))
        assert all(r.ok and r.strategy == "atomic" for r in results)
        assert (await get_account(account.id)).images_used == 7

    async def test_lead_counter(self, session_factory, make_lead):
        await make_lead(ip="198.51.100.4", email="a@example.com", usage_count=2)
        ledger = UsageLedger(session_factory)

        result = await ledger.increment(LedgerRef("lead", "198.51.100.4"))

        assert result.ok
        assert result.value == 3

    async def test_missing_row(self, session_factory):
        ledger = UsageLedger(session_factory)

        result = await ledger.increment(LedgerRef("account", "does-not-exist"))

        assert not result.ok
        assert result.error == "row not found"

    async def test_missing_row_stops_chain(self, session_factory):
        fallback = BrokenIncrement()
        ledger = UsageLedger(session_factory, strategies=[AtomicIncrement(), fallback])

        result = await ledger.increment(LedgerRef("lead", "192.0.2.99"))

        assert not result.ok
        assert fallback.attempts == 0


class TestFallback:

    async def test_falls_back_to_read_modify_write(self, session_factory, make_account, get_account):
        account, _ = await make_account(images_used=4)
        broken = BrokenIncrement()
        ledger = UsageLedger(session_factory, strategies=[broken, ReadModifyWriteIncrement()])

        result = await ledger.increment(LedgerRef("account", account.id))

        assert broken.attempts == 1
        assert result.ok
        assert result.strategy == "read_modify_write"
        assert result.value == 5
        assert (await get_account(account.id)).images_used == 5

    async def test_unexpected_error_falls_through(self, session_factory, make_account):
        account, _ = await make_account(images_used=0)
        ledger = UsageLedger(session_factory, strategies=[CrashingIncrement(), ReadModifyWriteIncrement()])

        result = await ledger.increment(LedgerRef("account", account.id))

        assert result.ok
        assert result.value == 1

    async def test_all_strategies_fail(self, session_factory, make_account, get_account):
        account, _ = await make_account(images_used=9)
        ledger = UsageLedger(session_factory, strategies=[BrokenIncrement(), BrokenIncrement()])

        result = await ledger.increment(LedgerRef("account", account.id))

        assert not result.ok
        assert "rpc unavailable" in result.error
        assert (await get_account(account.id)).images_used == 9

    async def test_read_modify_write_missing_row(self, session_factory):
        ledger = UsageLedger(session_factory, strategies=[ReadModifyWriteIncrement()])

        result = await ledger.increment(LedgerRef("account", "nobody"))

        assert not result.ok
        assert result.error == "row not found"


def test_unknown_ledger_kind_is_rejected():
    from core.ledger import _target

    with pytest.raises(ValueError):
        _target(LedgerRef("team", "x"))
