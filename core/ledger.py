"""
Usage ledger

The authoritative count of images consumed per identity. One operation,
``increment``, tries its strategies in order:

1. ``AtomicIncrement`` - a single ``UPDATE ... SET n = n + 1 RETURNING n``
   evaluated by the database. Race-free; this is the path metered billing
   depends on.
2. ``ReadModifyWriteIncrement`` - select the row, add one in Python, write it
   back. Used only when the atomic statement is unavailable or errors.

Accounting failures are logged and reported in the result, never raised:
a user who already received a processed image keeps it even if the count
could not be updated.

Example usage:
    ledger = UsageLedger(async_session_maker)
    result = await ledger.increment(LedgerRef("account", account_id))
    if not result.ok:
        ...  # already logged
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.errors import LedgerError
from core.identity import LedgerRef
from core.logging import get_logger
from core.models_sql import Account, Lead

logger = get_logger(__name__)


def _target(ref: LedgerRef) -> Tuple[type, object, str]:
    """Map a ledger reference to (model, key column, counter attribute name)."""
    if ref.kind == "account":
        return Account, Account.id, "images_used"
    if ref.kind == "lead":
        return Lead, Lead.ip, "usage_count"
    raise ValueError(f"Unknown ledger kind: {ref.kind}")


@dataclass
class IncrementResult:
    ok: bool
    value: Optional[int] = None
    strategy: Optional[str] = None
    error: Optional[str] = None


class IncrementStrategy:
    """One way of adding a unit to a ledger counter."""

    name = "base"

    async def increment(self, session: AsyncSession, ref: LedgerRef) -> Optional[int]:
        """
        Add one to the counter named by ``ref``.

        Returns:
            The new counter value, or None if the row does not exist

        Raises:
            LedgerError: If this strategy cannot reach its storage path
        """
        raise NotImplementedError


class AtomicIncrement(IncrementStrategy):
    """Single-statement increment evaluated inside the database."""

    name = "atomic"

    async def increment(self, session: AsyncSession, ref: LedgerRef) -> Optional[int]:
        model, key_col, counter = _target(ref)
        column = getattr(model, counter)
        stmt = (
            update(model)
            .where(key_col == ref.key)
            .values({column: column + 1, model.updated_at: datetime.now(timezone.utc)})
            .returning(column)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await session.execute(stmt)
            value = result.scalar_one_or_none()
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise LedgerError(f"atomic increment failed: {e}") from e
        return value


class ReadModifyWriteIncrement(IncrementStrategy):
    """
    Fallback increment done in Python.

    Not race-free: two concurrent fallbacks can read the same value and one
    unit is lost. Kept as-is; only reached when the atomic path fails.
    """

    name = "read_modify_write"

    async def increment(self, session: AsyncSession, ref: LedgerRef) -> Optional[int]:
        model, key_col, counter = _target(ref)
        try:
            result = await session.execute(select(model).where(key_col == ref.key))
            row = result.scalar_one_or_none()
            if row is None:
                return None

            # Lost-update window: a concurrent writer may commit between this read and the write.
            new_value = (getattr(row, counter) or 0) + 1
            setattr(row, counter, new_value)
            row.updated_at = datetime.now(timezone.utc)
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise LedgerError(f"manual increment failed: {e}") from e
        return new_value


DEFAULT_STRATEGIES: Tuple[IncrementStrategy, ...] = (AtomicIncrement(), ReadModifyWriteIncrement())


class UsageLedger:
    """Increment consumed-image counters, trying each strategy in order."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        strategies: Optional[Sequence[IncrementStrategy]] = None
    ):
        self.session_factory = session_factory
        self.strategies: List[IncrementStrategy] = list(strategies or DEFAULT_STRATEGIES)

    async def increment(self, ref: LedgerRef) -> IncrementResult:
        """
        Record one consumed image for ``ref``.

        Args:
            ref: Counter to increment

        Returns:
            IncrementResult; ``ok`` is False when every strategy failed or
            the ledger row does not exist
        """
        last_error: Optional[str] = None

        for strategy in self.strategies:
            try:
                async with self.session_factory() as session:
                    value = await strategy.increment(session, ref)
            except LedgerError as e:
                last_error = str(e)
                logger.warning(
                    f"Ledger strategy {strategy.name} failed, trying next",
                    extra={"ledger_kind": ref.kind, "ledger_key": ref.key, "error": last_error}
                )
                continue
            except Exception as e:
                last_error = str(e)
                logger.exception(
                    f"Unexpected error in ledger strategy {strategy.name}",
                    extra={"ledger_kind": ref.kind, "ledger_key": ref.key}
                )
                continue

            if value is None:
                logger.error(
                    "Ledger row not found for increment",
                    extra={"ledger_kind": ref.kind, "ledger_key": ref.key, "strategy": strategy.name}
                )
                return IncrementResult(ok=False, strategy=strategy.name, error="row not found")

            logger.info(
                f"Incremented usage via {strategy.name}",
                extra={"ledger_kind": ref.kind, "ledger_key": ref.key, "value": value}
            )
            return IncrementResult(ok=True, value=value, strategy=strategy.name)

        logger.error(
            "All ledger strategies failed; usage not recorded",
            extra={"ledger_kind": ref.kind, "ledger_key": ref.key, "error": last_error}
        )
        return IncrementResult(ok=False, error=last_error)
