"""Ledger persistence.

A ledger transaction loads one user's ledger, lets the caller mutate the
in-memory copy, then writes it back together with its coin journal entries.
Leaving the ``transaction()`` block with an exception discards everything.

``SqlLedgerStore`` locks the row with SELECT ... FOR UPDATE and relies on the
``version`` column for backends that ignore row locks (SQLite). A lost race
surfaces as ``StaleLedgerError`` so the engine can retry. So do transient
database errors such as deadlocks. Constraint violations other
than a unique-key race propagate unchanged.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from promominer.db.models import CoinTransaction, MinerLedger
from promominer.miner.errors import ErrorKind, Rejected, StaleLedgerError
from promominer.miner.ledger import Ledger, achievements_from_json, bots_from_json

logger = logging.getLogger(__name__)


@dataclass
class JournalEntry:
    user_id: str
    amount: int
    source: str
    balance_after: int
    created_at: datetime
    reason: str | None = None
    idempotency_key: str | None = None
    id: int | None = None


@dataclass
class LeaderboardRow:
    user_id: str
    total_earned: int


class LedgerTransaction:
    """Mutable view of one ledger inside a store transaction."""

    def __init__(self, ledger: Ledger, now: datetime, *, created: bool) -> None:
        self.ledger = ledger
        self.now = now
        self.created = created
        self.journal: list[JournalEntry] = []

    def credit(
        self,
        amount: int,
        source: str,
        *,
        reason: str | None = None,
        idempotency_key: str | None = None,
        earned: bool = True,
    ) -> None:
        """Add coins to the balance (and to total_earned unless ``earned`` is False)."""
        if amount <= 0:
            return
        self.ledger.balance += amount
        if earned:
            self.ledger.total_earned += amount
        self._record(amount, source, reason, idempotency_key)

    def debit(self, amount: int, source: str, *, reason: str | None = None) -> None:
        """Spend coins. Raises Rejected(INSUFFICIENT_BALANCE) without touching the ledger."""
        if amount > self.ledger.balance:
            raise Rejected(ErrorKind.INSUFFICIENT_BALANCE)
        if amount <= 0:
            return
        self.ledger.balance -= amount
        self._record(-amount, source, reason, None)

    def _record(self, amount: int, source: str, reason: str | None, key: str | None) -> None:
        self.journal.append(
            JournalEntry(
                user_id=self.ledger.user_id,
                amount=amount,
                source=source,
                reason=reason,
                idempotency_key=key,
                balance_after=self.ledger.balance,
                created_at=self.now,
            )
        )

    def _pending_key(self, key: str) -> bool:
        return any(e.idempotency_key == key for e in self.journal)

    async def seen_key(self, key: str) -> bool:
        """Whether a journal entry with this idempotency key already exists."""
        raise NotImplementedError


class LedgerStore(abc.ABC):
    """Persistence backend for ledgers and the coin journal."""

    @abc.abstractmethod
    def transaction(
        self,
        user_id: str,
        *,
        create: Callable[[], Ledger],
        now: datetime,
    ) -> AbstractAsyncContextManager[LedgerTransaction]:
        """Open a read-modify-write transaction on one ledger.

        ``create`` builds the starting ledger when the user has none yet.
        """

    @abc.abstractmethod
    async def read(self, user_id: str) -> Ledger | None:
        """Committed state, without locking."""

    @abc.abstractmethod
    async def list_auto_collect_user_ids(self, after: str | None, limit: int) -> list[str]:
        """Users with auto-collect enabled, ordered by id, starting after ``after``."""

    @abc.abstractmethod
    async def top_earners(self, limit: int) -> list[LeaderboardRow]:
        """Users ordered by total_earned, highest first."""

    @abc.abstractmethod
    async def list_transactions(
        self, user_id: str, page: int, per_page: int
    ) -> tuple[list[JournalEntry], int]:
        """One page of a user's journal (newest first) and the total count."""

    def is_transient(self, exc: BaseException) -> bool:
        """Whether ``exc`` escaping ``transaction()`` is worth retrying."""
        return False


# ---------------------------------------------------------------------------
# SQLAlchemy backend
# ---------------------------------------------------------------------------

# PostgreSQL serialization_failure, deadlock_detected, lock_not_available
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03"})
_UNIQUE_VIOLATION = "23505"


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        code = getattr(candidate, "pgcode", None) or getattr(candidate, "sqlstate", None)
        if code:
            return code
    return None


def _is_unique_violation(exc: IntegrityError) -> bool:
    if _sqlstate(exc) == _UNIQUE_VIOLATION:
        return True
    return "UNIQUE constraint failed" in str(exc.orig)


def is_transient_db_error(exc: BaseException) -> bool:
    """Errors a fresh attempt is likely not to hit again, such as a deadlock."""
    if not isinstance(exc, DBAPIError) or isinstance(exc, IntegrityError):
        return False
    if exc.connection_invalidated:
        return True
    if _sqlstate(exc) in _RETRYABLE_SQLSTATES:
        return True
    return isinstance(exc, OperationalError)



def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_ledger(row: MinerLedger) -> Ledger:
    return Ledger(
        user_id=row.user_id,
        balance=row.balance,
        total_earned=row.total_earned,
        energy=row.energy,
        last_energy_update=_as_utc(row.last_energy_update),  # type: ignore[arg-type]
        storage_level=row.storage_level,
        last_claim=_as_utc(row.last_claim),  # type: ignore[arg-type]
        auto_collect_enabled=row.auto_collect_enabled,
        auto_collect_level=row.auto_collect_level,
        auto_collect_unlocked_level=row.auto_collect_unlocked_level,
        last_auto_collect=_as_utc(row.last_auto_collect),
        bots=bots_from_json(row.bots_owned),
        achievements=achievements_from_json(row.achievements),
        daily_streak=row.daily_streak,
        last_daily_claim=row.last_daily_claim,
        total_daily_claims=row.total_daily_claims,
        version=row.version,
    )


def _apply_to_row(row: MinerLedger, ledger: Ledger, now: datetime) -> None:
    row.balance = ledger.balance
    row.total_earned = ledger.total_earned
    row.energy = ledger.energy
    row.last_energy_update = ledger.last_energy_update
    row.storage_level = ledger.storage_level
    row.last_claim = ledger.last_claim
    row.auto_collect_enabled = ledger.auto_collect_enabled
    row.auto_collect_level = ledger.auto_collect_level
    row.auto_collect_unlocked_level = ledger.auto_collect_unlocked_level
    row.last_auto_collect = ledger.last_auto_collect
    row.bots_owned = ledger.bots_to_json()
    row.achievements = ledger.achievements_to_json()
    row.daily_streak = ledger.daily_streak
    row.last_daily_claim = ledger.last_daily_claim
    row.total_daily_claims = ledger.total_daily_claims
    row.updated_at = now


def _row_to_entry(row: CoinTransaction) -> JournalEntry:
    return JournalEntry(
        id=row.id,
        user_id=row.user_id,
        amount=row.amount,
        source=row.source,
        reason=row.reason,
        idempotency_key=row.idempotency_key,
        balance_after=row.balance_after,
        created_at=_as_utc(row.created_at),  # type: ignore[arg-type]
    )


class _SqlTransaction(LedgerTransaction):
    def __init__(self, db: AsyncSession, ledger: Ledger, now: datetime, *, created: bool) -> None:
        super().__init__(ledger, now, created=created)
        self._db = db

    async def seen_key(self, key: str) -> bool:
        if self._pending_key(key):
            return True
        result = await self._db.execute(
            select(CoinTransaction.id).where(CoinTransaction.idempotency_key == key).limit(1)
        )
        return result.scalar_one_or_none() is not None


class SqlLedgerStore(LedgerStore):
    """Ledgers in the ``miner_ledgers`` table, journal in ``miner_coin_transactions``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(
        self,
        user_id: str,
        *,
        create: Callable[[], Ledger],
        now: datetime,
    ) -> AsyncIterator[LedgerTransaction]:
        async with self._session_factory() as db:
            try:
                result = await db.execute(
                    select(MinerLedger).where(MinerLedger.user_id == user_id).with_for_update()
                )
                row = result.scalar_one_or_none()
                if row is None:
                    ledger = create()
                    row = MinerLedger(user_id=ledger.user_id, created_at=now)
                    before = None
                else:
                    ledger = _row_to_ledger(row)
                    before = ledger.snapshot()

                tx = _SqlTransaction(db, ledger, now, created=before is None)
                yield tx

                if before is None:
                    _apply_to_row(row, tx.ledger, now)
                    db.add(row)
                elif tx.ledger != before:
                    _apply_to_row(row, tx.ledger, now)
                # Journal rows reference the ledger row
                await db.flush()
                tx.ledger.version = row.version

                for entry in tx.journal:
                    db.add(
                        CoinTransaction(
                            user_id=entry.user_id,
                            amount=entry.amount,
                            source=entry.source,
                            reason=entry.reason,
                            idempotency_key=entry.idempotency_key,
                            balance_after=entry.balance_after,
                            created_at=entry.created_at,
                        )
                    )
                await db.commit()
            except StaleDataError as e:
                await db.rollback()
                logger.info("Ledger version conflict for user %s", user_id)
                raise StaleLedgerError(str(e)) from e
            except IntegrityError as e:
                await db.rollback()
                if not _is_unique_violation(e):
                    # CHECK and NOT NULL violations are bugs, not races
                    raise
                logger.info("Ledger insert race for user %s", user_id)
                raise StaleLedgerError(str(e)) from e
            except DBAPIError as e:
                await db.rollback()
                if not is_transient_db_error(e):
                    raise
                logger.warning(
                    "Transient database error for user %s: %s", user_id, e.orig or e
                )
                raise StaleLedgerError(str(e)) from e

    def is_transient(self, exc: BaseException) -> bool:
        return is_transient_db_error(exc)

    async def read(self, user_id: str) -> Ledger | None:
        async with self._session_factory() as db:
            result = await db.execute(select(MinerLedger).where(MinerLedger.user_id == user_id))
            row = result.scalar_one_or_none()
            return _row_to_ledger(row) if row is not None else None

    async def list_auto_collect_user_ids(self, after: str | None, limit: int) -> list[str]:
        query = (
            select(MinerLedger.user_id)
            .where(MinerLedger.auto_collect_enabled.is_(True))
            .order_by(MinerLedger.user_id)
            .limit(limit)
        )
        if after is not None:
            query = query.where(MinerLedger.user_id > after)
        async with self._session_factory() as db:
            result = await db.execute(query)
            return list(result.scalars())

    async def top_earners(self, limit: int) -> list[LeaderboardRow]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(MinerLedger.user_id, MinerLedger.total_earned)
                .order_by(MinerLedger.total_earned.desc(), MinerLedger.user_id)
                .limit(limit)
            )
            return [LeaderboardRow(user_id=r.user_id, total_earned=r.total_earned) for r in result]

    async def list_transactions(
        self, user_id: str, page: int, per_page: int
    ) -> tuple[list[JournalEntry], int]:
        async with self._session_factory() as db:
            total = (
                await db.execute(
                    select(func.count()).select_from(CoinTransaction).where(CoinTransaction.user_id == user_id)
                )
            ).scalar_one()
            result = await db.execute(
                select(CoinTransaction)
                .where(CoinTransaction.user_id == user_id)
                .order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
            return [_row_to_entry(r) for r in result.scalars()], total


# ---------------------------------------------------------------------------
# In-memory backend (tests, local development)
# ---------------------------------------------------------------------------


class _MemoryTransaction(LedgerTransaction):
    def __init__(self, store: InMemoryLedgerStore, ledger: Ledger, now: datetime, *, created: bool) -> None:
        super().__init__(ledger, now, created=created)
        self._store = store

    async def seen_key(self, key: str) -> bool:
        return self._pending_key(key) or key in self._store._keys  # noqa: SLF001


class InMemoryLedgerStore(LedgerStore):
    """Process-local store with the same commit/rollback semantics as the SQL one."""

    def __init__(self) -> None:
        self._ledgers: dict[str, Ledger] = {}
        self._journal: list[JournalEntry] = []
        self._keys: set[str] = set()

    @asynccontextmanager
    async def transaction(
        self,
        user_id: str,
        *,
        create: Callable[[], Ledger],
        now: datetime,
    ) -> AsyncIterator[LedgerTransaction]:
        stored = self._ledgers.get(user_id)
        if stored is None:
            ledger = create()
            base_version = 0
        else:
            ledger = stored.snapshot()
            base_version = stored.version

        tx = _MemoryTransaction(self, ledger, now, created=stored is None)
        yield tx

        current = self._ledgers.get(user_id)
        current_version = current.version if current is not None else 0
        if current_version != base_version:
            raise StaleLedgerError(f"ledger {user_id} changed during transaction")
        keys = [e.idempotency_key for e in tx.journal if e.idempotency_key]
        if any(k in self._keys for k in keys):
            raise StaleLedgerError(f"duplicate idempotency key for {user_id}")

        if stored is None or tx.ledger != stored:
            tx.ledger.version = base_version + 1
        self._ledgers[user_id] = tx.ledger.snapshot()
        for entry in tx.journal:
            entry.id = len(self._journal) + 1
            self._journal.append(entry)
        self._keys.update(keys)

    async def read(self, user_id: str) -> Ledger | None:
        ledger = self._ledgers.get(user_id)
        return ledger.snapshot() if ledger is not None else None

    async def list_auto_collect_user_ids(self, after: str | None, limit: int) -> list[str]:
        ids = sorted(
            uid for uid, ledger in self._ledgers.items()
            if ledger.auto_collect_enabled and (after is None or uid > after)
        )
        return ids[:limit]

    async def top_earners(self, limit: int) -> list[LeaderboardRow]:
        ranked = sorted(self._ledgers.values(), key=lambda lg: (-lg.total_earned, lg.user_id))
        return [LeaderboardRow(user_id=lg.user_id, total_earned=lg.total_earned) for lg in ranked[:limit]]

    async def list_transactions(
        self, user_id: str, page: int, per_page: int
    ) -> tuple[list[JournalEntry], int]:
        entries = [e for e in self._journal if e.user_id == user_id]
        entries.sort(key=lambda e: (e.created_at, e.id or 0), reverse=True)
        start = (page - 1) * per_page
        return entries[start:start + per_page], len(entries)
