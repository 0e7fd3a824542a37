"""
app/numbering.py

Reference numbers for quotations and invoices.

Flow per call (no retries):

    ATTEMPT_COUNTER --ok-->  FORMAT_FROM_COUNTER   PREFIX-YYYYMMDD-NNNN
                    --err--> FALLBACK              PREFIX-<epoch ms>-RRR

The counter round trip is the only side effect. A failing counter store is
never surfaced to the caller; the fallback format is visibly different so a
degraded reference can be spotted later.

The counter store contract is a single atomic fetch-and-increment:
    next_value(name) -> int
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, Union

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

log = logging.getLogger(__name__)

DEFAULT_PREFIX = "QUO"

COUNTER_QUOTATION = "quotation"
COUNTER_INVOICE = "invoice"
KNOWN_COUNTERS = (COUNTER_QUOTATION, COUNTER_INVOICE)


class CounterStore(Protocol):
    def next_value(self, name: str) -> int:
        ...


class CounterUnavailable(RuntimeError):
    """Raised by a counter store that cannot serve an atomic increment."""


# ---------------------------------------------------------------------
# Tagged counter result
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class CounterOk:
    value: int


@dataclass(frozen=True)
class CounterErr:
    reason: str


CounterResult = Union[CounterOk, CounterErr]


def attempt_counter(name: str, store: CounterStore | None = None) -> CounterResult:
    """Single counter round trip, folded into CounterOk / CounterErr."""
    try:
        if store is None:
            store = SqlCounterStore()
        value = store.next_value(name)
    except Exception as exc:
        log.warning("Counter %r unavailable: %s", name, exc)
        return CounterErr(f"{exc.__class__.__name__}: {exc}")

    if isinstance(value, bool) or not isinstance(value, int):
        log.warning("Counter %r returned a non-integer value: %r", name, value)
        return CounterErr(f"non-integer counter value {value!r}")

    return CounterOk(value)


# ---------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------
def resolve_prefix(company_short_code: str | None) -> str:
    code = (company_short_code or "").strip()
    return code or DEFAULT_PREFIX


def format_counter_reference(prefix: str, when: datetime, value: int) -> str:
    return f"{prefix}-{when.strftime('%Y%m%d')}-{value:04d}"


def format_fallback_reference(prefix: str, when: datetime) -> str:
    epoch_ms = int(when.timestamp() * 1000)
    return f"{prefix}-{epoch_ms}-{random.randrange(1000):03d}"


def generate_reference(
    counter_name: str,
    company_short_code: str | None = None,
    *,
    store: CounterStore | None = None,
    now: datetime | None = None,
) -> str:
    """
    Produce a reference for a new quotation/invoice. Never raises.

    Example: counter "quotation" returns 7 on 2024-05-16, code "CBL"
    => "CBL-20240516-0007".
    """
    now = now or datetime.now()
    prefix = resolve_prefix(company_short_code)

    result = attempt_counter(counter_name, store)
    if isinstance(result, CounterOk):
        return format_counter_reference(prefix, now, result.value)

    ref = format_fallback_reference(prefix, now)
    log.info("Issued fallback reference %s (%s)", ref, result.reason)
    return ref


# ---------------------------------------------------------------------
# Bare sequence numbers
# ---------------------------------------------------------------------
def fallback_sequence_number(counter_name: str, now: datetime) -> int:
    """
    Time-derived number in [1, 9999] used when the counter store is down.

    Collisions are possible (same second / same millisecond bucket).
    """
    if counter_name == COUNTER_INVOICE:
        yymmdd = (now.year % 100) * 10000 + now.month * 100 + now.day
        millis = now.microsecond // 1000
        return (yymmdd + millis) % 9999 + 1

    seconds_of_day = now.hour * 3600 + now.minute * 60 + now.second
    return seconds_of_day % 9999 + 1


def next_sequence_number(
    counter_name: str,
    *,
    store: CounterStore | None = None,
    now: datetime | None = None,
) -> int:
    """Next counter value, or a time-derived stand-in. Never raises."""
    result = attempt_counter(counter_name, store)
    if isinstance(result, CounterOk):
        return result.value
    return fallback_sequence_number(counter_name, now or datetime.now())


# ---------------------------------------------------------------------
# SQL-backed counter store
# ---------------------------------------------------------------------
_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class SqlCounterStore:
    """
    Counter store on the `counters` table.

    next_value() is one INSERT .. ON CONFLICT DO UPDATE .. RETURNING
    statement, so two callers can never interleave a read and a write.
    The statement is committed immediately: an issued number stays used even
    if the caller's later work is rolled back.
    """

    def __init__(self, session=None):
        if session is None:
            from .extensions import db

            session = db.session
        self.session = session

    def _table(self):
        from .models import Counter

        return Counter.__table__

    def next_value(self, name: str) -> int:
        table = self._table()
        stamp = datetime.utcnow()
        dialect = self.session.get_bind().dialect.name

        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise CounterUnavailable(f"no atomic increment for dialect {dialect!r}")

        stmt = (
            insert(table)
            .values(name=name, current_value=1, updated_at=stamp)
            .on_conflict_do_update(
                index_elements=[table.c.name],
                set_={
                    "current_value": table.c.current_value + 1,
                    "updated_at": stamp,
                },
            )
            .returning(table.c.current_value)
        )

        try:
            value = self.session.execute(stmt).scalar_one()
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        return int(value)

    def peek(self, name: str) -> int:
        """Current value without incrementing (0 for an unknown counter)."""
        table = self._table()
        value = self.session.execute(
            select(table.c.current_value).where(table.c.name == name)
        ).scalar_one_or_none()
        return int(value or 0)
