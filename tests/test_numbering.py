import logging
import re
from datetime import datetime

import pytest

from app.numbering import (
    COUNTER_INVOICE,
    COUNTER_QUOTATION,
    CounterErr,
    CounterOk,
    SqlCounterStore,
    attempt_counter,
    fallback_sequence_number,
    generate_reference,
    next_sequence_number,
)
from app.seed import seed_counters

FALLBACK_RE = re.compile(r"^(?P<prefix>[A-Z0-9]+)-(?P<ms>\d+)-(?P<rand>\d{3})$")


class FixedCounterStore:
    """Always hands out the same value; records every call."""

    def __init__(self, value):
        self.value = value
        self.calls = []

    def next_value(self, name):
        self.calls.append(name)
        return self.value


class BrokenCounterStore:
    def __init__(self):
        self.calls = 0

    def next_value(self, name):
        self.calls += 1
        raise ConnectionError("counter store unreachable")


# ---------------------------------------------------------------------
# attempt_counter
# ---------------------------------------------------------------------
def test_attempt_counter_ok():
    assert attempt_counter("quotation", FixedCounterStore(3)) == CounterOk(3)


def test_attempt_counter_folds_errors(caplog):
    with caplog.at_level(logging.WARNING, logger="app.numbering"):
        result = attempt_counter("quotation", BrokenCounterStore())

    assert isinstance(result, CounterErr)
    assert "ConnectionError" in result.reason
    assert "unavailable" in caplog.text


@pytest.mark.parametrize("bad_value", [None, "7", 7.0, True])
def test_attempt_counter_rejects_non_integers(bad_value):
    assert isinstance(attempt_counter("quotation", FixedCounterStore(bad_value)), CounterErr)


# ---------------------------------------------------------------------
# generate_reference
# ---------------------------------------------------------------------
def test_counter_reference_uses_code_date_and_padded_value():
    store = FixedCounterStore(7)

    ref = generate_reference("quotation", "CBL", store=store, now=datetime(2024, 5, 16, 10, 30))

    assert ref == "CBL-20240516-0007"
    assert store.calls == ["quotation"]


def test_counter_value_wider_than_four_digits_is_not_truncated():
    ref = generate_reference("quotation", "CBL", store=FixedCounterStore(12345), now=datetime(2024, 5, 16))

    assert ref == "CBL-20240516-12345"


@pytest.mark.parametrize("code", [None, "", "   "])
def test_missing_short_code_falls_back_to_default_prefix(code):
    ref = generate_reference("quotation", code, store=FixedCounterStore(1), now=datetime(2024, 1, 2))

    assert ref == "QUO-20240102-0001"


def test_store_failure_yields_fallback_reference():
    now = datetime(2024, 5, 16, 10, 30, 15)
    store = BrokenCounterStore()

    ref = generate_reference("quotation", None, store=store, now=now)

    match = FALLBACK_RE.match(ref)
    assert match, ref
    assert match.group("prefix") == "QUO"
    assert int(match.group("ms")) == int(now.timestamp() * 1000)
    # one attempt, no retry
    assert store.calls == 1


def test_fallback_keeps_company_prefix():
    ref = generate_reference("invoice", "CBL", store=BrokenCounterStore())

    assert FALLBACK_RE.match(ref).group("prefix") == "CBL"


def test_non_integer_counter_value_yields_fallback_reference():
    ref = generate_reference("quotation", "CBL", store=FixedCounterStore("oops"))

    assert FALLBACK_RE.match(ref)


def test_default_store_outside_app_context_falls_back():
    ref = generate_reference("quotation", "CBL")

    assert FALLBACK_RE.match(ref)


# ---------------------------------------------------------------------
# Bare sequence numbers
# ---------------------------------------------------------------------
def test_quotation_fallback_number_is_seconds_of_day():
    assert fallback_sequence_number(COUNTER_QUOTATION, datetime(2024, 5, 16, 10, 30, 15)) == 7819


def test_invoice_fallback_number_mixes_date_and_millis():
    now = datetime(2024, 5, 16, 9, 0, 0, 123000)

    assert fallback_sequence_number(COUNTER_INVOICE, now) == 664


@pytest.mark.parametrize(
    "now",
    [
        datetime(2024, 1, 1, 0, 0, 0),
        datetime(2024, 12, 31, 23, 59, 59, 999000),
        datetime(2099, 6, 15, 2, 46, 39),
    ],
)
@pytest.mark.parametrize("counter", [COUNTER_QUOTATION, COUNTER_INVOICE])
def test_fallback_numbers_stay_in_range(counter, now):
    assert 1 <= fallback_sequence_number(counter, now) <= 9999


def test_next_sequence_number_prefers_counter():
    assert next_sequence_number("invoice", store=FixedCounterStore(42)) == 42


def test_next_sequence_number_falls_back_on_error():
    now = datetime(2024, 5, 16, 10, 30, 15)

    assert next_sequence_number("quotation", store=BrokenCounterStore(), now=now) == 7819


# ---------------------------------------------------------------------
# SqlCounterStore
# ---------------------------------------------------------------------
def test_sql_store_increments_from_one(app):
    store = SqlCounterStore()

    assert [store.next_value("quotation") for _ in range(3)] == [1, 2, 3]
    assert store.peek("quotation") == 3


def test_sql_store_counters_are_independent(app):
    store = SqlCounterStore()
    store.next_value("quotation")
    store.next_value("quotation")

    assert store.next_value("invoice") == 1
    assert store.peek("quotation") == 2
    assert store.peek("unknown") == 0


def test_seeded_counter_starts_at_one(app):
    assert sorted(seed_counters()) == ["invoice", "quotation"]
    assert seed_counters() == []

    assert SqlCounterStore().next_value("invoice") == 1


def test_generate_reference_with_default_store(app):
    now = datetime(2024, 5, 16)

    assert generate_reference("quotation", "CBL", now=now) == "CBL-20240516-0001"
    assert generate_reference("quotation", "CBL", now=now) == "CBL-20240516-0002"


def test_sql_store_rejects_unsupported_dialect():
    class FakeSession:
        class _Bind:
            class dialect:
                name = "mysql"

        def get_bind(self):
            return self._Bind()

    store = SqlCounterStore(session=FakeSession())

    assert isinstance(attempt_counter("quotation", store), CounterErr)


# ---------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------
def test_cli_seed_and_next_reference(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["seed-counters"])
    assert "invoice" in result.output and "quotation" in result.output

    result = runner.invoke(args=["seed-counters"])
    assert "none" in result.output

    result = runner.invoke(args=["next-reference", "invoice", "--code", "CBL"])
    assert re.match(r"^CBL-\d{8}-0001$", result.output.strip())
