from datetime import date

import pytest

from recurrence import (
    RecurrenceError,
    advance,
    generate_due,
    generate_recurrence_transactions,
    occurrence_key,
    upcoming,
)
from web_models import Recurrence


def make_recurrence(**overrides):
    data = {
        "id": "r1",
        "user_id": "u1",
        "account_id": "a1",
        "type": "expense",
        "frequency": "monthly",
        "base_day": 15,
        "next_occurrence": date(2024, 1, 15),
        "amount": 150.0,
        "description": "Academia",
    }
    data.update(overrides)
    return Recurrence(**data)


def test_monthly_due_today_generates_one_and_advances():
    result = generate_due([make_recurrence()], today=date(2024, 1, 15))

    assert result.generated == 1
    transaction = result.transactions[0]
    assert transaction.transaction_date == date(2024, 1, 15)
    assert transaction.amount == 150.0
    assert transaction.status == "pending"
    assert transaction.meta["recurrence_id"] == "r1"
    assert transaction.meta["occurrence_key"] == "r1:2024-01-15"
    assert result.recurrences[0].next_occurrence == date(2024, 2, 15)


def test_inactive_recurrence_generates_nothing():
    result = generate_due([make_recurrence(active=False)], today=date(2024, 1, 20))
    assert result.generated == 0
    assert result.recurrences == []


def test_future_recurrence_generates_nothing():
    result = generate_due([make_recurrence()], today=date(2024, 1, 14))
    assert result.generated == 0


def test_base_day_clamped_to_end_of_month():
    recurrence = make_recurrence(base_day=31, next_occurrence=date(2024, 3, 31))
    assert advance(recurrence) == date(2024, 4, 30)

    after_april = make_recurrence(base_day=31, next_occurrence=date(2024, 4, 30))
    assert advance(after_april) == date(2024, 5, 31)


def test_december_rolls_into_next_year():
    recurrence = make_recurrence(next_occurrence=date(2024, 12, 15))
    assert advance(recurrence) == date(2025, 1, 15)


def test_weekly_and_yearly_advance():
    assert advance(make_recurrence(frequency="weekly")) == date(2024, 1, 22)

    leap = make_recurrence(frequency="yearly", base_day=29, next_occurrence=date(2024, 2, 29))
    assert advance(leap) == date(2025, 2, 28)


def test_custom_requires_interval_days():
    with pytest.raises(RecurrenceError):
        advance(make_recurrence(frequency="custom"))

    assert advance(make_recurrence(frequency="custom", interval_days=10)) == date(2024, 1, 25)


def test_existing_occurrence_key_blocks_duplicate():
    first = generate_due([make_recurrence()], today=date(2024, 1, 15))

    # Mesma recorrência, ainda não avançada, com a transação já gravada
    second = generate_due([make_recurrence()], first.transactions, today=date(2024, 1, 15))

    assert second.generated == 0
    assert second.recurrences[0].next_occurrence == date(2024, 2, 15)


def test_errors_are_collected_without_stopping_batch():
    broken = make_recurrence(id="broken", frequency="custom")
    good = make_recurrence(id="good")

    result = generate_due([broken, good], today=date(2024, 1, 15))

    assert result.generated == 1
    assert result.transactions[0].meta["recurrence_id"] == "good"
    assert [e["recurrence_id"] for e in result.errors] == ["broken"]


def test_recurrence_past_max_date_does_not_stop_batch():
    stuck = make_recurrence(id="stuck", frequency="weekly", next_occurrence=date(9999, 12, 30))
    good = make_recurrence(id="good")

    result = generate_due([stuck, good], today=date(9999, 12, 31))

    assert [t.meta["recurrence_id"] for t in result.transactions] == ["good"]
    assert [e["recurrence_id"] for e in result.errors] == ["stuck"]


def test_advance_past_max_date_raises_recurrence_error():
    with pytest.raises(RecurrenceError):
        advance(make_recurrence(frequency="custom", interval_days=5, next_occurrence=date(9999, 12, 30)))
    with pytest.raises(RecurrenceError):
        advance(make_recurrence(next_occurrence=date(9999, 12, 15)))


def test_catch_up_generates_every_missed_period():
    recurrence = make_recurrence()

    single = generate_due([recurrence], today=date(2024, 3, 20))
    assert single.generated == 1
    assert single.recurrences[0].next_occurrence == date(2024, 2, 15)

    caught_up = generate_due([recurrence], today=date(2024, 3, 20), catch_up=True)
    assert [t.transaction_date for t in caught_up.transactions] == [
        date(2024, 1, 15), date(2024, 2, 15), date(2024, 3, 15),
    ]
    assert caught_up.recurrences[0].next_occurrence == date(2024, 4, 15)


def test_generate_due_processes_oldest_first():
    later = make_recurrence(id="later", next_occurrence=date(2024, 1, 10))
    earlier = make_recurrence(id="earlier", next_occurrence=date(2024, 1, 5))

    result = generate_due([later, earlier], today=date(2024, 1, 15))

    assert [t.meta["recurrence_id"] for t in result.transactions] == ["earlier", "later"]


def test_generate_recurrence_transactions_with_count():
    result = generate_recurrence_transactions(make_recurrence(), count=3, status="settled")

    assert [t.transaction_date for t in result.transactions] == [
        date(2024, 1, 15), date(2024, 2, 15), date(2024, 3, 15),
    ]
    assert all(t.status == "settled" for t in result.transactions)
    assert result.recurrences[0].next_occurrence == date(2024, 4, 15)

    with pytest.raises(RecurrenceError):
        generate_recurrence_transactions(make_recurrence(), count=0)


def test_upcoming_lists_active_recurrences_in_range():
    items = upcoming(
        [
            make_recurrence(id="soon", next_occurrence=date(2024, 1, 20)),
            make_recurrence(id="far", next_occurrence=date(2024, 3, 1)),
            make_recurrence(id="off", next_occurrence=date(2024, 1, 18), active=False),
        ],
        days=30,
        today=date(2024, 1, 15),
    )

    assert [i["recurrence_id"] for i in items] == ["soon"]
    assert items[0]["days_until"] == 5
    assert occurrence_key("soon", date(2024, 1, 20)) == "soon:2024-01-20"
