from datetime import date

import pytest

import finance_store as fs
from web_models import Account, Budget, Category, Recurrence, Transaction


def tx(**kwargs):
    data = {
        "account_id": "a1",
        "transaction_date": date(2024, 5, 10),
        "amount": 10.0,
        "type": "expense",
        "status": "settled",
    }
    data.update(kwargs)
    return Transaction(**data)


@pytest.fixture
def state():
    return fs.FinanceState(
        accounts=[
            Account(id="a1", name="Carteira", type="wallet", initial_balance=100.0),
            Account(id="a2", name="Banco", type="bank", initial_balance=1000.0),
        ],
        categories=[
            Category(id="c1", name="Alimentação", type="expense"),
            Category(id="c2", name="Salário", type="income"),
        ],
    )


def test_balance_counts_only_settled(state):
    state = fs.create_transaction(state, tx(amount=50.0, type="income"))
    state = fs.create_transaction(state, tx(amount=-30.0))
    state = fs.create_transaction(state, tx(amount=-1000.0, status="pending"))

    balance = fs.account_balance(state, "a1")

    assert balance["current_balance"] == 120.0
    assert balance["total_income"] == 50.0
    assert balance["total_expenses"] == 30.0


def test_transfer_moves_money_between_accounts(state):
    state = fs.create_transfer(state, "a2", "a1", 200.0, date(2024, 5, 10))

    outgoing, incoming = state.transactions
    assert outgoing.amount == -200.0
    assert incoming.amount == 200.0
    assert outgoing.meta["link_id"] == incoming.meta["link_id"]
    assert fs.account_balance(state, "a1")["current_balance"] == 300.0
    assert fs.account_balance(state, "a2")["current_balance"] == 800.0
    assert fs.total_balance(state) == 1100.0


def test_transfer_rejects_same_account(state):
    with pytest.raises(ValueError):
        fs.create_transfer(state, "a1", "a1", 10.0, date(2024, 5, 10))
    with pytest.raises(fs.FinanceNotFoundError):
        fs.create_transfer(state, "a1", "zz", 10.0, date(2024, 5, 10))


def test_total_balance_skips_archived(state):
    state = fs.archive_account(state, "a2")
    assert fs.total_balance(state) == 100.0


def test_delete_account_cascades(state):
    state = fs.create_transaction(state, tx())
    state = fs.create_transaction(state, tx(account_id="a2"))

    state = fs.delete_account(state, "a1")

    assert [a.id for a in state.accounts] == ["a2"]
    assert [t.account_id for t in state.transactions] == ["a2"]


def test_toggle_transaction_status(state):
    state = fs.create_transaction(state, tx(id="t1", status="pending"))
    state = fs.toggle_transaction_status(state, "t1")
    assert state.transactions[0].status == "settled"
    state = fs.toggle_transaction_status(state, "t1")
    assert state.transactions[0].status == "pending"


def test_categories_allow_one_level(state):
    state = fs.create_category(state, Category(id="c3", name="Mercado", type="expense", parent_id="c1"))
    with pytest.raises(ValueError):
        fs.create_category(state, Category(name="Hortifruti", type="expense", parent_id="c3"))


def test_delete_category_detaches_transactions(state):
    state = fs.create_transaction(state, tx(category_id="c1"))
    state = fs.delete_category(state, "c1")
    assert state.transactions[0].category_id is None


@pytest.mark.parametrize("spent,expected", [(10.0, "ok"), (85.0, "warning"), (100.0, "exceeded")])
def test_budget_status(state, spent, expected):
    state = fs.create_budget(state, Budget(id="b1", category_id="c1", planned_amount=100.0,
                                           month_year="2024-05", alert_threshold_pct=80))
    state = fs.create_transaction(state, tx(category_id="c1", amount=-spent))
    # Pendentes e de outros meses não contam
    state = fs.create_transaction(state, tx(category_id="c1", amount=-500.0, status="pending"))
    state = fs.create_transaction(state, tx(category_id="c1", amount=-500.0,
                                            transaction_date=date(2024, 4, 30)))

    status = fs.budget_status(state, "b1", today=date(2024, 5, 21))

    assert status["spent"] == spent
    assert status["status"] == expected
    assert status["remaining_days"] == 10


def test_generate_due_recurrences_updates_state(state):
    state = fs.create_recurrence(state, Recurrence(
        id="r1", account_id="a1", type="income", frequency="monthly", base_day=5,
        next_occurrence=date(2024, 5, 5), amount=3000.0,
    ))

    new_state, result = fs.generate_due_recurrences(state, today=date(2024, 5, 10), status="settled")

    assert result.generated == 1
    assert new_state.recurrences[0].next_occurrence == date(2024, 6, 5)
    assert fs.account_balance(new_state, "a1")["current_balance"] == 3100.0


def test_dashboard(state):
    today = date(2024, 5, 10)
    state = fs.create_transaction(state, tx(amount=-40.0, status="pending",
                                            transaction_date=date(2024, 5, 12)))
    state = fs.create_transaction(state, tx(amount=-25.0, status="pending",
                                            transaction_date=date(2024, 5, 1)))
    state = fs.create_transaction(state, tx(amount=500.0, type="income"))

    summary = fs.dashboard(state, today)

    assert summary["weekly_due"] == 40.0
    assert summary["overdue"] == 25.0
    assert summary["monthly_income"] == 500.0
    assert summary["total_balance"] == 1600.0


def test_export_csv(state):
    state = fs.create_transaction(state, tx(category_id="c1", description="Pão"))
    lines = fs.export_transactions_csv(state).splitlines()
    assert lines[0] == '"Data","Conta","Tipo","Categoria","Descrição","Tags","Valor","Status"'
    assert lines[1] == '"10/05/2024","Carteira","expense","Alimentação","Pão","","10.00","settled"'


def test_delete_category_drops_its_budgets(state):
    state = fs.create_budget(state, Budget(id="b1", category_id="c1", planned_amount=100.0,
                                           month_year="2024-05"))
    state = fs.delete_category(state, "c1")
    assert state.budgets == []


def test_update_category_keeps_one_level(state):
    state = fs.create_category(state, Category(id="c3", name="Mercado", type="expense", parent_id="c1"))

    with pytest.raises(ValueError):
        fs.update_category(state, "c1", {"parent_id": "c1"})
    with pytest.raises(ValueError):
        fs.update_category(state, "c1", {"parent_id": "c2"})
    with pytest.raises(ValueError):
        fs.update_category(state, "c2", {"parent_id": "c3"})
    with pytest.raises(fs.FinanceNotFoundError):
        fs.update_category(state, "c2", {"parent_id": "zz"})

    state = fs.update_category(state, "c3", {"name": "Feira", "parent_id": None})
    assert state.categories[2].name == "Feira"
    assert state.categories[2].parent_id is None


def test_delete_transactions_ignores_unknown_ids(state):
    state = fs.create_transaction(state, tx(id="t1"))
    state = fs.create_transaction(state, tx(id="t2"))
    state = fs.create_transaction(state, tx(id="t3"))

    state = fs.delete_transactions(state, ["t1", "t3", "zz"])

    assert [t.id for t in state.transactions] == ["t2"]


def test_update_budget(state):
    state = fs.create_budget(state, Budget(id="b1", category_id="c1", planned_amount=100.0,
                                           month_year="2024-05"))
    state = fs.update_budget(state, "b1", {"planned_amount": 250.0})
    assert state.budgets[0].planned_amount == 250.0
    with pytest.raises(fs.FinanceNotFoundError):
        fs.update_budget(state, "zz", {"planned_amount": 1.0})


def test_update_recurrence_to_custom_needs_interval(state):
    state = fs.create_recurrence(state, Recurrence(
        id="r1", account_id="a1", type="expense", frequency="monthly", base_day=5,
        next_occurrence=date(2024, 5, 5), amount=80.0,
    ))

    with pytest.raises(fs.rec.RecurrenceError):
        fs.update_recurrence(state, "r1", {"frequency": "custom"})

    state = fs.update_recurrence(state, "r1", {"frequency": "custom", "interval_days": 15})
    assert state.recurrences[0].interval_days == 15


def test_generate_month_recurrences_covers_rest_of_month(state):
    state = fs.create_recurrence(state, Recurrence(
        id="r1", account_id="a1", type="expense", frequency="monthly", base_day=25,
        next_occurrence=date(2024, 5, 25), amount=80.0,
    ))
    state = fs.create_recurrence(state, Recurrence(
        id="r2", account_id="a1", type="expense", frequency="monthly", base_day=2,
        next_occurrence=date(2024, 6, 2), amount=30.0,
    ))

    new_state, result = fs.generate_month_recurrences(state, today=date(2024, 5, 10))

    assert [t.transaction_date for t in result.transactions] == [date(2024, 5, 25)]
    assert new_state.recurrences[0].next_occurrence == date(2024, 6, 25)
    assert new_state.recurrences[1].next_occurrence == date(2024, 6, 2)


def test_filter_transactions_by_period_and_range(state):
    transactions = [
        tx(id="old", transaction_date=date(2024, 4, 20)),
        tx(id="week", transaction_date=date(2024, 5, 6)),
        tx(id="today", transaction_date=date(2024, 5, 10)),
        tx(id="later", transaction_date=date(2024, 5, 28)),
    ]
    today = date(2024, 5, 10)

    def ids(**kwargs):
        return [t.id for t in fs.filter_transactions(transactions, fs.TransactionFilters(**kwargs), today)]

    assert ids(period="today") == ["today"]
    assert ids(period="this-week") == ["today", "week"]
    assert ids(period="this-month") == ["later", "today", "week"]
    assert ids(period="last-month") == ["old"]
    assert ids(start_date=date(2024, 5, 1), end_date=date(2024, 5, 10), sort_order="asc") == ["week", "today"]
    with pytest.raises(ValueError):
        ids(period="forever")


def test_filter_transactions_by_fields_and_search(state):
    transactions = [
        tx(id="t1", account_id="a1", category_id="c1", tags="casa, mercado", description="Feira"),
        tx(id="t2", account_id="a2", type="income", amount=900.0, description="Salário"),
        tx(id="t3", account_id="a1", status="pending", tags="viagem"),
    ]

    def ids(**kwargs):
        return {t.id for t in fs.filter_transactions(transactions, fs.TransactionFilters(**kwargs))}

    assert ids(account_ids={"a1"}) == {"t1", "t3"}
    assert ids(types={"income"}) == {"t2"}
    assert ids(statuses={"pending"}) == {"t3"}
    assert ids(category_ids={"c1"}) == {"t1"}
    assert ids(tags={"mercado"}) == {"t1"}
    assert ids(search="SALÁ") == {"t2"}
    assert ids(search="viag") == {"t3"}
    assert ids(account_ids={"a1"}, statuses={"settled"}) == {"t1"}


def test_filter_transactions_sorts_by_absolute_amount():
    transactions = [tx(id="small", amount=-5.0), tx(id="big", amount=-500.0), tx(id="mid", amount=50.0)]

    desc = fs.filter_transactions(transactions, fs.TransactionFilters(sort_by="amount"))
    asc = fs.filter_transactions(transactions, fs.TransactionFilters(sort_by="amount", sort_order="asc"))

    assert [t.id for t in desc] == ["big", "mid", "small"]
    assert [t.id for t in asc] == ["small", "mid", "big"]
    with pytest.raises(ValueError):
        fs.filter_transactions(transactions, fs.TransactionFilters(sort_by="name"))


def test_history_undo_and_redo(state):
    history = fs.record(fs.FinanceHistory(), "inicial", state)
    changed = fs.create_transaction(state, tx(id="t1"))
    history = fs.record(history, "criar transação", changed)

    assert history.current is changed
    assert not history.can_redo()

    history = fs.undo(history)
    assert history.current is state
    assert not history.can_undo()
    assert fs.undo(history) is history

    history = fs.redo(history)
    assert history.current is changed


def test_history_new_action_discards_redo(state):
    history = fs.record(fs.FinanceHistory(), "inicial", state)
    history = fs.record(history, "a", fs.create_transaction(state, tx(id="a")))
    history = fs.undo(history)

    other = fs.create_transaction(state, tx(id="b"))
    history = fs.record(history, "b", other)

    assert [e.action for e in history.entries] == ["inicial", "b"]
    assert not history.can_redo()
    assert history.current is other


def test_history_keeps_last_fifty_states(state):
    history = fs.FinanceHistory()
    for i in range(60):
        history = fs.record(history, f"acao {i}", state)

    assert len(history.entries) == fs.HISTORY_LIMIT
    assert history.entries[0].action == "acao 10"
    assert history.index == fs.HISTORY_LIMIT - 1
