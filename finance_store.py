"""
Estado financeiro: contas, categorias, transações, recorrências e orçamentos

Operações puras no mesmo estilo do task_store: recebem um FinanceState
e devolvem um novo. Os seletores (saldos, orçamentos, dashboard) só leem.
"""
import calendar
import csv
import io
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import recurrence as rec
from formatters import format_date, month_key
from task_analytics import window_bounds
from web_models import (
    Account,
    Budget,
    Category,
    Recurrence,
    Transaction,
    new_id,
    utc_now,
)


class FinanceNotFoundError(Exception):
    pass


@dataclass(frozen=True)
class FinanceState:
    accounts: List[Account] = field(default_factory=list)
    categories: List[Category] = field(default_factory=list)
    transactions: List[Transaction] = field(default_factory=list)
    recurrences: List[Recurrence] = field(default_factory=list)
    budgets: List[Budget] = field(default_factory=list)


def _get(items: Iterable, item_id: str, label: str):
    for item in items:
        if item.id == item_id:
            return item
    raise FinanceNotFoundError(f"{label} {item_id} não encontrada")


def _touch(item, updates: Dict[str, Any]):
    return item.model_validate({**item.model_dump(), **updates, "updated_at": utc_now()})


# Contas
def create_account(state: FinanceState, account: Account) -> FinanceState:
    return replace(state, accounts=[*state.accounts, account])


def update_account(state: FinanceState, account_id: str, updates: Dict[str, Any]) -> FinanceState:
    account = _get(state.accounts, account_id, "Conta")
    updated = _touch(account, updates)
    return replace(state, accounts=[updated if a.id == account_id else a for a in state.accounts])


def archive_account(state: FinanceState, account_id: str, archived: bool = True) -> FinanceState:
    return update_account(state, account_id, {"archived": archived})


def delete_account(state: FinanceState, account_id: str) -> FinanceState:
    """Remove a conta e todas as suas transações"""
    _get(state.accounts, account_id, "Conta")
    return replace(
        state,
        accounts=[a for a in state.accounts if a.id != account_id],
        transactions=[t for t in state.transactions if t.account_id != account_id],
    )


# Categorias
def create_category(state: FinanceState, category: Category) -> FinanceState:
    if category.parent_id:
        parent = _get(state.categories, category.parent_id, "Categoria")
        if parent.parent_id:
            raise ValueError("Categorias suportam apenas um nível de subcategoria")
    return replace(state, categories=[*state.categories, category])


def update_category(state: FinanceState, category_id: str,
                    updates: Dict[str, Any]) -> FinanceState:
    category = _get(state.categories, category_id, "Categoria")
    parent_id = updates.get("parent_id", category.parent_id)
    if parent_id:
        if parent_id == category_id:
            raise ValueError("Categoria não pode ser subcategoria de si mesma")
        parent = _get(state.categories, parent_id, "Categoria")
        has_children = any(c.parent_id == category_id for c in state.categories)
        if parent.parent_id or has_children:
            raise ValueError("Categorias suportam apenas um nível de subcategoria")
    updated = _touch(category, updates)
    return replace(state, categories=[
        updated if c.id == category_id else c for c in state.categories
    ])


def delete_category(state: FinanceState, category_id: str) -> FinanceState:
    """
    Remove a categoria e os orçamentos dela

    Transações e subcategorias ficam sem categoria.
    """
    _get(state.categories, category_id, "Categoria")
    categories = [
        c.model_copy(update={"parent_id": None}) if c.parent_id == category_id else c
        for c in state.categories
        if c.id != category_id
    ]
    transactions = [
        t.model_copy(update={"category_id": None}) if t.category_id == category_id else t
        for t in state.transactions
    ]
    budgets = [b for b in state.budgets if b.category_id != category_id]
    return replace(state, categories=categories, transactions=transactions, budgets=budgets)


# Transações
def create_transaction(state: FinanceState, transaction: Transaction) -> FinanceState:
    return replace(state, transactions=[*state.transactions, transaction])


def update_transaction(state: FinanceState, transaction_id: str,
                       updates: Dict[str, Any]) -> FinanceState:
    transaction = _get(state.transactions, transaction_id, "Transação")
    updated = _touch(transaction, updates)
    return replace(state, transactions=[
        updated if t.id == transaction_id else t for t in state.transactions
    ])


def delete_transaction(state: FinanceState, transaction_id: str) -> FinanceState:
    _get(state.transactions, transaction_id, "Transação")
    return replace(state, transactions=[t for t in state.transactions if t.id != transaction_id])


def delete_transactions(state: FinanceState, transaction_ids: Iterable[str]) -> FinanceState:
    """Exclusão em lote; ids desconhecidos são ignorados"""
    ids = set(transaction_ids)
    return replace(state, transactions=[t for t in state.transactions if t.id not in ids])


def toggle_transaction_status(state: FinanceState, transaction_id: str) -> FinanceState:
    transaction = _get(state.transactions, transaction_id, "Transação")
    new_status = "settled" if transaction.status == "pending" else "pending"
    return update_transaction(state, transaction_id, {"status": new_status})


def build_transfer(
    from_account_id: str,
    to_account_id: str,
    amount: float,
    transaction_date: date,
    description: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Tuple[Transaction, Transaction]:
    """Par de transações ligadas por meta.link_id (saída negativa, entrada positiva)"""
    if from_account_id == to_account_id:
        raise ValueError("Transferência precisa de contas diferentes")
    link_id = new_id()
    common = {
        "user_id": user_id,
        "transaction_date": transaction_date,
        "type": "transfer",
        "status": "settled",
        "description": description or "Transferência",
    }
    outgoing = Transaction(
        account_id=from_account_id, amount=-abs(amount),
        meta={"link_id": link_id, "direction": "origin"}, **common,
    )
    incoming = Transaction(
        account_id=to_account_id, amount=abs(amount),
        meta={"link_id": link_id, "direction": "destination"}, **common,
    )
    return outgoing, incoming


def create_transfer(state: FinanceState, from_account_id: str, to_account_id: str,
                    amount: float, transaction_date: date,
                    description: Optional[str] = None) -> FinanceState:
    _get(state.accounts, from_account_id, "Conta")
    _get(state.accounts, to_account_id, "Conta")
    pair = build_transfer(from_account_id, to_account_id, amount, transaction_date, description)
    return replace(state, transactions=[*state.transactions, *pair])


# Recorrências
def create_recurrence(state: FinanceState, recurrence: Recurrence) -> FinanceState:
    return replace(state, recurrences=[*state.recurrences, recurrence])


def update_recurrence(state: FinanceState, recurrence_id: str,
                      updates: Dict[str, Any]) -> FinanceState:
    recurrence = _get(state.recurrences, recurrence_id, "Recorrência")
    updated = _touch(recurrence, updates)
    if updated.frequency == "custom" and not updated.interval_days:
        raise rec.RecurrenceError("Recorrências custom precisam de interval_days")
    return replace(state, recurrences=[
        updated if r.id == recurrence_id else r for r in state.recurrences
    ])


def delete_recurrence(state: FinanceState, recurrence_id: str) -> FinanceState:
    _get(state.recurrences, recurrence_id, "Recorrência")
    return replace(state, recurrences=[r for r in state.recurrences if r.id != recurrence_id])


def _merge_generation(state: FinanceState, result: rec.GenerationResult) -> FinanceState:
    advanced = {r.id: r for r in result.recurrences}
    return replace(
        state,
        transactions=[*state.transactions, *result.transactions],
        recurrences=[advanced.get(r.id, r) for r in state.recurrences],
    )


def generate_due_recurrences(
    state: FinanceState,
    today: Optional[date] = None,
    status: str = "pending",
    catch_up: bool = False,
) -> Tuple[FinanceState, rec.GenerationResult]:
    """Gera todas as recorrências vencidas e devolve (novo estado, resultado)"""
    result = rec.generate_due(state.recurrences, state.transactions, today, status, catch_up)
    return _merge_generation(state, result), result


def generate_recurrence(
    state: FinanceState,
    recurrence_id: str,
    count: int = 1,
    status: str = "pending",
) -> Tuple[FinanceState, rec.GenerationResult]:
    recurrence = _get(state.recurrences, recurrence_id, "Recorrência")
    result = rec.generate_recurrence_transactions(recurrence, state.transactions, count, status)
    return _merge_generation(state, result), result


def generate_month_recurrences(
    state: FinanceState,
    today: Optional[date] = None,
    status: str = "pending",
) -> Tuple[FinanceState, rec.GenerationResult]:
    """Gera uma ocorrência de cada recorrência ativa que vence até o fim do mês"""
    month_end = window_bounds("month", today or date.today())[1]
    return generate_due_recurrences(state, month_end, status)


# Orçamentos
def create_budget(state: FinanceState, budget: Budget) -> FinanceState:
    return replace(state, budgets=[*state.budgets, budget])


def update_budget(state: FinanceState, budget_id: str,
                  updates: Dict[str, Any]) -> FinanceState:
    budget = _get(state.budgets, budget_id, "Orçamento")
    updated = _touch(budget, updates)
    return replace(state, budgets=[updated if b.id == budget_id else b for b in state.budgets])


def delete_budget(state: FinanceState, budget_id: str) -> FinanceState:
    _get(state.budgets, budget_id, "Orçamento")
    return replace(state, budgets=[b for b in state.budgets if b.id != budget_id])


# Seletores
def account_balance(state: FinanceState, account_id: str) -> Dict[str, Any]:
    """Saldo da conta considerando apenas transações compensadas"""
    account = _get(state.accounts, account_id, "Conta")
    settled = [
        t for t in state.transactions
        if t.account_id == account_id and t.status == "settled"
    ]

    income = sum(t.amount for t in settled if t.type == "income")
    expenses = sum(abs(t.amount) for t in settled if t.type == "expense")
    transfers_in = sum(t.amount for t in settled if t.type == "transfer" and t.amount > 0)
    transfers_out = sum(abs(t.amount) for t in settled if t.type == "transfer" and t.amount < 0)

    return {
        "account_id": account_id,
        "initial_balance": account.initial_balance,
        "current_balance": account.initial_balance + income - expenses + transfers_in - transfers_out,
        "total_income": income,
        "total_expenses": expenses,
        "total_transfers_in": transfers_in,
        "total_transfers_out": transfers_out,
    }


def total_balance(state: FinanceState) -> float:
    return sum(
        account_balance(state, a.id)["current_balance"]
        for a in state.accounts
        if not a.archived
    )


def category_spending(state: FinanceState, category_id: str,
                      month: Optional[str] = None) -> Dict[str, Any]:
    """Despesas compensadas da categoria no mês (YYYY-MM)"""
    month = month or month_key(date.today())
    category = next((c for c in state.categories if c.id == category_id), None)
    transactions = [
        t for t in state.transactions
        if t.category_id == category_id
        and month_key(t.transaction_date) == month
        and t.status == "settled"
        and t.type == "expense"
    ]
    return {
        "category_id": category_id,
        "category_name": category.name if category else "",
        "spent": sum(abs(t.amount) for t in transactions),
        "transactions": transactions,
    }


def budget_status(state: FinanceState, budget_id: str,
                  today: Optional[date] = None) -> Dict[str, Any]:
    """
    Situação do orçamento

    ok abaixo do limiar de alerta, warning a partir de alert_threshold_pct,
    exceeded a partir de 100%.
    """
    today = today or date.today()
    budget = _get(state.budgets, budget_id, "Orçamento")
    spending = category_spending(state, budget.category_id, budget.month_year)
    percentage = spending["spent"] / budget.planned_amount * 100

    if percentage >= 100:
        status = "exceeded"
    elif percentage >= budget.alert_threshold_pct:
        status = "warning"
    else:
        status = "ok"

    year, month = (int(part) for part in budget.month_year.split("-"))
    month_end = date(year, month, calendar.monthrange(year, month)[1])

    return {
        "budget_id": budget.id,
        "category_id": budget.category_id,
        "category_name": spending["category_name"],
        "planned_amount": budget.planned_amount,
        "spent": spending["spent"],
        "percentage": percentage,
        "status": status,
        "remaining_days": max(0, (month_end - today).days),
    }


def dashboard(state: FinanceState, today: Optional[date] = None) -> Dict[str, Any]:
    """Resumo para o painel financeiro"""
    today = today or date.today()
    week_ahead = today + timedelta(days=7)
    current_month = month_key(today)

    pending_expenses = [
        t for t in state.transactions if t.status == "pending" and t.type == "expense"
    ]
    monthly = [
        t for t in state.transactions
        if month_key(t.transaction_date) == current_month and t.status == "settled"
    ]

    budgets = [budget_status(state, b.id, today) for b in state.budgets
               if b.month_year == current_month]

    return {
        "total_balance": total_balance(state),
        "weekly_due": sum(abs(t.amount) for t in pending_expenses
                          if today <= t.transaction_date <= week_ahead),
        "overdue": sum(abs(t.amount) for t in pending_expenses if t.transaction_date < today),
        "monthly_income": sum(t.amount for t in monthly if t.type == "income"),
        "monthly_expenses": sum(abs(t.amount) for t in monthly if t.type == "expense"),
        "top_budgets": sorted(budgets, key=lambda b: b["percentage"], reverse=True)[:5],
        "upcoming_recurrences": rec.upcoming(state.recurrences, 30, today),
    }


def export_transactions_csv(state: FinanceState,
                            transactions: Optional[Iterable[Transaction]] = None) -> str:
    accounts = {a.id: a.name for a in state.accounts}
    categories = {c.id: c.name for c in state.categories}
    rows = state.transactions if transactions is None else transactions

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(["Data", "Conta", "Tipo", "Categoria", "Descrição", "Tags", "Valor", "Status"])
    for t in rows:
        writer.writerow([
            format_date(t.transaction_date),
            accounts.get(t.account_id, ""),
            t.type,
            categories.get(t.category_id, "") if t.category_id else "",
            t.description or "",
            t.tags,
            f"{t.amount:.2f}",
            t.status,
        ])
    return buffer.getvalue()


# Filtros de transações
PERIODS = ("today", "this-week", "this-month", "last-month")
SORT_FIELDS = ("date", "amount")


@dataclass
class TransactionFilters:
    period: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    account_ids: Set[str] = field(default_factory=set)
    types: Set[str] = field(default_factory=set)
    statuses: Set[str] = field(default_factory=set)
    category_ids: Set[str] = field(default_factory=set)
    tags: Set[str] = field(default_factory=set)
    search: str = ""
    sort_by: str = "date"
    sort_order: str = "desc"


def period_bounds(period: str, today: date) -> Tuple[date, date]:
    """Intervalo de datas de um período nomeado; semanas vão de domingo a sábado"""
    if period == "today":
        return today, today
    if period == "this-week":
        return window_bounds("week", today)
    if period == "this-month":
        return window_bounds("month", today)
    if period == "last-month":
        return window_bounds("month", today.replace(day=1) - timedelta(days=1))
    raise ValueError(f"Período inválido: {period}. Use um de {', '.join(PERIODS)}")


def split_tags(tags: str) -> List[str]:
    return [tag.strip() for tag in tags.split(",") if tag.strip()]


def filter_transactions(
    transactions: Iterable[Transaction],
    filters: Optional[TransactionFilters] = None,
    today: Optional[date] = None,
) -> List[Transaction]:
    """
    Aplica período, intervalo, conta, tipo, status, categoria, tags e busca

    Todos os critérios são combinados com E; dentro de cada conjunto basta
    um valor coincidir. A busca procura na descrição e nas tags, sem caixa.
    O resultado é ordenado por data ou por valor absoluto.
    """
    filters = filters or TransactionFilters()
    if filters.sort_by not in SORT_FIELDS:
        raise ValueError(f"Ordenação inválida: {filters.sort_by}")
    result = list(transactions)

    if filters.period:
        start, end = period_bounds(filters.period, today or date.today())
        result = [t for t in result if start <= t.transaction_date <= end]
    if filters.start_date:
        result = [t for t in result if t.transaction_date >= filters.start_date]
    if filters.end_date:
        result = [t for t in result if t.transaction_date <= filters.end_date]
    if filters.account_ids:
        result = [t for t in result if t.account_id in filters.account_ids]
    if filters.types:
        result = [t for t in result if t.type in filters.types]
    if filters.statuses:
        result = [t for t in result if t.status in filters.statuses]
    if filters.category_ids:
        result = [t for t in result if t.category_id in filters.category_ids]
    if filters.tags:
        result = [t for t in result if filters.tags.intersection(split_tags(t.tags))]
    if filters.search:
        needle = filters.search.lower()
        result = [
            t for t in result
            if needle in (t.description or "").lower() or needle in t.tags.lower()
        ]

    if filters.sort_by == "date":
        key = lambda t: t.transaction_date
    else:
        key = lambda t: abs(t.amount)
    return sorted(result, key=key, reverse=filters.sort_order == "desc")


# Histórico para desfazer/refazer
HISTORY_LIMIT = 50


@dataclass(frozen=True)
class HistoryEntry:
    action: str
    state: FinanceState
    timestamp: datetime


@dataclass(frozen=True)
class FinanceHistory:
    """Fotografias do estado; index aponta para o estado atual"""

    entries: Tuple[HistoryEntry, ...] = ()
    index: int = -1

    @property
    def current(self) -> FinanceState:
        if self.index < 0:
            return FinanceState()
        return self.entries[self.index].state

    def can_undo(self) -> bool:
        return self.index > 0

    def can_redo(self) -> bool:
        return self.index < len(self.entries) - 1


def record(history: FinanceHistory, action: str, state: FinanceState) -> FinanceHistory:
    """Registra um novo estado; descarta o que havia para refazer e guarda só os últimos 50"""
    entries = [*history.entries[:history.index + 1], HistoryEntry(action, state, utc_now())]
    entries = entries[-HISTORY_LIMIT:]
    return FinanceHistory(tuple(entries), len(entries) - 1)


def undo(history: FinanceHistory) -> FinanceHistory:
    if not history.can_undo():
        return history
    return replace(history, index=history.index - 1)


def redo(history: FinanceHistory) -> FinanceHistory:
    if not history.can_redo():
        return history
    return replace(history, index=history.index + 1)
