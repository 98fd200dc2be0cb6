"""
Geração de transações a partir de recorrências financeiras

Cada ocorrência gerada carrega uma chave de idempotência
(id da recorrência + data da ocorrência) em meta["occurrence_key"];
uma ocorrência só é gerada se nenhuma transação existente tiver a mesma chave.
"""
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from web_models import Recurrence, Transaction, utc_now

logger = logging.getLogger(__name__)


class RecurrenceError(Exception):
    """Exceção customizada para recorrências inválidas"""
    pass


@dataclass
class Occurrence:
    recurrence: Recurrence
    transaction: Transaction


@dataclass
class GenerationResult:
    occurrences: List[Occurrence] = field(default_factory=list)
    recurrences: List[Recurrence] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def generated(self) -> int:
        return len(self.occurrences)

    @property
    def transactions(self) -> List[Transaction]:
        return [o.transaction for o in self.occurrences]


def occurrence_key(recurrence_id: str, occurrence_date: date) -> str:
    return f"{recurrence_id}:{occurrence_date.isoformat()}"


def _clamped(year: int, month: int, day: int) -> date:
    """Monta a data usando o último dia do mês se o dia não existir"""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def _next_date(recurrence: Recurrence) -> date:
    current = recurrence.next_occurrence

    if recurrence.frequency == "monthly":
        year, month = current.year, current.month + 1
        if month > 12:
            month = 1
            year += 1
        return _clamped(year, month, recurrence.base_day)

    if recurrence.frequency == "weekly":
        return current + timedelta(days=7)

    if recurrence.frequency == "yearly":
        return _clamped(current.year + 1, current.month, recurrence.base_day)

    if recurrence.frequency == "custom":
        if not recurrence.interval_days or recurrence.interval_days < 1:
            raise RecurrenceError(
                f"Recorrência {recurrence.id} é custom mas não define interval_days"
            )
        return current + timedelta(days=recurrence.interval_days)

    raise RecurrenceError(f"Frequência não suportada: {recurrence.frequency}")


def advance(recurrence: Recurrence) -> date:
    """
    Calcula a próxima ocorrência a partir de next_occurrence

    monthly: base_day do mês seguinte (limitado ao último dia do mês)
    weekly: +7 dias
    yearly: mesmo mês do ano seguinte, no base_day (limitado)
    custom: +interval_days

    Uma próxima data além de date.max levanta RecurrenceError.
    """
    try:
        return _next_date(recurrence)
    except (OverflowError, ValueError):
        raise RecurrenceError(
            f"Recorrência {recurrence.id} não pode avançar além de {recurrence.next_occurrence}"
        )


def is_eligible(recurrence: Recurrence, today: Optional[date] = None) -> bool:
    """Ativa e com próxima ocorrência hoje ou no passado"""
    today = today or date.today()
    return recurrence.active and recurrence.next_occurrence <= today


def build_transaction(recurrence: Recurrence, status: str = "pending") -> Transaction:
    """Materializa a transação da ocorrência atual da recorrência"""
    return Transaction(
        user_id=recurrence.user_id,
        account_id=recurrence.account_id,
        category_id=recurrence.category_id,
        transaction_date=recurrence.next_occurrence,
        amount=recurrence.amount,
        type=recurrence.type,
        status=status,
        description=recurrence.description,
        tags=recurrence.tags,
        meta={
            "recurrence_id": recurrence.id,
            "occurrence_key": occurrence_key(recurrence.id, recurrence.next_occurrence),
        },
    )


def existing_keys(transactions: Iterable[Transaction]) -> set:
    return {
        t.meta["occurrence_key"]
        for t in transactions
        if t.meta.get("occurrence_key")
    }


def generate_occurrence(
    recurrence: Recurrence,
    keys: set,
    status: str = "pending",
) -> Tuple[Optional[Transaction], Recurrence]:
    """
    Gera uma ocorrência e avança a recorrência

    Retorna (transação ou None, recorrência avançada). Quando a chave da
    ocorrência já existe, nenhuma transação é criada mas a recorrência avança
    mesmo assim, para não ficar presa na mesma data.
    """
    next_date = advance(recurrence)
    key = occurrence_key(recurrence.id, recurrence.next_occurrence)

    transaction = None
    if key not in keys:
        transaction = build_transaction(recurrence, status)
        keys.add(key)

    advanced = recurrence.model_copy(
        update={"next_occurrence": next_date, "updated_at": utc_now()}
    )
    return transaction, advanced


def generate_recurrence_transactions(
    recurrence: Recurrence,
    transactions: Iterable[Transaction] = (),
    count: int = 1,
    status: str = "pending",
) -> GenerationResult:
    """Gera as próximas `count` ocorrências de uma recorrência, vencidas ou não"""
    if count < 1:
        raise RecurrenceError("count deve ser maior que zero")

    keys = existing_keys(transactions)
    result = GenerationResult()
    current = recurrence
    generated = []
    for _ in range(count):
        transaction, current = generate_occurrence(current, keys, status)
        if transaction:
            generated.append(transaction)

    result.occurrences.extend(Occurrence(current, t) for t in generated)
    result.recurrences.append(current)
    return result


def generate_due(
    recurrences: Iterable[Recurrence],
    transactions: Iterable[Transaction] = (),
    today: Optional[date] = None,
    status: str = "pending",
    catch_up: bool = False,
) -> GenerationResult:
    """
    Gera transações para todas as recorrências vencidas

    Processa em ordem crescente de next_occurrence. Erros de uma recorrência
    são coletados em `errors` sem interromper as demais. Com catch_up=True,
    cada recorrência é avançada até ficar no futuro, gerando uma transação
    por período perdido.
    """
    today = today or date.today()
    keys = existing_keys(transactions)
    result = GenerationResult()

    due = sorted(
        (r for r in recurrences if is_eligible(r, today)),
        key=lambda r: (r.next_occurrence, r.id),
    )

    for recurrence in due:
        try:
            current = recurrence
            pending: List[Transaction] = []
            local_keys = set(keys)
            while True:
                transaction, current = generate_occurrence(current, local_keys, status)
                if transaction:
                    pending.append(transaction)
                if not catch_up or not is_eligible(current, today):
                    break
        except (RecurrenceError, ValueError, OverflowError) as e:
            logger.warning("Recorrência %s não gerada: %s", recurrence.id, e)
            result.errors.append({"recurrence_id": recurrence.id, "error": str(e)})
            continue

        keys = local_keys
        # Cada ocorrência guarda o estado final da recorrência
        result.occurrences.extend(Occurrence(current, t) for t in pending)
        result.recurrences.append(current)

    logger.info(
        "%d transações geradas a partir de %d recorrências vencidas",
        result.generated, len(due),
    )
    return result


def upcoming(
    recurrences: Iterable[Recurrence],
    days: int = 30,
    today: Optional[date] = None,
) -> List[Dict]:
    """Recorrências ativas previstas entre hoje e hoje + days"""
    today = today or date.today()
    limit = today + timedelta(days=days)

    items = [
        {
            "recurrence_id": r.id,
            "next_date": r.next_occurrence.isoformat(),
            "description": r.description or "",
            "amount": r.amount,
            "account_id": r.account_id,
            "days_until": (r.next_occurrence - today).days,
        }
        for r in recurrences
        if r.active and today <= r.next_occurrence <= limit
    ]
    return sorted(items, key=lambda item: item["next_date"])
