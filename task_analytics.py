"""
Estatísticas de produtividade sobre uma coleção de tarefas

Funções puras: tudo é recalculado a partir da coleção recebida.
Timestamps são agrupados por dia no horário local.
"""
import math
import statistics
from collections import Counter
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from formatters import format_day_label, round_half_up
from web_models import Task, TaskList

WINDOWS = ("week", "month")


def _local(value: datetime) -> datetime:
    """Converte para horário local sem fuso; datetimes sem fuso já são locais"""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _local_day(value: datetime) -> date:
    return _local(value).date()


def completion_rate(completed: int, total: int) -> int:
    """Percentual inteiro de conclusão; 0 quando não há tarefas"""
    if total == 0:
        return 0
    return round_half_up(Decimal(completed * 100) / Decimal(total))


def window_bounds(window: str, today: date) -> Tuple[date, date]:
    """Primeiro e último dia da semana (domingo a sábado) ou do mês"""
    if window == "week":
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        return start, start + timedelta(days=6)
    if window == "month":
        start = today.replace(day=1)
        next_month = (start + timedelta(days=32)).replace(day=1)
        return start, next_month - timedelta(days=1)
    raise ValueError(f"Janela inválida: {window}. Use 'week' ou 'month'")


def _is_completed(task: Task) -> bool:
    return task.status == "concluida" and task.completed_at is not None


def productivity_metrics(
    tasks: Iterable[Task],
    window: str = "week",
    now: Optional[datetime] = None,
) -> Dict:
    """
    Métricas da janela atual (semana ou mês)

    A taxa de conclusão considera as tarefas criadas na janela e, dentre
    elas, as concluídas dentro da janela.
    """
    tasks = list(tasks)
    today = _local(now).date() if now else date.today()
    start, end = window_bounds(window, today)

    def in_window(value: Optional[datetime]) -> bool:
        return value is not None and start <= _local_day(value) <= end

    in_range = [t for t in tasks if in_window(t.created_at)]
    completed_in_range = [t for t in in_range if _is_completed(t) and in_window(t.completed_at)]

    created_by_day = Counter(_local_day(t.created_at) for t in in_range)
    completed_by_day = Counter(
        _local_day(t.completed_at) for t in tasks if _is_completed(t) and in_window(t.completed_at)
    )

    days = [start + timedelta(days=i) for i in range((end - start).days + 1)]
    daily = [
        {
            "date": day.isoformat(),
            "label": format_day_label(day),
            "created": created_by_day.get(day, 0),
            "completed": completed_by_day.get(day, 0),
        }
        for day in days
    ]

    total = len(in_range)
    completed = len(completed_in_range)
    return {
        "window": window,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "total_tasks": total,
        "completed": completed,
        "pending": total - completed,
        "completion_rate": completion_rate(completed, total),
        "priority_distribution": dict(Counter(t.priority for t in in_range)),
        "daily_tasks": daily,
        "average_tasks_per_day": round_half_up(Decimal(total) / Decimal(len(days))),
    }


def days_to_complete(task: Task) -> int:
    elapsed = _local(task.completed_at) - _local(task.created_at)
    return math.ceil(elapsed.total_seconds() / 86400)


def time_to_complete_metrics(tasks: Iterable[Task]) -> Dict:
    """Dias até a conclusão sobre todas as tarefas concluídas (sem janela)"""
    durations = sorted(
        days_to_complete(t) for t in tasks if _is_completed(t) and t.created_at is not None
    )

    if not durations:
        return {"count": 0, "average_days": 0, "median_days": 0, "fastest": 0, "slowest": 0}

    return {
        "count": len(durations),
        "average_days": round_half_up(statistics.mean(durations)),
        "median_days": round_half_up(statistics.median(durations)),
        "fastest": durations[0],
        "slowest": durations[-1],
    }


def _rollup(group: List[Task]) -> Dict:
    completed = sum(1 for t in group if t.status == "concluida")
    return {
        "total": len(group),
        "completed": completed,
        "pending": len(group) - completed,
        "completion_rate": completion_rate(completed, len(group)),
    }


def list_analytics(tasks: Iterable[Task], lists: Sequence[TaskList] = ()) -> List[Dict]:
    """Totais por lista; listas sem tarefas ficam de fora"""
    groups: Dict[str, List[Task]] = {}
    for task in tasks:
        if task.list_id:
            groups.setdefault(task.list_id, []).append(task)

    by_id = {l.id: l for l in lists}
    ordered = [l.id for l in lists if l.id in groups]
    ordered += [list_id for list_id in groups if list_id not in by_id]

    result = []
    for list_id in ordered:
        task_list = by_id.get(list_id)
        result.append({
            "id": list_id,
            "name": task_list.name if task_list else None,
            "color": task_list.color if task_list else None,
            **_rollup(groups[list_id]),
        })
    return result


def tag_analytics(tasks: Iterable[Task]) -> List[Dict]:
    """Totais por tag, da mais usada para a menos usada"""
    groups: Dict[str, List[Task]] = {}
    for task in tasks:
        for tag in task.tags:
            groups.setdefault(tag, []).append(task)

    result = []
    for tag, group in groups.items():
        rollup = _rollup(group)
        result.append({
            "tag": tag,
            "count": rollup["total"],
            "completed": rollup["completed"],
            "completion_rate": rollup["completion_rate"],
        })
    return sorted(result, key=lambda item: item["count"], reverse=True)


def overdue_analytics(tasks: Iterable[Task], today: Optional[date] = None) -> Dict:
    """Pendentes vencidas agrupadas por dias de atraso e por prioridade"""
    today = today or date.today()
    overdue = [
        t for t in tasks
        if t.status == "pendente" and t.due_date is not None and t.due_date < today
    ]

    by_days = Counter()
    for task in overdue:
        days_late = (today - task.due_date).days
        if days_late <= 7:
            by_days["1-7"] += 1
        elif days_late <= 30:
            by_days["8-30"] += 1
        else:
            by_days["30+"] += 1

    return {
        "total": len(overdue),
        "by_days_range": dict(by_days),
        "by_priority": dict(Counter(t.priority for t in overdue)),
    }


def export_analytics(
    tasks: Iterable[Task],
    lists: Sequence[TaskList] = (),
    window: str = "week",
    now: Optional[datetime] = None,
) -> Dict:
    """Relatório completo usado pelo endpoint de analytics"""
    tasks = list(tasks)
    now = now or datetime.now()
    tags = tag_analytics(tasks)
    return {
        "export_date": now.isoformat(),
        "productivity": productivity_metrics(tasks, window, now),
        "lists": list_analytics(tasks, lists),
        "overdue": overdue_analytics(tasks, _local(now).date()),
        "tags": tags,
        "time_to_complete": time_to_complete_metrics(tasks),
        "summary": {
            "total_tasks": len(tasks),
            "total_completed": sum(1 for t in tasks if t.status == "concluida"),
            "completion_rate": completion_rate(
                sum(1 for t in tasks if t.status == "concluida"), len(tasks)
            ),
            "total_lists": len(lists),
            "total_tags": len(tags),
        },
    }
