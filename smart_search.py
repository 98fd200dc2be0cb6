"""
Busca inteligente de tarefas

Gramática dos termos (separados por espaço, todos combinados com E):

    #<tag>               tarefa contém a tag (sensível a maiúsculas)
    lista:<nome-ou-id>   tarefa pertence à lista (id exato ou nome sem caixa)
    prioridade:<nível>   baixa | media | alta | urgente
    hoje                 vence hoje
    atrasadas            vencida antes de hoje e ainda pendente
    semana               vence entre hoje e hoje + 7 dias
    pendentes            status pendente
    concluidas           status concluida
    qualquer outro       trecho no título ou na descrição (sem caixa)

Um `prioridade:` com nível desconhecido, e os prefixos sem valor (`#`,
`lista:`, `prioridade:`), viram termos de texto comuns.
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Iterable, List, Optional, Sequence, Set

from web_models import PRIORITIES, Task, TaskList

TAG = "tag"
LIST = "list"
PRIORITY = "priority"
DATE = "date"
STATUS = "status"
TEXT = "text"

DATE_KEYWORDS = ("hoje", "atrasadas", "semana")
STATUS_KEYWORDS = {"pendentes": "pendente", "concluidas": "concluida"}

LIST_PREFIX = "lista:"
PRIORITY_PREFIX = "prioridade:"

TaskPredicate = Callable[[Task], bool]

# Filtros rápidos oferecidos na barra lateral
QUICK_FILTERS = {
    "high-priority": {"name": "Alta Prioridade", "query": "prioridade:alta pendentes"},
    "due-today": {"name": "Vencendo Hoje", "query": "hoje pendentes"},
    "overdue": {"name": "Atrasadas", "query": "atrasadas"},
    "completed-this-week": {"name": "Concluídas esta Semana", "query": "semana concluidas"},
}


@dataclass(frozen=True)
class SearchToken:
    kind: str
    value: str
    raw: str


@dataclass
class TaskFilters:
    """Filtros estruturados, independentes do texto da busca"""

    statuses: Set[str] = field(default_factory=set)
    priorities: Set[str] = field(default_factory=set)
    list_ids: Set[str] = field(default_factory=set)
    tags: Set[str] = field(default_factory=set)
    due_from: Optional[date] = None
    due_to: Optional[date] = None

    def is_empty(self) -> bool:
        return not (
            self.statuses or self.priorities or self.list_ids or self.tags
            or self.due_from or self.due_to
        )


def tokenize(query: str) -> List[SearchToken]:
    """Quebra a busca em termos tipados"""
    tokens = []
    for word in query.split():
        if word.startswith("#") and len(word) > 1:
            tokens.append(SearchToken(TAG, word[1:], word))
        elif word.startswith(LIST_PREFIX) and len(word) > len(LIST_PREFIX):
            tokens.append(SearchToken(LIST, word[len(LIST_PREFIX):], word))
        elif word.startswith(PRIORITY_PREFIX) and word[len(PRIORITY_PREFIX):] in PRIORITIES:
            tokens.append(SearchToken(PRIORITY, word[len(PRIORITY_PREFIX):], word))
        elif word in DATE_KEYWORDS:
            tokens.append(SearchToken(DATE, word, word))
        elif word in STATUS_KEYWORDS:
            tokens.append(SearchToken(STATUS, STATUS_KEYWORDS[word], word))
        else:
            tokens.append(SearchToken(TEXT, word, word))
    return tokens


def _list_ids_for(value: str, lists: Sequence[TaskList]) -> Set[str]:
    ids = {value}
    ids.update(l.id for l in lists if l.name.lower() == value.lower())
    return ids


def _date_predicate(keyword: str, today: date) -> TaskPredicate:
    if keyword == "hoje":
        return lambda task: task.due_date == today
    if keyword == "atrasadas":
        return lambda task: (
            task.due_date is not None
            and task.due_date < today
            and task.status == "pendente"
        )
    week_end = today + timedelta(days=7)
    return lambda task: task.due_date is not None and today <= task.due_date <= week_end


def _text_predicate(text: str) -> TaskPredicate:
    needle = text.lower()

    def matches(task: Task) -> bool:
        if needle in task.title.lower():
            return True
        return bool(task.description) and needle in task.description.lower()

    return matches


def build_predicate(
    token: SearchToken,
    lists: Sequence[TaskList] = (),
    today: Optional[date] = None,
) -> TaskPredicate:
    """Converte um termo em predicado sobre tarefas"""
    today = today or date.today()

    if token.kind == TAG:
        return lambda task: token.value in task.tags
    if token.kind == LIST:
        ids = _list_ids_for(token.value, lists)
        return lambda task: task.list_id in ids
    if token.kind == PRIORITY:
        return lambda task: task.priority == token.value
    if token.kind == DATE:
        return _date_predicate(token.value, today)
    if token.kind == STATUS:
        return lambda task: task.status == token.value
    return _text_predicate(token.value)


def filter_predicates(filters: TaskFilters) -> List[TaskPredicate]:
    """Predicados dos filtros estruturados"""
    predicates = []
    if filters.statuses:
        predicates.append(lambda task: task.status in filters.statuses)
    if filters.priorities:
        predicates.append(lambda task: task.priority in filters.priorities)
    if filters.list_ids:
        predicates.append(lambda task: task.list_id in filters.list_ids)
    if filters.tags:
        predicates.append(lambda task: any(tag in filters.tags for tag in task.tags))
    if filters.due_from:
        predicates.append(
            lambda task: task.due_date is not None and task.due_date >= filters.due_from
        )
    if filters.due_to:
        predicates.append(
            lambda task: task.due_date is not None and task.due_date <= filters.due_to
        )
    return predicates


def filter_tasks(
    tasks: Iterable[Task],
    query: str = "",
    filters: Optional[TaskFilters] = None,
    lists: Sequence[TaskList] = (),
    today: Optional[date] = None,
) -> List[Task]:
    """
    Aplica a busca e os filtros estruturados, preservando a ordem original

    Sem busca e sem filtros retorna a coleção inteira, na mesma ordem.
    """
    predicates = [build_predicate(t, lists, today) for t in tokenize(query or "")]
    if filters is not None:
        predicates.extend(filter_predicates(filters))

    if not predicates:
        return list(tasks)
    return [task for task in tasks if all(p(task) for p in predicates)]


def apply_quick_filter(
    filter_id: str,
    tasks: Iterable[Task],
    lists: Sequence[TaskList] = (),
    today: Optional[date] = None,
) -> List[Task]:
    quick = QUICK_FILTERS.get(filter_id)
    if quick is None:
        raise KeyError(f"Filtro rápido desconhecido: {filter_id}")
    return filter_tasks(tasks, quick["query"], lists=lists, today=today)


def get_filter_suggestions(
    term: str,
    tasks: Iterable[Task],
    lists: Sequence[TaskList] = (),
) -> List[dict]:
    """Sugestões de tags, listas e prioridades que contêm o termo digitado"""
    if not term:
        return []
    needle = term.lower()

    all_tags = []
    for task in tasks:
        for tag in task.tags:
            if tag not in all_tags:
                all_tags.append(tag)

    suggestions = [
        {"type": TAG, "value": tag, "display": f"#{tag}"}
        for tag in sorted(all_tags)
        if needle in tag.lower()
    ]
    suggestions += [
        {"type": LIST, "value": l.name, "display": f"Lista: {l.name}"}
        for l in lists
        if needle in l.name.lower()
    ]
    suggestions += [
        {"type": PRIORITY, "value": p, "display": f"Prioridade: {p}"}
        for p in PRIORITIES
        if needle in p
    ]
    return suggestions
