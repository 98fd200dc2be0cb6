"""
Estado de tarefas e listas

Cada operação recebe um TaskState e devolve um novo TaskState; o estado
recebido nunca é alterado. Excluir uma tarefa guarda apenas a última
excluída para o "desfazer".
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from web_models import Subtask, Task, TaskList, new_id, utc_now


class TaskNotFoundError(Exception):
    pass


@dataclass(frozen=True)
class TaskState:
    tasks: List[Task] = field(default_factory=list)
    lists: List[TaskList] = field(default_factory=list)
    recently_deleted: Optional[Task] = None


def _find(state: TaskState, task_id: str) -> Task:
    for task in state.tasks:
        if task.id == task_id:
            return task
    raise TaskNotFoundError(f"Tarefa {task_id} não encontrada")


def _replace_task(state: TaskState, updated: Task) -> TaskState:
    return replace(state, tasks=[updated if t.id == updated.id else t for t in state.tasks])


def apply_task_update(task: Task, updates: Dict[str, Any]) -> Task:
    """
    Aplica campos alterados numa tarefa

    Mudar o status para concluida preenche completed_at; voltar para
    pendente limpa o campo.
    """
    updates = dict(updates)
    new_status = updates.get("status")
    if new_status and new_status != task.status:
        updates["completed_at"] = utc_now() if new_status == "concluida" else None
    updates["updated_at"] = utc_now()
    return task.model_validate({**task.model_dump(), **updates})


def add_task(state: TaskState, task: Task) -> TaskState:
    return replace(state, tasks=[*state.tasks, task])


def update_task(state: TaskState, task_id: str, updates: Dict[str, Any]) -> TaskState:
    return _replace_task(state, apply_task_update(_find(state, task_id), updates))


def delete_task(state: TaskState, task_id: str) -> TaskState:
    task = _find(state, task_id)
    return replace(
        state,
        tasks=[t for t in state.tasks if t.id != task_id],
        recently_deleted=task,
    )


def restore_task(state: TaskState) -> TaskState:
    """Desfaz a última exclusão; sem exclusão pendente nada muda"""
    if state.recently_deleted is None:
        return state
    return replace(state, tasks=[*state.tasks, state.recently_deleted], recently_deleted=None)


def toggle_task_status(state: TaskState, task_id: str) -> TaskState:
    task = _find(state, task_id)
    new_status = "pendente" if task.status == "concluida" else "concluida"
    return update_task(state, task_id, {"status": new_status})


def duplicate_task(state: TaskState, task_id: str) -> TaskState:
    original = _find(state, task_id)
    now = utc_now()
    copy = original.model_copy(update={
        "id": new_id(),
        "title": f"{original.title} (cópia)",
        "status": "pendente",
        "completed_at": None,
        "created_at": now,
        "updated_at": now,
        "subtasks": [Subtask(title=st.title) for st in original.subtasks],
        "photos": list(original.photos),
        "tags": list(original.tags),
    })
    return add_task(state, copy)


def move_task(state: TaskState, task_id: str, list_id: str) -> TaskState:
    if not any(l.id == list_id for l in state.lists):
        raise TaskNotFoundError(f"Lista {list_id} não encontrada")
    return update_task(state, task_id, {"list_id": list_id})


def add_subtask(state: TaskState, task_id: str, title: str) -> TaskState:
    task = _find(state, task_id)
    subtasks = [*task.subtasks, Subtask(title=title)]
    return update_task(state, task_id, {"subtasks": subtasks})


def toggle_subtask(state: TaskState, task_id: str, subtask_id: str) -> TaskState:
    task = _find(state, task_id)
    subtasks = [
        st.model_copy(update={"completed": not st.completed}) if st.id == subtask_id else st
        for st in task.subtasks
    ]
    return update_task(state, task_id, {"subtasks": subtasks})


def remove_subtask(state: TaskState, task_id: str, subtask_id: str) -> TaskState:
    task = _find(state, task_id)
    subtasks = [st for st in task.subtasks if st.id != subtask_id]
    return update_task(state, task_id, {"subtasks": subtasks})


def add_list(state: TaskState, name: str, color: Optional[str] = None,
             owner_id: Optional[str] = None) -> TaskState:
    return replace(state, lists=[*state.lists, TaskList(name=name, color=color, owner_id=owner_id)])


def update_list(state: TaskState, list_id: str, updates: Dict[str, Any]) -> TaskState:
    return replace(state, lists=[
        l.model_copy(update=updates) if l.id == list_id else l for l in state.lists
    ])


def delete_list(state: TaskState, list_id: str) -> TaskState:
    """Remove a lista e, junto, as tarefas que apontam para ela"""
    return replace(
        state,
        lists=[l for l in state.lists if l.id != list_id],
        tasks=[t for t in state.tasks if t.list_id != list_id],
    )


def get_all_tags(state: TaskState) -> List[str]:
    return sorted({tag for task in state.tasks for tag in task.tags})
