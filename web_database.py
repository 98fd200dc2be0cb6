"""
Funções de banco de dados para a API REST
Operações CRUD de usuários, tarefas e listas no Supabase
"""
import logging
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from database import DatabaseError, supabase
from web_models import Task, TaskList

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class WebDatabaseService:
    def __init__(self, client=None):
        self.supabase = client if client is not None else supabase

    def _table(self, name: str):
        if not self.supabase:
            raise DatabaseError("Banco de dados indisponível")
        return self.supabase.table(name)

    # ======= USUÁRIOS =======

    def create_user(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        """Criar novo usuário"""
        return self._insert("users", user_data, "Erro ao criar usuário")

    def get_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Buscar usuário por ID"""
        return self._first("users", "id", user_id, "Erro ao buscar usuário")

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Buscar usuário por email"""
        return self._first("users", "email", email, "Erro ao buscar usuário por email")

    def update_user(self, user_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Atualizar dados do usuário"""
        return self._update("users", user_id, updates, "Erro ao atualizar usuário")

    # ======= TAREFAS =======

    def list_tasks(
        self,
        owner_id: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Task], int]:
        """Lista tarefas paginadas, mais recentes primeiro"""
        try:
            query = self._table("tasks").select("*", count="exact")
            if status:
                query = query.eq("status", status)
            if priority:
                query = query.eq("priority", priority)
            if owner_id:
                query = query.eq("created_by", owner_id)

            start = (page - 1) * limit
            result = query.order("created_at", desc=True).range(start, start + limit - 1).execute()
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"Erro ao buscar tarefas: {str(e)}")

        tasks = [self._parse(Task, row) for row in result.data or []]
        total = result.count if result.count is not None else len(tasks)
        return tasks, total

    def get_tasks_by_owner(self, owner_id: str) -> List[Task]:
        """Todas as tarefas do usuário, na ordem de criação"""
        rows = self._select("tasks", "created_by", owner_id, "Erro ao buscar tarefas", order="created_at")
        return [self._parse(Task, row) for row in rows]

    def get_task(self, task_id: str) -> Optional[Task]:
        row = self._first("tasks", "id", task_id, "Erro ao buscar tarefa")
        return self._parse(Task, row) if row else None

    def create_task(self, task: Task) -> Task:
        row = self._insert("tasks", task.model_dump(mode="json"), "Erro ao criar tarefa")
        return self._parse(Task, row)

    def save_task(self, task: Task) -> Task:
        """Grava a tarefa inteira sobre o registro existente"""
        data = task.model_dump(mode="json")
        data.pop("id")
        row = self._update("tasks", task.id, data, "Erro ao atualizar tarefa")
        return self._parse(Task, row)

    def delete_task(self, task_id: str) -> bool:
        return self._delete("tasks", "id", task_id, "Erro ao deletar tarefa") > 0

    # ======= LISTAS =======

    def get_lists(self, owner_id: str) -> List[TaskList]:
        rows = self._select("task_lists", "owner_id", owner_id, "Erro ao buscar listas", order="created_at")
        return [self._parse(TaskList, row) for row in rows]

    def get_list(self, list_id: str) -> Optional[TaskList]:
        row = self._first("task_lists", "id", list_id, "Erro ao buscar lista")
        return self._parse(TaskList, row) if row else None

    def create_list(self, task_list: TaskList) -> TaskList:
        row = self._insert("task_lists", task_list.model_dump(mode="json"), "Erro ao criar lista")
        return self._parse(TaskList, row)

    def delete_list(self, list_id: str) -> int:
        """Remove a lista e as tarefas dela; retorna quantas tarefas foram removidas"""
        removed = self._delete("tasks", "list_id", list_id, "Erro ao remover tarefas da lista")
        self._delete("task_lists", "id", list_id, "Erro ao deletar lista")
        logger.info("Lista %s removida junto com %d tarefas", list_id, removed)
        return removed

    # ======= AUXILIARES =======

    def _parse(self, model: Type[M], row: Dict[str, Any]) -> M:
        """Converte o registro do banco no modelo; registro inválido é erro do banco"""
        try:
            return model.model_validate(row)
        except ValidationError as e:
            raise DatabaseError(f"Registro inválido em {model.__name__}: {e.error_count()} erro(s)")

    def _select(self, table: str, column: str, value: Any, error: str,
                order: Optional[str] = None) -> List[Dict[str, Any]]:
        try:
            query = self._table(table).select("*").eq(column, value)
            if order:
                query = query.order(order)
            result = query.execute()
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"{error}: {str(e)}")
        return result.data or []

    def _first(self, table: str, column: str, value: Any, error: str) -> Optional[Dict[str, Any]]:
        rows = self._select(table, column, value, error)
        return rows[0] if rows else None

    def _insert(self, table: str, data: Dict[str, Any], error: str) -> Dict[str, Any]:
        try:
            result = self._table(table).insert(data).execute()
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"{error}: {str(e)}")
        if not result.data:
            raise DatabaseError(error)
        return result.data[0]

    def _update(self, table: str, row_id: str, data: Dict[str, Any], error: str) -> Dict[str, Any]:
        try:
            result = self._table(table).update(data).eq("id", row_id).execute()
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"{error}: {str(e)}")
        if not result.data:
            raise DatabaseError(error)
        return result.data[0]

    def _update_where(self, table: str, column: str, value: Any, data: Dict[str, Any],
                      error: str) -> int:
        try:
            result = self._table(table).update(data).eq(column, value).execute()
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"{error}: {str(e)}")
        return len(result.data or [])

    def _delete(self, table: str, column: str, value: Any, error: str) -> int:
        try:
            result = self._table(table).delete().eq(column, value).execute()
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"{error}: {str(e)}")
        return len(result.data or [])
