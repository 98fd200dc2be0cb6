"""
API REST do Pebble - Tarefas e Finanças
Endpoints de autenticação, tarefas, listas e módulo financeiro
"""
import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException, Depends, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

import finance_store
import recurrence as rec
from config import CORS_ORIGINS, ENVIRONMENT
from database import DatabaseError
from finance_database import FinanceDatabaseService
from smart_search import TaskFilters, filter_tasks, get_filter_suggestions, tokenize
from task_analytics import export_analytics
from task_store import apply_task_update
from web_auth_database import (
    AuthenticationError,
    authenticate_user,
    create_access_token,
    decode_access_token,
    public_user,
    register_user,
    update_profile,
)
from web_database import WebDatabaseService
from web_models import (
    Account,
    AccountCreate,
    ApiResponse,
    AuthResponse,
    Budget,
    BudgetCreate,
    BudgetUpdate,
    BulkDeleteRequest,
    Category,
    CategoryCreate,
    CategoryUpdate,
    GenerateRecurrencesRequest,
    Priority,
    Recurrence,
    RecurrenceCreate,
    RecurrenceUpdate,
    Task,
    TaskCreate,
    TaskList,
    TaskListCreate,
    TaskStatus,
    TaskUpdate,
    Transaction,
    TransactionCreate,
    TransactionStatus,
    TransactionType,
    TransactionUpdate,
    TransferCreate,
    UserCreate,
    UserLogin,
    UserUpdate,
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Pebble - Tarefas e Finanças",
    description="API com autenticação JWT, tarefas, busca inteligente, analytics e finanças pessoais",
    version="1.0.0"
)

# Configuração CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Configuração de segurança
security = HTTPBearer(auto_error=False)


def api_error(status_code: int, message: str, error: Optional[str] = None) -> HTTPException:
    detail = {"message": message, "error": error} if error else message
    return HTTPException(status_code=status_code, detail=detail)


# TRATAMENTO DE ERROS

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Converte HTTPException no envelope {success, message, error?}"""
    if isinstance(exc.detail, dict):
        content = {"success": False, **exc.detail}
    elif exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        content = {"success": False, "message": "Rota não encontrada", "path": request.url.path}
    else:
        content = {"success": False, "message": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content,
                        headers=getattr(exc, "headers", None))


def _validation_messages(errors: List[Dict[str, Any]]) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in errors
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Dados inválidos",
                 "error": _validation_messages(exc.errors())},
    )


@app.exception_handler(ValidationError)
async def model_validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Dados inválidos",
                 "error": _validation_messages(exc.errors())},
    )


@app.exception_handler(DatabaseError)
async def database_error_handler(request: Request, exc: DatabaseError):
    logger.error("Erro de banco em %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Erro interno do servidor", "error": str(exc)},
    )


@app.exception_handler(finance_store.FinanceNotFoundError)
async def finance_not_found_handler(request: Request, exc: finance_store.FinanceNotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"success": False, "message": str(exc)},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("Erro inesperado em %s %s", request.method, request.url.path, exc_info=exc)
    content = {"success": False, "message": "Erro interno do servidor"}
    if ENVIRONMENT == "development":
        content["error"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


# MIDDLEWARE PARA LOGS
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Middleware para log de requisições"""
    start_time = datetime.now()
    response = await call_next(request)
    process_time = (datetime.now() - start_time).total_seconds()
    logger.info("%s %s - %s - %.4fs", request.method, request.url.path,
                response.status_code, process_time)
    return response


# DEPENDÊNCIAS

def get_db() -> WebDatabaseService:
    return WebDatabaseService()


def get_finance_db() -> FinanceDatabaseService:
    return FinanceDatabaseService()


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: WebDatabaseService = Depends(get_db),
) -> Dict[str, Any]:
    """Extrai usuário atual do token JWT"""
    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token de acesso não fornecido",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(credentials.credentials)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.get_user_by_id(payload["user_id"])
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido - usuário não encontrado",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.get("is_active", False):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Conta desativada",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: WebDatabaseService = Depends(get_db),
) -> Optional[Dict[str, Any]]:
    """Extrai usuário atual do token JWT (opcional); token ruim vira anônimo"""
    if not credentials:
        return None

    try:
        return await get_current_user(credentials, db)
    except HTTPException:
        return None


# ENDPOINTS GERAIS

@app.get("/")
async def index():
    return {
        "success": True,
        "message": "Bem-vindo ao Pebble API",
        "version": app.version,
        "endpoints": {
            "auth": "/api/auth",
            "tasks": "/api/tasks",
            "lists": "/api/lists",
            "finance": "/api/finance",
            "health": "/health",
        },
    }


@app.get("/health")
async def health_check():
    """Endpoint para verificar saúde da API"""
    return {
        "success": True,
        "status": "healthy",
        "environment": ENVIRONMENT,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ENDPOINTS DE AUTENTICAÇÃO

@app.post("/api/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: WebDatabaseService = Depends(get_db)):
    """Registra novo usuário"""
    try:
        user = register_user(db, user_data)
    except DatabaseError as e:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Erro ao registrar usuário", str(e))

    return AuthResponse(
        success=True,
        message="Usuário registrado com sucesso",
        token=create_access_token(user["id"]),
        user=public_user(user),
    )


@app.post("/api/auth/login", response_model=AuthResponse)
async def login(login_data: UserLogin, db: WebDatabaseService = Depends(get_db)):
    """Realiza login do usuário"""
    try:
        user = authenticate_user(db, login_data.email, login_data.password)
    except AuthenticationError as e:
        raise api_error(status.HTTP_401_UNAUTHORIZED, str(e))

    if not user:
        raise api_error(status.HTTP_401_UNAUTHORIZED, "Credenciais inválidas")

    return AuthResponse(
        success=True,
        message="Login realizado com sucesso",
        token=create_access_token(user["id"]),
        user=public_user(user),
    )


@app.get("/api/auth/profile", response_model=AuthResponse, response_model_exclude_none=True)
async def get_profile(current_user: Dict[str, Any] = Depends(get_current_user)):
    """Retorna informações do usuário atual"""
    return AuthResponse(success=True, message="Perfil do usuário", user=public_user(current_user))


@app.put("/api/auth/profile", response_model=AuthResponse, response_model_exclude_none=True)
async def put_profile(
    user_data: UserUpdate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: WebDatabaseService = Depends(get_db),
):
    """Atualiza nome e email do usuário atual"""
    try:
        user = update_profile(db, current_user["id"], user_data)
    except DatabaseError as e:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Erro ao atualizar perfil", str(e))

    return AuthResponse(success=True, message="Perfil atualizado com sucesso", user=public_user(user))


# ENDPOINTS DE TAREFAS

def _dump(items) -> List[Dict[str, Any]]:
    return [item.model_dump(mode="json") for item in items]


def _owned_task(db: WebDatabaseService, task_id: str, user: Dict[str, Any]) -> Task:
    task = db.get_task(task_id)
    if not task or task.created_by != user["id"]:
        raise api_error(status.HTTP_404_NOT_FOUND, "Tarefa não encontrada")
    return task


def _check_list(db: WebDatabaseService, list_id: Optional[str], user: Dict[str, Any]):
    if list_id is None:
        return
    task_list = db.get_list(list_id)
    if not task_list or task_list.owner_id != user["id"]:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Lista não encontrada")


@app.get("/api/tasks")
async def get_tasks(
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    priority: Optional[Priority] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: Optional[Dict[str, Any]] = Depends(get_current_user_optional),
    db: WebDatabaseService = Depends(get_db),
):
    """Lista tarefas paginadas; com token, apenas as do usuário"""
    owner_id = current_user["id"] if current_user else None
    tasks, total = db.list_tasks(owner_id, status_filter, priority, page, limit)

    return {
        "success": True,
        "data": _dump(tasks),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }


@app.get("/api/tasks/search", response_model=ApiResponse)
async def search_tasks(
    q: str = "",
    status_filter: List[TaskStatus] = Query([], alias="status"),
    priority: List[Priority] = Query([]),
    list_id: List[str] = Query([]),
    tag: List[str] = Query([]),
    due_from: Optional[date] = None,
    due_to: Optional[date] = None,
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: WebDatabaseService = Depends(get_db),
):
    """Busca inteligente sobre as tarefas do usuário"""
    tasks = db.get_tasks_by_owner(current_user["id"])
    lists = db.get_lists(current_user["id"])
    filters = TaskFilters(
        statuses=set(status_filter),
        priorities=set(priority),
        list_ids=set(list_id),
        tags=set(tag),
        due_from=due_from,
        due_to=due_to,
    )
    found = filter_tasks(tasks, q, filters, lists)

    return ApiResponse(
        success=True,
        message=f"{len(found)} tarefas encontradas",
        data={
            "tasks": _dump(found),
            "terms": [{"type": t.kind, "value": t.value, "display": t.raw} for t in tokenize(q)],
        },
    )


@app.get("/api/tasks/suggestions", response_model=ApiResponse)
async def task_suggestions(
    term: str = "",
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: WebDatabaseService = Depends(get_db),
):
    """Sugestões de tags, listas e prioridades para a busca"""
    tasks = db.get_tasks_by_owner(current_user["id"])
    lists = db.get_lists(current_user["id"])
    return ApiResponse(success=True, message="Sugestões",
                       data=get_filter_suggestions(term, tasks, lists))


@app.get("/api/tasks/analytics", response_model=ApiResponse)
async def task_analytics(
    window: Literal["week", "month"] = "week",
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: WebDatabaseService = Depends(get_db),
):
    """Relatório de produtividade do usuário"""
    tasks = db.get_tasks_by_owner(current_user["id"])
    lists = db.get_lists(current_user["id"])
    return ApiResponse(success=True, message="Analytics de tarefas",
                       data=export_analytics(tasks, lists, window))


@app.get("/api/tasks/{task_id}", response_model=ApiResponse)
async def get_task(
    task_id: str,
    current_user: Optional[Dict[str, Any]] = Depends(get_current_user_optional),
    db: WebDatabaseService = Depends(get_db),
):
    """Busca tarefa por ID"""
    task = db.get_task(task_id)
    if not task:
        raise api_error(status.HTTP_404_NOT_FOUND, "Tarefa não encontrada")
    return ApiResponse(success=True, message="Tarefa encontrada", data=task.model_dump(mode="json"))


@app.post("/api/tasks", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: WebDatabaseService = Depends(get_db),
):
    """Cria nova tarefa"""
    _check_list(db, task_data.list_id, current_user)

    task = Task(**task_data.model_dump(), created_by=current_user["id"])
    if task.status == "concluida":
        task.completed_at = task.created_at
    created = db.create_task(task)

    return ApiResponse(success=True, message="Tarefa criada com sucesso",
                       data=created.model_dump(mode="json"))


@app.put("/api/tasks/{task_id}", response_model=ApiResponse)
async def update_task(
    task_id: str,
    task_data: TaskUpdate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: WebDatabaseService = Depends(get_db),
):
    """Atualiza tarefa"""
    task = _owned_task(db, task_id, current_user)
    updates = task_data.model_dump(exclude_unset=True)
    if "list_id" in updates:
        _check_list(db, updates["list_id"], current_user)

    saved = db.save_task(apply_task_update(task, updates))
    return ApiResponse(success=True, message="Tarefa atualizada com sucesso",
                       data=saved.model_dump(mode="json"))


@app.delete("/api/tasks/{task_id}", response_model=ApiResponse)
async def delete_task(
    task_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: WebDatabaseService = Depends(get_db),
):
    """Deleta tarefa"""
    _owned_task(db, task_id, current_user)
    db.delete_task(task_id)
    return ApiResponse(success=True, message="Tarefa deletada com sucesso")


# ENDPOINTS DE LISTAS

@app.get("/api/lists", response_model=ApiResponse)
async def get_lists(
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: WebDatabaseService = Depends(get_db),
):
    return ApiResponse(success=True, message="Listas do usuário",
                       data=_dump(db.get_lists(current_user["id"])))


@app.post("/api/lists", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_list(
    list_data: TaskListCreate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: WebDatabaseService = Depends(get_db),
):
    task_list = db.create_list(TaskList(**list_data.model_dump(), owner_id=current_user["id"]))
    return ApiResponse(success=True, message="Lista criada com sucesso",
                       data=task_list.model_dump(mode="json"))


@app.delete("/api/lists/{list_id}", response_model=ApiResponse)
async def delete_list(
    list_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: WebDatabaseService = Depends(get_db),
):
    """Remove a lista e as tarefas dela"""
    task_list = db.get_list(list_id)
    if not task_list or task_list.owner_id != current_user["id"]:
        raise api_error(status.HTTP_404_NOT_FOUND, "Lista não encontrada")

    removed = db.delete_list(list_id)
    return ApiResponse(success=True, message="Lista deletada com sucesso",
                       data={"removed_tasks": removed})


# ENDPOINTS FINANCEIROS

def _require_account(state: finance_store.FinanceState, account_id: str):
    if not any(a.id == account_id for a in state.accounts):
        raise api_error(status.HTTP_400_BAD_REQUEST, "Conta não encontrada")


def _require_category(state: finance_store.FinanceState, category_id: Optional[str]):
    if category_id and not any(c.id == category_id for c in state.categories):
        raise api_error(status.HTTP_400_BAD_REQUEST, "Categoria não encontrada")


def _get_owned(items, item_id: str, message: str):
    for item in items:
        if item.id == item_id:
            return item
    raise api_error(status.HTTP_404_NOT_FOUND, message)


@app.get("/api/finance/accounts", response_model=ApiResponse)
async def get_accounts(
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    """Contas com saldo atual"""
    state = fdb.load_state(current_user["id"])
    data = [
        {**account.model_dump(mode="json"),
         "balance": finance_store.account_balance(state, account.id)["current_balance"]}
        for account in state.accounts
    ]
    return ApiResponse(success=True, message="Contas do usuário", data=data)


@app.post("/api/finance/accounts", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    account_data: AccountCreate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    account = fdb.create_account(Account(**account_data.model_dump(), user_id=current_user["id"]))
    return ApiResponse(success=True, message=f'Conta "{account.name}" criada',
                       data=account.model_dump(mode="json"))


@app.delete("/api/finance/accounts/{account_id}", response_model=ApiResponse)
async def delete_account(
    account_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    """Remove a conta e suas transações"""
    accounts = fdb.get_accounts(current_user["id"])
    if not any(a.id == account_id for a in accounts):
        raise api_error(status.HTTP_404_NOT_FOUND, "Conta não encontrada")

    removed = fdb.delete_account(account_id)
    return ApiResponse(success=True, message="A conta e suas transações foram removidas",
                       data={"removed_transactions": removed})


@app.get("/api/finance/categories", response_model=ApiResponse)
async def get_categories(
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    return ApiResponse(success=True, message="Categorias do usuário",
                       data=_dump(fdb.get_categories(current_user["id"])))


@app.post("/api/finance/categories", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    category_data: CategoryCreate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    category = Category(**category_data.model_dump(), user_id=current_user["id"])
    state = finance_store.FinanceState(categories=fdb.get_categories(current_user["id"]))
    try:
        finance_store.create_category(state, category)
    except (finance_store.FinanceNotFoundError, ValueError) as e:
        raise api_error(status.HTTP_400_BAD_REQUEST, str(e))

    created = fdb.create_category(category)
    return ApiResponse(success=True, message=f'Categoria "{created.name}" criada',
                       data=created.model_dump(mode="json"))


@app.put("/api/finance/categories/{category_id}", response_model=ApiResponse)
async def update_category(
    category_id: str,
    category_data: CategoryUpdate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    state = finance_store.FinanceState(categories=fdb.get_categories(current_user["id"]))
    updates = category_data.model_dump(exclude_unset=True)
    _get_owned(state.categories, category_id, "Categoria não encontrada")
    _require_category(state, updates.get("parent_id"))
    try:
        state = finance_store.update_category(state, category_id, updates)
    except ValueError as e:
        raise api_error(status.HTTP_400_BAD_REQUEST, str(e))

    saved = fdb.save_category(_get_owned(state.categories, category_id, "Categoria não encontrada"))
    return ApiResponse(success=True, message="Categoria atualizada", data=saved.model_dump(mode="json"))


@app.delete("/api/finance/categories/{category_id}", response_model=ApiResponse)
async def delete_category(
    category_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    """Remove a categoria; as transações dela ficam sem categoria"""
    _get_owned(fdb.get_categories(current_user["id"]), category_id, "Categoria não encontrada")
    detached = fdb.delete_category(category_id)
    return ApiResponse(success=True, message="Categoria excluída",
                       data={"detached_transactions": detached})


@app.get("/api/finance/transactions", response_model=ApiResponse)
async def get_transactions(
    month: Optional[str] = Query(None, pattern=r'^\d{4}-(0[1-9]|1[0-2])$'),
    period: Optional[Literal["today", "this-week", "this-month", "last-month"]] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    account_id: List[str] = Query([]),
    type_filter: List[TransactionType] = Query([], alias="type"),
    status_filter: List[TransactionStatus] = Query([], alias="status"),
    category_id: List[str] = Query([]),
    tag: List[str] = Query([]),
    search: str = "",
    sort_by: Literal["date", "amount"] = "date",
    sort_order: Literal["asc", "desc"] = "desc",
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    """Transações do usuário filtradas e ordenadas; `month` (YYYY-MM) restringe ao mês"""
    transactions = fdb.get_transactions(current_user["id"])
    if month:
        transactions = [t for t in transactions if t.transaction_date.strftime("%Y-%m") == month]

    filters = finance_store.TransactionFilters(
        period=period,
        start_date=start_date,
        end_date=end_date,
        account_ids=set(account_id),
        types=set(type_filter),
        statuses=set(status_filter),
        category_ids=set(category_id),
        tags=set(tag),
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    transactions = finance_store.filter_transactions(transactions, filters)
    return ApiResponse(success=True, message=f"{len(transactions)} transações",
                       data=_dump(transactions))


@app.get("/api/finance/transactions/export")
async def export_transactions(
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    """Exporta as transações em CSV"""
    state = fdb.load_state(current_user["id"])
    return Response(
        content=finance_store.export_transactions_csv(state),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transacoes.csv"'},
    )


@app.post("/api/finance/transactions", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    transaction_data: TransactionCreate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    state = fdb.load_state(current_user["id"])
    _require_account(state, transaction_data.account_id)
    _require_category(state, transaction_data.category_id)

    transaction = fdb.create_transaction(
        Transaction(**transaction_data.model_dump(), user_id=current_user["id"])
    )
    return ApiResponse(success=True, message="Transação criada",
                       data=transaction.model_dump(mode="json"))


@app.patch("/api/finance/transactions/{transaction_id}/status", response_model=ApiResponse)
async def toggle_transaction(
    transaction_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    """Alterna a transação entre pendente e compensada"""
    state = fdb.load_state(current_user["id"])
    state = finance_store.toggle_transaction_status(state, transaction_id)
    toggled = next(t for t in state.transactions if t.id == transaction_id)
    saved = fdb.save_transaction(toggled)

    message = "Transação compensada" if saved.status == "settled" else "Transação reaberta"
    return ApiResponse(success=True, message=message, data=saved.model_dump(mode="json"))


@app.put("/api/finance/transactions/{transaction_id}", response_model=ApiResponse)
async def update_transaction(
    transaction_id: str,
    transaction_data: TransactionUpdate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    state = fdb.load_state(current_user["id"])
    updates = transaction_data.model_dump(exclude_unset=True)
    if "account_id" in updates:
        _require_account(state, updates["account_id"])
    _require_category(state, updates.get("category_id"))

    state = finance_store.update_transaction(state, transaction_id, updates)
    saved = fdb.save_transaction(_get_owned(state.transactions, transaction_id, "Transação não encontrada"))
    return ApiResponse(success=True, message="Transação atualizada", data=saved.model_dump(mode="json"))


@app.delete("/api/finance/transactions/{transaction_id}", response_model=ApiResponse)
async def delete_transaction(
    transaction_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    _get_owned(fdb.get_transactions(current_user["id"]), transaction_id, "Transação não encontrada")
    fdb.delete_transaction(transaction_id)
    return ApiResponse(success=True, message="Transação excluída")


@app.post("/api/finance/transactions/bulk-delete", response_model=ApiResponse)
async def delete_transactions(
    request: BulkDeleteRequest,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    """Exclui várias transações; ids de outros usuários são ignorados"""
    owned = {t.id for t in fdb.get_transactions(current_user["id"])}
    ids = [transaction_id for transaction_id in request.ids if transaction_id in owned]
    removed = fdb.delete_transactions(ids)
    return ApiResponse(success=True, message=f"{removed} transações foram removidas",
                       data={"removed": removed})


@app.post("/api/finance/transfers", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    transfer: TransferCreate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    """Cria o par de transações ligadas de uma transferência"""
    state = fdb.load_state(current_user["id"])
    _require_account(state, transfer.from_account_id)
    _require_account(state, transfer.to_account_id)

    pair = finance_store.build_transfer(
        transfer.from_account_id,
        transfer.to_account_id,
        transfer.amount,
        transfer.transaction_date,
        transfer.description,
        user_id=current_user["id"],
    )
    created = [fdb.create_transaction(t) for t in pair]
    return ApiResponse(success=True, message="Transferência criada", data=_dump(created))


@app.get("/api/finance/recurrences", response_model=ApiResponse)
async def get_recurrences(
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    return ApiResponse(success=True, message="Recorrências do usuário",
                       data=_dump(fdb.get_recurrences(current_user["id"])))


@app.post("/api/finance/recurrences", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_recurrence(
    recurrence_data: RecurrenceCreate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    state = fdb.load_state(current_user["id"])
    _require_account(state, recurrence_data.account_id)
    _require_category(state, recurrence_data.category_id)

    recurrence = fdb.create_recurrence(
        Recurrence(**recurrence_data.model_dump(), user_id=current_user["id"])
    )
    return ApiResponse(success=True, message="Recorrência criada",
                       data=recurrence.model_dump(mode="json"))


@app.put("/api/finance/recurrences/{recurrence_id}", response_model=ApiResponse)
async def update_recurrence(
    recurrence_id: str,
    recurrence_data: RecurrenceUpdate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    state = fdb.load_state(current_user["id"])
    updates = recurrence_data.model_dump(exclude_unset=True)
    if "account_id" in updates:
        _require_account(state, updates["account_id"])
    _require_category(state, updates.get("category_id"))

    try:
        state = finance_store.update_recurrence(state, recurrence_id, updates)
    except rec.RecurrenceError as e:
        raise api_error(status.HTTP_400_BAD_REQUEST, str(e))

    saved = fdb.save_recurrence(_get_owned(state.recurrences, recurrence_id, "Recorrência não encontrada"))
    return ApiResponse(success=True, message="Recorrência atualizada", data=saved.model_dump(mode="json"))


@app.delete("/api/finance/recurrences/{recurrence_id}", response_model=ApiResponse)
async def delete_recurrence(
    recurrence_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    _get_owned(fdb.get_recurrences(current_user["id"]), recurrence_id, "Recorrência não encontrada")
    fdb.delete_recurrence(recurrence_id)
    return ApiResponse(success=True, message="Recorrência excluída")


def _persist_generation(fdb: FinanceDatabaseService, result: rec.GenerationResult) -> Dict[str, Any]:
    """Grava cada recorrência avançada e suas transações; falhas não param as demais"""
    by_recurrence: Dict[str, List[Transaction]] = {}
    for occurrence in result.occurrences:
        by_recurrence.setdefault(occurrence.recurrence.id, []).append(occurrence.transaction)

    created: List[Transaction] = []
    errors = list(result.errors)
    for recurrence in result.recurrences:
        try:
            for transaction in by_recurrence.get(recurrence.id, []):
                created.append(fdb.create_transaction(transaction))
            fdb.save_recurrence(recurrence)
        except DatabaseError as e:
            logger.error("Falha ao gravar recorrência %s: %s", recurrence.id, e)
            errors.append({"recurrence_id": recurrence.id, "error": str(e)})

    return {"generated": len(created), "transactions": _dump(created), "errors": errors}


@app.post("/api/finance/recurrences/generate", response_model=ApiResponse)
async def generate_recurrences(
    options: Optional[GenerateRecurrencesRequest] = None,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    """Gera as transações de todas as recorrências vencidas"""
    options = options or GenerateRecurrencesRequest()
    state = fdb.load_state(current_user["id"])
    result = rec.generate_due(
        state.recurrences, state.transactions,
        today=options.today, status=options.status, catch_up=options.catch_up,
    )
    data = _persist_generation(fdb, result)
    return ApiResponse(success=True,
                       message=f"{data['generated']} transações geradas a partir das recorrências",
                       data=data)


@app.post("/api/finance/recurrences/generate-month", response_model=ApiResponse)
async def generate_month_recurrences(
    options: Optional[GenerateRecurrencesRequest] = None,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    """Gera uma ocorrência de cada recorrência ativa que vence até o fim do mês"""
    options = options or GenerateRecurrencesRequest()
    state = fdb.load_state(current_user["id"])
    _, result = finance_store.generate_month_recurrences(state, options.today, options.status)
    data = _persist_generation(fdb, result)
    return ApiResponse(success=True,
                       message=f"{data['generated']} transações geradas para o mês",
                       data=data)


@app.get("/api/finance/recurrences/upcoming", response_model=ApiResponse)
async def upcoming_recurrences(
    days: int = Query(30, ge=1, le=365),
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    recurrences = fdb.get_recurrences(current_user["id"])
    return ApiResponse(success=True, message="Próximas recorrências",
                       data=rec.upcoming(recurrences, days))


@app.post("/api/finance/recurrences/{recurrence_id}/generate", response_model=ApiResponse)
async def generate_recurrence(
    recurrence_id: str,
    count: int = Query(1, ge=1, le=24),
    status_value: Literal["pending", "settled"] = Query("pending", alias="status"),
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    """Gera as próximas `count` ocorrências de uma recorrência"""
    state = fdb.load_state(current_user["id"])
    try:
        _, result = finance_store.generate_recurrence(state, recurrence_id, count, status_value)
    except rec.RecurrenceError as e:
        raise api_error(status.HTTP_400_BAD_REQUEST, str(e))

    data = _persist_generation(fdb, result)
    return ApiResponse(success=True,
                       message=f"{data['generated']} transações geradas a partir da recorrência",
                       data=data)


@app.get("/api/finance/budgets", response_model=ApiResponse)
async def get_budgets(
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    return ApiResponse(success=True, message="Orçamentos do usuário",
                       data=_dump(fdb.get_budgets(current_user["id"])))


@app.post("/api/finance/budgets", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_budget(
    budget_data: BudgetCreate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    state = fdb.load_state(current_user["id"])
    _require_category(state, budget_data.category_id)

    budget = fdb.create_budget(Budget(**budget_data.model_dump(), user_id=current_user["id"]))
    return ApiResponse(success=True, message=f"Orçamento para {budget.month_year} criado",
                       data=budget.model_dump(mode="json"))


@app.put("/api/finance/budgets/{budget_id}", response_model=ApiResponse)
async def update_budget(
    budget_id: str,
    budget_data: BudgetUpdate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    state = finance_store.FinanceState(budgets=fdb.get_budgets(current_user["id"]))
    state = finance_store.update_budget(state, budget_id, budget_data.model_dump(exclude_unset=True))
    saved = fdb.save_budget(_get_owned(state.budgets, budget_id, "Orçamento não encontrado"))
    return ApiResponse(success=True, message="Orçamento atualizado", data=saved.model_dump(mode="json"))


@app.delete("/api/finance/budgets/{budget_id}", response_model=ApiResponse)
async def delete_budget(
    budget_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    _get_owned(fdb.get_budgets(current_user["id"]), budget_id, "Orçamento não encontrado")
    fdb.delete_budget(budget_id)
    return ApiResponse(success=True, message="Orçamento excluído")


@app.get("/api/finance/budgets/{budget_id}/status", response_model=ApiResponse)
async def get_budget_status(
    budget_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    state = fdb.load_state(current_user["id"])
    budget = finance_store.budget_status(state, budget_id)
    return ApiResponse(success=True, message="Situação do orçamento", data=budget)


@app.get("/api/finance/dashboard", response_model=ApiResponse)
async def get_dashboard(
    current_user: Dict[str, Any] = Depends(get_current_user),
    fdb: FinanceDatabaseService = Depends(get_finance_db),
):
    """Resumo financeiro do usuário"""
    state = fdb.load_state(current_user["id"])
    return ApiResponse(success=True, message="Painel financeiro",
                       data=finance_store.dashboard(state))
