"""
Modelos Pydantic para a API REST do Pebble
Usuários, tarefas, listas e o módulo financeiro
"""
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime, date, timezone
import re
import uuid


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# Vocabulário de tarefas (também usado pela busca inteligente)
Priority = Literal["baixa", "media", "alta", "urgente"]
TaskStatus = Literal["pendente", "concluida"]
PRIORITIES = ("baixa", "media", "alta", "urgente")
TASK_STATUSES = ("pendente", "concluida")

# Vocabulário financeiro
AccountType = Literal["wallet", "bank", "card"]
CategoryType = Literal["expense", "income"]
TransactionType = Literal["expense", "income", "transfer"]
TransactionStatus = Literal["pending", "settled"]
RecurrenceFrequency = Literal["monthly", "weekly", "yearly", "custom"]


# Modelos base de resposta
class ApiResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Any] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class PaginatedResponse(BaseModel):
    success: bool
    data: List[dict]
    pagination: Pagination


class AuthResponse(BaseModel):
    success: bool
    message: str
    token: Optional[str] = None
    user: dict


# Modelos de autenticação
class UserCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if not re.search(r'[A-Za-z]', v):
            raise ValueError('Password must contain at least one letter')
        if not re.search(r'\d', v):
            raise ValueError('Password must contain at least one number')
        return v


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: Literal["user", "admin"] = "user"
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


# Modelos de tarefas
class Subtask(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str = Field(..., min_length=1, max_length=200)
    completed: bool = False


def _unique_tags(tags: List[str]) -> List[str]:
    seen = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class Task(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    description: Optional[str] = None
    status: TaskStatus = "pendente"
    priority: Priority = "media"
    list_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    link: Optional[str] = None
    photos: List[str] = Field(default_factory=list)
    subtasks: List[Subtask] = Field(default_factory=list)
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('tags')
    @classmethod
    def dedupe_tags(cls, v):
        return _unique_tags(v)


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    status: TaskStatus = "pendente"
    priority: Priority = "media"
    list_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    due_date: Optional[date] = None
    link: Optional[str] = None
    photos: List[str] = Field(default_factory=list)
    subtasks: List[Subtask] = Field(default_factory=list)

    @field_validator('tags')
    @classmethod
    def dedupe_tags(cls, v):
        return _unique_tags(v)


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    list_id: Optional[str] = None
    tags: Optional[List[str]] = None
    due_date: Optional[date] = None
    link: Optional[str] = None
    photos: Optional[List[str]] = None
    subtasks: Optional[List[Subtask]] = None

    @field_validator('tags')
    @classmethod
    def dedupe_tags(cls, v):
        return _unique_tags(v) if v is not None else v


class TaskList(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    color: Optional[str] = None
    owner_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class TaskListCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=60)
    color: Optional[str] = Field(None, pattern=r'^#[0-9a-fA-F]{6}$')


# Modelos financeiros
class Account(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: Optional[str] = None
    name: str
    type: AccountType
    initial_balance: float = 0.0
    currency: str = "BRL"
    color: Optional[str] = None
    archived: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    type: AccountType
    initial_balance: float = 0.0
    currency: str = Field("BRL", pattern=r'^[A-Z]{3}$')
    color: Optional[str] = None


class Category(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: Optional[str] = None
    name: str
    type: CategoryType
    parent_id: Optional[str] = None
    color: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    type: CategoryType
    parent_id: Optional[str] = None
    color: Optional[str] = None


class Transaction(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: Optional[str] = None
    account_id: str
    category_id: Optional[str] = None
    transaction_date: date
    amount: float
    type: TransactionType
    status: TransactionStatus = "pending"
    description: Optional[str] = None
    tags: str = ""
    attachment_url: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class TransactionCreate(BaseModel):
    account_id: str
    category_id: Optional[str] = None
    transaction_date: date
    amount: float
    type: TransactionType
    status: TransactionStatus = "pending"
    description: Optional[str] = Field(None, max_length=200)
    tags: str = ""
    attachment_url: Optional[str] = None


class TransferCreate(BaseModel):
    from_account_id: str
    to_account_id: str
    amount: float = Field(..., gt=0)
    transaction_date: date
    description: Optional[str] = Field(None, max_length=200)

    @model_validator(mode='after')
    def check_accounts(self):
        if self.from_account_id == self.to_account_id:
            raise ValueError('Transfer accounts must be different')
        return self


class Recurrence(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: Optional[str] = None
    account_id: str
    category_id: Optional[str] = None
    type: CategoryType
    frequency: RecurrenceFrequency
    base_day: int = Field(..., ge=1, le=31)
    interval_days: Optional[int] = Field(None, ge=1)
    next_occurrence: date
    amount: float
    description: Optional[str] = None
    tags: str = ""
    active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class RecurrenceCreate(BaseModel):
    account_id: str
    category_id: Optional[str] = None
    type: CategoryType
    frequency: RecurrenceFrequency
    base_day: int = Field(..., ge=1, le=31)
    interval_days: Optional[int] = Field(None, ge=1)
    next_occurrence: date
    amount: float
    description: Optional[str] = Field(None, max_length=200)
    tags: str = ""
    active: bool = True

    @model_validator(mode='after')
    def check_custom_interval(self):
        if self.frequency == "custom" and not self.interval_days:
            raise ValueError('Custom recurrences require interval_days')
        return self


class GenerateRecurrencesRequest(BaseModel):
    today: Optional[date] = None
    status: TransactionStatus = "pending"
    catch_up: bool = False


class Budget(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: Optional[str] = None
    category_id: str
    planned_amount: float = Field(..., gt=0)
    month_year: str = Field(..., pattern=r'^\d{4}-(0[1-9]|1[0-2])$')
    alert_threshold_pct: int = Field(80, ge=1, le=100)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class BudgetCreate(BaseModel):
    category_id: str
    planned_amount: float = Field(..., gt=0)
    month_year: str = Field(..., pattern=r'^\d{4}-(0[1-9]|1[0-2])$')
    alert_threshold_pct: int = Field(80, ge=1, le=100)


# Atualizações parciais do módulo financeiro
class TransactionUpdate(BaseModel):
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    transaction_date: Optional[date] = None
    amount: Optional[float] = None
    type: Optional[TransactionType] = None
    status: Optional[TransactionStatus] = None
    description: Optional[str] = Field(None, max_length=200)
    tags: Optional[str] = None
    attachment_url: Optional[str] = None


class BulkDeleteRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    type: Optional[CategoryType] = None
    parent_id: Optional[str] = None
    color: Optional[str] = None


class RecurrenceUpdate(BaseModel):
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    type: Optional[CategoryType] = None
    frequency: Optional[RecurrenceFrequency] = None
    base_day: Optional[int] = Field(None, ge=1, le=31)
    interval_days: Optional[int] = Field(None, ge=1)
    next_occurrence: Optional[date] = None
    amount: Optional[float] = None
    description: Optional[str] = Field(None, max_length=200)
    tags: Optional[str] = None
    active: Optional[bool] = None


class BudgetUpdate(BaseModel):
    planned_amount: Optional[float] = Field(None, gt=0)
    month_year: Optional[str] = Field(None, pattern=r'^\d{4}-(0[1-9]|1[0-2])$')
    alert_threshold_pct: Optional[int] = Field(None, ge=1, le=100)
