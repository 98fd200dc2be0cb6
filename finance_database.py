"""
Funções de banco de dados do módulo financeiro
Contas, categorias, transações, recorrências e orçamentos no Supabase
"""
import logging
from typing import Iterable, List

from finance_store import FinanceState
from web_database import WebDatabaseService
from web_models import Account, Budget, Category, Recurrence, Transaction

logger = logging.getLogger(__name__)

ACCOUNTS = "finance_accounts"
CATEGORIES = "finance_categories"
TRANSACTIONS = "finance_transactions"
RECURRENCES = "finance_recurrences"
BUDGETS = "finance_budgets"


class FinanceDatabaseService(WebDatabaseService):
    """Usa os mesmos auxiliares CRUD do WebDatabaseService"""

    def load_state(self, user_id: str) -> FinanceState:
        """Carrega todas as entidades financeiras do usuário"""
        return FinanceState(
            accounts=self.get_accounts(user_id),
            categories=self.get_categories(user_id),
            transactions=self.get_transactions(user_id),
            recurrences=self.get_recurrences(user_id),
            budgets=self.get_budgets(user_id),
        )

    # ======= CONTAS =======

    def get_accounts(self, user_id: str) -> List[Account]:
        rows = self._select(ACCOUNTS, "user_id", user_id, "Erro ao buscar contas", order="created_at")
        return [self._parse(Account, row) for row in rows]

    def create_account(self, account: Account) -> Account:
        row = self._insert(ACCOUNTS, account.model_dump(mode="json"), "Erro ao criar conta")
        return self._parse(Account, row)

    def delete_account(self, account_id: str) -> int:
        """Remove a conta e as transações dela"""
        removed = self._delete(TRANSACTIONS, "account_id", account_id, "Erro ao remover transações da conta")
        self._delete(ACCOUNTS, "id", account_id, "Erro ao deletar conta")
        logger.info("Conta %s removida junto com %d transações", account_id, removed)
        return removed

    # ======= CATEGORIAS =======

    def get_categories(self, user_id: str) -> List[Category]:
        rows = self._select(CATEGORIES, "user_id", user_id, "Erro ao buscar categorias", order="created_at")
        return [self._parse(Category, row) for row in rows]

    def create_category(self, category: Category) -> Category:
        row = self._insert(CATEGORIES, category.model_dump(mode="json"), "Erro ao criar categoria")
        return self._parse(Category, row)

    def save_category(self, category: Category) -> Category:
        data = category.model_dump(mode="json")
        data.pop("id")
        row = self._update(CATEGORIES, category.id, data, "Erro ao atualizar categoria")
        return self._parse(Category, row)

    def delete_category(self, category_id: str) -> int:
        """Remove a categoria e seus orçamentos; transações e subcategorias ficam sem categoria"""
        detached = self._update_where(TRANSACTIONS, "category_id", category_id, {"category_id": None},
                                      "Erro ao desvincular transações da categoria")
        self._update_where(CATEGORIES, "parent_id", category_id, {"parent_id": None},
                           "Erro ao desvincular subcategorias")
        self._delete(BUDGETS, "category_id", category_id, "Erro ao remover orçamentos da categoria")
        self._delete(CATEGORIES, "id", category_id, "Erro ao deletar categoria")
        logger.info("Categoria %s removida; %d transações sem categoria", category_id, detached)
        return detached

    # ======= TRANSAÇÕES =======

    def get_transactions(self, user_id: str) -> List[Transaction]:
        rows = self._select(TRANSACTIONS, "user_id", user_id, "Erro ao buscar transações",
                            order="transaction_date")
        return [self._parse(Transaction, row) for row in rows]

    def create_transaction(self, transaction: Transaction) -> Transaction:
        row = self._insert(TRANSACTIONS, transaction.model_dump(mode="json"), "Erro ao criar transação")
        return self._parse(Transaction, row)

    def save_transaction(self, transaction: Transaction) -> Transaction:
        data = transaction.model_dump(mode="json")
        data.pop("id")
        row = self._update(TRANSACTIONS, transaction.id, data, "Erro ao atualizar transação")
        return self._parse(Transaction, row)

    def delete_transaction(self, transaction_id: str) -> bool:
        return self._delete(TRANSACTIONS, "id", transaction_id, "Erro ao deletar transação") > 0

    def delete_transactions(self, transaction_ids: Iterable[str]) -> int:
        return sum(
            self._delete(TRANSACTIONS, "id", transaction_id, "Erro ao deletar transações")
            for transaction_id in transaction_ids
        )

    # ======= RECORRÊNCIAS =======

    def get_recurrences(self, user_id: str) -> List[Recurrence]:
        rows = self._select(RECURRENCES, "user_id", user_id, "Erro ao buscar recorrências",
                            order="next_occurrence")
        return [self._parse(Recurrence, row) for row in rows]

    def create_recurrence(self, recurrence: Recurrence) -> Recurrence:
        row = self._insert(RECURRENCES, recurrence.model_dump(mode="json"), "Erro ao criar recorrência")
        return self._parse(Recurrence, row)

    def save_recurrence(self, recurrence: Recurrence) -> Recurrence:
        data = recurrence.model_dump(mode="json")
        data.pop("id")
        row = self._update(RECURRENCES, recurrence.id, data, "Erro ao atualizar recorrência")
        return self._parse(Recurrence, row)

    def delete_recurrence(self, recurrence_id: str) -> bool:
        return self._delete(RECURRENCES, "id", recurrence_id, "Erro ao deletar recorrência") > 0

    # ======= ORÇAMENTOS =======

    def get_budgets(self, user_id: str) -> List[Budget]:
        rows = self._select(BUDGETS, "user_id", user_id, "Erro ao buscar orçamentos", order="month_year")
        return [self._parse(Budget, row) for row in rows]

    def create_budget(self, budget: Budget) -> Budget:
        row = self._insert(BUDGETS, budget.model_dump(mode="json"), "Erro ao criar orçamento")
        return self._parse(Budget, row)

    def save_budget(self, budget: Budget) -> Budget:
        data = budget.model_dump(mode="json")
        data.pop("id")
        row = self._update(BUDGETS, budget.id, data, "Erro ao atualizar orçamento")
        return self._parse(Budget, row)

    def delete_budget(self, budget_id: str) -> bool:
        return self._delete(BUDGETS, "id", budget_id, "Erro ao deletar orçamento") > 0
