import copy

import pytest
from fastapi.testclient import TestClient

from finance_database import FinanceDatabaseService
from web_api import app, get_db, get_finance_db
from web_database import WebDatabaseService


class FakeResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Imita o query builder do supabase-py sobre listas de dicts em memória"""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.rows = client.tables.setdefault(table, [])
        self.operation = None
        self.payload = None
        self.filters = []
        self.ordering = None
        self.window = None
        self.count = None

    def select(self, columns="*", count=None):
        self.operation = "select"
        self.count = count
        return self

    def insert(self, data):
        self.operation = "insert"
        self.payload = data
        return self

    def update(self, data):
        self.operation = "update"
        self.payload = data
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self.ordering = (column, desc)
        return self

    def range(self, start, end):
        self.window = (start, end)
        return self

    def _matches(self, row):
        return all(row.get(column) == value for column, value in self.filters)

    def execute(self):
        if (self.table, self.operation) in self.client.fail_on:
            raise RuntimeError(f"falha simulada em {self.operation} de {self.table}")

        if self.operation == "insert":
            row = copy.deepcopy(self.payload)
            self.rows.append(row)
            return FakeResult([copy.deepcopy(row)])

        matched = [row for row in self.rows if self._matches(row)]

        if self.operation == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResult(copy.deepcopy(matched))

        if self.operation == "delete":
            self.rows[:] = [row for row in self.rows if not self._matches(row)]
            return FakeResult(matched)

        if self.ordering:
            column, desc = self.ordering
            matched.sort(key=lambda row: str(row.get(column) or ""), reverse=desc)
        total = len(matched)
        if self.window:
            start, end = self.window
            matched = matched[start:end + 1]
        return FakeResult(copy.deepcopy(matched), total if self.count else None)


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.fail_on = set()

    def table(self, name):
        return FakeQuery(self, name)


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def client(fake_db):
    app.dependency_overrides[get_db] = lambda: WebDatabaseService(fake_db)
    app.dependency_overrides[get_finance_db] = lambda: FinanceDatabaseService(fake_db)
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client, name="Ana Souza", email="ana@pebble.com.br", password="senha123"):
    response = client.post("/api/auth/register", json={
        "name": name,
        "email": email,
        "password": password,
    })
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def auth(client):
    body = register(client)
    return {"Authorization": f"Bearer {body['token']}"}


@pytest.fixture
def other_auth(client):
    body = register(client, name="Bruno Lima", email="bruno@pebble.com.br")
    return {"Authorization": f"Bearer {body['token']}"}
