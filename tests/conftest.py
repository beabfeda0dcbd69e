# tests/conftest.py
# Ensure project root (parent of tests) is on sys.path so `import backend...` works.
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import copy
import itertools
import uuid
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from backend.config import settings
from backend.database import get_store
from backend.errors import RemoteCallFailure
from backend.main import app, get_sessions
from backend.notifications import get_dispatcher
from backend.schemas import Product
from backend.session import SessionRegistry


class InMemoryStore:
    """Dict-backed stand-in for DataStore; equality filters only."""

    def __init__(self):
        self.collections: dict[str, list[dict[str, Any]]] = {}
        self.fail_on: set[tuple[str, str]] = set()
        self._seq = itertools.count(1)

    def _check(self, op: str, collection_name: str):
        if (op, collection_name) in self.fail_on:
            raise RemoteCallFailure()

    def _rows(self, collection_name: str) -> list[dict[str, Any]]:
        return self.collections.setdefault(collection_name, [])

    @staticmethod
    def _matches(doc: dict[str, Any], filter_dict: Optional[dict[str, Any]]) -> bool:
        return all(doc.get(k) == v for k, v in (filter_dict or {}).items())

    async def insert(self, collection_name, data):
        self._check("insert", collection_name)
        doc = {**copy.deepcopy(data), "id": uuid.uuid4().hex, "created_at": next(self._seq)}
        self._rows(collection_name).append(doc)
        return copy.deepcopy(doc)

    async def insert_many(self, collection_name, docs):
        self._check("insert_many", collection_name)
        return [(await self.insert(collection_name, d))["id"] for d in docs]

    async def find(self, collection_name, filter_dict=None, sort=None, limit=500):
        self._check("find", collection_name)
        rows = [copy.deepcopy(d) for d in self._rows(collection_name) if self._matches(d, filter_dict)]
        for field, direction in reversed(sort or []):
            rows.sort(key=lambda d: d.get(field), reverse=direction < 0)
        return rows[:limit]

    async def find_one(self, collection_name, filter_dict):
        self._check("find_one", collection_name)
        for d in self._rows(collection_name):
            if self._matches(d, filter_dict):
                return copy.deepcopy(d)
        return None

    async def update(self, collection_name, filter_dict, changes):
        self._check("update", collection_name)
        n = 0
        for d in self._rows(collection_name):
            if self._matches(d, filter_dict):
                d.update({k: v for k, v in changes.items() if k != "id"})
                n += 1
        return n

    async def upsert(self, collection_name, filter_dict, data):
        self._check("upsert", collection_name)
        if not await self.update(collection_name, filter_dict, data):
            await self.insert(collection_name, {**filter_dict, **data})

    async def delete(self, collection_name, filter_dict):
        self._check("delete", collection_name)
        rows = self._rows(collection_name)
        keep = [d for d in rows if not self._matches(d, filter_dict)]
        removed = len(rows) - len(keep)
        self.collections[collection_name] = keep
        return removed

    async def count(self, collection_name, filter_dict=None):
        self._check("count", collection_name)
        return len([d for d in self._rows(collection_name) if self._matches(d, filter_dict)])


class RecordingDispatcher:
    def __init__(self):
        self.sent: list[tuple[str, str, dict[str, Any]]] = []
        self.failing: set[str] = set()

    async def send(self, template_id, recipient, variables):
        if recipient in self.failing:
            raise RemoteCallFailure("Email could not be sent")
        self.sent.append((template_id, recipient, variables))


def make_product(pid="p1", price=100.0, stock=5, **kw) -> Product:
    data = {"id": pid, "name_en": f"Perfume {pid}", "name_ar": f"عطر {pid}", "price": price, "stock": stock}
    data.update(kw)
    return Product(**data)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def sessions():
    return SessionRegistry()


@pytest.fixture
def client(store, dispatcher, sessions):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_sessions] = lambda: sessions
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Password": settings.ADMIN_PASSWORD}
