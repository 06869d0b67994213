from datetime import date
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from cuoti.ai import LocalAI
from cuoti.db import Database
from cuoti.main import create_app
from cuoti.repository import Repository
from cuoti.schemas import Transaction
from cuoti.writer import TransactionWriter


def make_tx(**overrides):
    data = {
        "id": 1,
        "date": date(2024, 1, 10),
        "shop_name": "Netflix",
        "total_amount": 1000.0,
        "status": "pending",
        "type": "subscription",
        "is_recurring": False,
        "group_id": None,
    }
    data.update(overrides)
    return Transaction(**data)


class FakeCompletions:
    """Replays canned replies; exceptions in the list are raised instead."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


class FakeModels:
    def __init__(self, names, error=None):
        self.names = list(names)
        self.error = error

    def list(self):
        if self.error:
            raise self.error
        return SimpleNamespace(data=[SimpleNamespace(id=n) for n in self.names])


class FakeOpenAI:
    def __init__(self, replies=(), models=(), models_error=None):
        self.chat = SimpleNamespace(completions=FakeCompletions(replies))
        self.models = FakeModels(models, models_error)


class FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value


@pytest.fixture
def db():
    database = Database("sqlite://")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def repo(db):
    return Repository(db)


@pytest.fixture
def writer(db):
    return TransactionWriter(db)


@pytest.fixture
def fake_openai():
    return FakeOpenAI(replies=["Vas bien este mes."], models=["llama3.2", "llama3"])


@pytest.fixture
def client(db, fake_openai):
    app = create_app(database=db, ai=LocalAI(fake_openai), quotes=None)
    with TestClient(app) as c:
        yield c
