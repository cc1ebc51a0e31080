import os

# plantpal をインポートする前に環境を固定する (.env の値より優先される)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["GCP_PROJECT_ID"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["AUTH_DEV_FALLBACK"] = "true"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from plantpal import db, models
from plantpal.ai import get_agent_client
from plantpal.auth import LOCAL_USER_ID
from plantpal.main import app


class FakeAgent:
    """AI の代わりに決まった提案を返す。action ごとに例外も仕込める"""

    def __init__(self):
        self.responses = {}
        self.errors = {}
        self.calls = []

    def run(self, action, payload):
        self.calls.append((action, payload))
        if action in self.errors:
            raise self.errors[action]
        return self.responses.get(action, models.AgentSuggestion())

    def actions(self):
        return [action for action, _ in self.calls]


@pytest.fixture()
def engine(tmp_path, monkeypatch):
    test_engine = db.build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    SQLModel.metadata.create_all(test_engine)
    monkeypatch.setattr(db, "engine", test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture()
def agent():
    return FakeAgent()


@pytest.fixture()
def client(engine, agent):
    app.dependency_overrides[get_agent_client] = lambda: agent
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def add_plant(engine):
    """植物を直接DBに登録して ID を返す"""

    def _add_plant(**kwargs) -> str:
        kwargs.setdefault("name", "モンちゃん")
        kwargs.setdefault("species", "Monstera deliciosa")
        kwargs.setdefault("user_id", LOCAL_USER_ID)
        with Session(engine) as session:
            plant = models.Plant(**kwargs)
            session.add(plant)
            session.commit()
            return plant.id

    return _add_plant


@pytest.fixture()
def load_plant(engine):
    def _load_plant(plant_id: str) -> models.Plant:
        with Session(engine) as session:
            plant = session.get(models.Plant, plant_id)
            if plant is not None:
                session.expunge(plant)
            return plant

    return _load_plant
