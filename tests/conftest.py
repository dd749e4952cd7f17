from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskboard.db import Base, get_db
from taskboard.main import app


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client: TestClient, email: str, name: str = "Tester", password: str = "secret123") -> dict[str, str]:
    res = client.post("/auth/register", json={"name": name, "email": email, "password": password})
    assert res.status_code == 201, res.text
    return {"Authorization": f"Bearer {res.json()['token']}"}


def create_board(client: TestClient, headers: dict[str, str], title: str = "Sprint 1") -> dict:
    res = client.post("/boards", json={"title": title}, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()


def board_columns(client: TestClient, headers: dict[str, str], board_id: str) -> dict[str, dict]:
    res = client.get(f"/boards/{board_id}", headers=headers)
    assert res.status_code == 200, res.text
    return {c["title"]: c for c in res.json()["columns"]}
