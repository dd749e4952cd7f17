import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from conftest import register
from taskboard.db import Board, ColumnModel, Task, User, get_db, new_id
from taskboard.errors import NotFoundError, StoreError, ValidationError
from taskboard.main import app
from taskboard.storage import Storage


def _disk_error(*_args, **_kwargs):
    raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def user(db):
    u = User(id=new_id(), name="Owner", email="owner@example.com", password_hash="x")
    db.add(u)
    db.commit()
    return u


def test_failed_board_creation_is_rolled_back(db, user, monkeypatch):
    storage = Storage(db)
    real_flush = db.flush

    def flush_then_fail():
        real_flush()
        _disk_error()

    monkeypatch.setattr(db, "commit", flush_then_fail)
    with pytest.raises(StoreError) as excinfo:
        storage.create_board(user.id, "Doomed", None)
    monkeypatch.undo()

    assert "disk I/O error" in excinfo.value.to_dict()["error"]
    assert db.scalars(select(Board)).all() == []
    assert db.scalars(select(ColumnModel)).all() == []


def test_failed_cascade_leaves_board_intact(db, user, monkeypatch):
    storage = Storage(db)
    board = storage.create_board(user.id, "Keep", None)
    column = storage.board_detail(board.id, user.id)[1][0][0]
    storage.create_task(user.id, column.id, "Survives", None)
    board_id = board.id

    real_flush = db.flush

    def flush_then_fail():
        real_flush()
        _disk_error()

    monkeypatch.setattr(db, "commit", flush_then_fail)
    with pytest.raises(StoreError):
        storage.delete_board(board_id, user.id)
    monkeypatch.undo()

    _, columns = storage.board_detail(board_id, user.id)
    assert len(columns) == 3
    assert [t.title for t in columns[0][1]] == ["Survives"]


def test_owns_board_of_follows_the_chain(db, user):
    storage = Storage(db)
    stranger = User(id=new_id(), name="Stranger", email="stranger@example.com", password_hash="x")
    db.add(stranger)
    db.commit()

    board = storage.create_board(user.id, "Chain", None)
    column = storage.create_column(user.id, board.id, "Extra", 3)
    task = storage.create_task(user.id, column.id, "Leaf", None)

    for resource in (board, column, task):
        assert storage.owns_board_of(resource, user.id)
        assert not storage.owns_board_of(resource, stranger.id)
    assert not storage.owns_board_of(None, user.id)

    orphan = Task(id=new_id(), column_id="gone", title="Orphan")
    assert not storage.owns_board_of(orphan, user.id)


def test_missing_records_raise_not_found(db, user):
    storage = Storage(db)
    with pytest.raises(NotFoundError):
        storage.board_detail("nope", user.id)
    with pytest.raises(NotFoundError):
        storage.update_column("nope", user.id, {"title": "x"})
    with pytest.raises(NotFoundError):
        storage.move_task("nope", user.id, "also-nope")


def test_store_failure_is_reported_as_server_error(client, session_factory):
    headers = register(client, "store@example.com")

    def broken_db():
        session = session_factory()
        session.commit = _disk_error
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = broken_db
    res = client.post("/boards", json={"title": "Lost"}, headers=headers)
    assert res.status_code == 500
    body = res.json()
    assert body["message"] == "Server error"
    assert "disk I/O error" in body["error"]

    with session_factory() as db:
        assert db.scalars(select(Board)).all() == []


def test_token_lookup_failure_is_reported_as_server_error(client, session_factory):
    headers = register(client, "tokenstore@example.com")

    def broken_db():
        session = session_factory()
        session.scalar = _disk_error
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = broken_db
    res = client.get("/boards", headers=headers)
    assert res.status_code == 500
    body = res.json()
    assert body["message"] == "Server error"
    assert "disk I/O error" in body["error"]


def test_registration_race_on_email_is_a_validation_error(db, user, monkeypatch):
    storage = Storage(db)
    # the existence check misses the row a concurrent request just inserted
    monkeypatch.setattr(db, "scalar", lambda *args, **kwargs: None)
    with pytest.raises(ValidationError) as excinfo:
        storage.register_user("Late", user.email, "secret123")
    monkeypatch.undo()

    assert excinfo.value.message == "User already exists"
    assert len(db.scalars(select(User)).all()) == 1
