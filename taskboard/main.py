import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .auth import get_current_user
from .config import configure_logging, settings
from .db import Board, ColumnModel, Task, User, get_db, init_db
from .errors import TaskboardError
from .schemas import (
    AuthOut,
    BoardCreate,
    BoardDetail,
    BoardOut,
    BoardUpdate,
    ColumnCreate,
    ColumnOut,
    ColumnUpdate,
    ColumnWithTasks,
    LoginIn,
    Message,
    RegisterIn,
    TaskCreate,
    TaskMove,
    TaskOut,
    TaskUpdate,
    ThemeIn,
    ThemeOut,
    UserOut,
)
from .storage import Storage

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    init_db()
    yield


app = FastAPI(title="Taskboard API", version=settings.app_version, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# === Error handling ===

FIELD_MESSAGES = {
    "title": "Title is required",
    "boardId": "Board ID is required",
    "columnId": "Column ID is required",
    "newColumnId": "New column ID is required",
}


def _field_error(err: dict) -> dict:
    loc = [str(part) for part in err.get("loc", ()) if part != "body"]
    field = ".".join(loc) or "body"
    message = err.get("msg", "Invalid value")
    if field == "theme":
        message = "Theme must be light, dark, or system"
    elif field in FIELD_MESSAGES and err.get("type") in ("missing", "string_too_short"):
        message = FIELD_MESSAGES[field]
    return {"field": field, "message": message}


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"message": "Validation failed", "errors": [_field_error(e) for e in exc.errors()]},
    )


@app.exception_handler(TaskboardError)
async def _taskboard_error_handler(_: Request, exc: TaskboardError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# === Helpers ===


def get_storage(db: Session = Depends(get_db)) -> Storage:
    return Storage(db)


def _changes(payload: BaseModel, nullable: tuple = ("description",)) -> dict[str, Any]:
    # Explicit nulls only clear nullable fields; elsewhere they mean "leave as is".
    return {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None or k in nullable}


def user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        name=user.name,
        email=user.email,
        themePreference=user.theme_preference,
        createdAt=user.created_at,
    )


def board_out(board: Board) -> BoardOut:
    return BoardOut(
        id=board.id,
        title=board.title,
        description=board.description,
        userId=board.user_id,
        createdAt=board.created_at,
        updatedAt=board.updated_at,
    )


def column_out(column: ColumnModel) -> ColumnOut:
    return ColumnOut(
        id=column.id,
        boardId=column.board_id,
        title=column.title,
        order=column.order,
        createdAt=column.created_at,
        updatedAt=column.updated_at,
    )


def task_out(task: Task, column_title: str) -> TaskOut:
    return TaskOut(
        id=task.id,
        columnId=task.column_id,
        columnTitle=column_title,
        title=task.title,
        description=task.description,
        order=task.order,
        createdAt=task.created_at,
        updatedAt=task.updated_at,
    )


# === Health & metadata ===


@app.get("/")
def root() -> dict:
    return {
        "message": "Taskboard API is running",
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health")
def health(db: Session = Depends(get_db)) -> dict:
    try:
        db.execute(text("SELECT 1"))
        database = "Connected"
    except SQLAlchemyError:
        logger.warning("health check could not reach the database", exc_info=True)
        database = "Disconnected"
    return {"status": "OK", "database": database, "timestamp": datetime.now(timezone.utc).isoformat()}


# === Auth endpoints ===


@app.post("/auth/register", response_model=AuthOut, status_code=201)
def register(payload: RegisterIn, storage: Storage = Depends(get_storage)):
    user, token = storage.register_user(payload.name, payload.email, payload.password)
    return AuthOut(token=token, user=user_out(user))


@app.post("/auth/login", response_model=AuthOut)
def login(payload: LoginIn, storage: Storage = Depends(get_storage)):
    user, token = storage.authenticate(payload.email, payload.password)
    return AuthOut(token=token, user=user_out(user))


# === User endpoints ===


@app.put("/users/theme", response_model=ThemeOut)
def update_theme(
    payload: ThemeIn,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    user = storage.update_theme(user.id, payload.theme)
    return ThemeOut(message="Theme preference updated", user=user_out(user))


@app.get("/users/profile", response_model=UserOut)
def profile(user: User = Depends(get_current_user)):
    return user_out(user)


# === Board endpoints ===


@app.get("/boards", response_model=list[BoardOut])
def list_boards(user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return [board_out(b) for b in storage.list_boards(user.id)]


@app.post("/boards", response_model=BoardOut, status_code=201)
def create_board(
    payload: BoardCreate,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    board = storage.create_board(user.id, payload.title, payload.description)
    return board_out(board)


@app.get("/boards/{board_id}", response_model=BoardDetail)
def get_board(board_id: str, user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    board, columns = storage.board_detail(board_id, user.id)
    return BoardDetail(
        board=board_out(board),
        columns=[
            ColumnWithTasks(**column_out(c).model_dump(), tasks=[task_out(t, c.title) for t in tasks])
            for c, tasks in columns
        ],
    )


@app.put("/boards/{board_id}", response_model=BoardOut)
def update_board(
    board_id: str,
    payload: BoardUpdate,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    board = storage.update_board(board_id, user.id, _changes(payload))
    return board_out(board)


@app.delete("/boards/{board_id}", response_model=Message)
def delete_board(board_id: str, user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    storage.delete_board(board_id, user.id)
    return Message(message="Board deleted successfully")


# === Column endpoints ===


@app.post("/columns", response_model=ColumnOut, status_code=201)
def create_column(
    payload: ColumnCreate,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    column = storage.create_column(user.id, payload.boardId, payload.title, payload.order)
    return column_out(column)


@app.put("/columns/{column_id}", response_model=ColumnOut)
def update_column(
    column_id: str,
    payload: ColumnUpdate,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    column = storage.update_column(column_id, user.id, _changes(payload, nullable=()))
    return column_out(column)


@app.delete("/columns/{column_id}", response_model=Message)
def delete_column(column_id: str, user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    storage.delete_column(column_id, user.id)
    return Message(message="Column deleted successfully")


# === Task endpoints ===


@app.post("/tasks", response_model=TaskOut, status_code=201)
def create_task(
    payload: TaskCreate,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    task = storage.create_task(user.id, payload.columnId, payload.title, payload.description, payload.order)
    return task_out(task, storage.column_title(task))


@app.put("/tasks/{task_id}", response_model=TaskOut)
def update_task(
    task_id: str,
    payload: TaskUpdate,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    task = storage.update_task(task_id, user.id, _changes(payload))
    return task_out(task, storage.column_title(task))


@app.put("/tasks/{task_id}/move", response_model=TaskOut)
def move_task(
    task_id: str,
    payload: TaskMove,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    task = storage.move_task(task_id, user.id, payload.newColumnId, payload.order)
    return task_out(task, storage.column_title(task))


@app.delete("/tasks/{task_id}", response_model=Message)
def delete_task(task_id: str, user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    storage.delete_task(task_id, user.id)
    return Message(message="Task deleted successfully")
