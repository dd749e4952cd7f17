from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

Theme = Literal["light", "dark", "system"]


class _In(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


# === Users & auth ===

# Passwords are kept verbatim, so only the other fields are stripped.
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=120)]
Email = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")]


class RegisterIn(BaseModel):
    name: Name
    email: Email
    password: str = Field(min_length=6, max_length=72)


class LoginIn(BaseModel):
    email: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=320)]
    password: str = Field(min_length=1, max_length=72)


class ThemeIn(BaseModel):
    theme: Theme


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    themePreference: Theme
    createdAt: datetime


class AuthOut(BaseModel):
    token: str
    user: UserOut


class ThemeOut(BaseModel):
    message: str
    user: UserOut


# === Boards ===


class BoardCreate(_In):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)


class BoardUpdate(_In):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)


class BoardOut(BaseModel):
    id: str
    title: str
    description: Optional[str]
    userId: str
    createdAt: datetime
    updatedAt: datetime


# === Columns ===


class ColumnCreate(_In):
    title: str = Field(min_length=1, max_length=200)
    boardId: str = Field(min_length=1)
    order: int = 0


class ColumnUpdate(_In):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    order: Optional[int] = None


class ColumnOut(BaseModel):
    id: str
    boardId: str
    title: str
    order: int
    createdAt: datetime
    updatedAt: datetime


# === Tasks ===


class TaskCreate(_In):
    title: str = Field(min_length=1, max_length=200)
    columnId: str = Field(min_length=1)
    description: Optional[str] = Field(default=None, max_length=8000)
    order: int = 0


class TaskUpdate(_In):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=8000)
    order: Optional[int] = None


class TaskMove(_In):
    newColumnId: str = Field(min_length=1)
    order: int = 0


class TaskOut(BaseModel):
    id: str
    columnId: str
    columnTitle: str
    title: str
    description: Optional[str]
    order: int
    createdAt: datetime
    updatedAt: datetime


class ColumnWithTasks(ColumnOut):
    tasks: list[TaskOut]


class BoardDetail(BaseModel):
    board: BoardOut
    columns: list[ColumnWithTasks]


class Message(BaseModel):
    message: str
