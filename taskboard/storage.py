from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .auth import hash_password, issue_token, verify_password
from .db import Board, ColumnModel, Task, User, new_id
from .errors import NotFoundError, StoreError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_COLUMNS = ("To Do", "In Progress", "Done")

BOARD_FIELDS = frozenset({"title", "description"})
COLUMN_FIELDS = frozenset({"title", "order"})
TASK_FIELDS = frozenset({"title", "description", "order"})

Resource = Union[Board, ColumnModel, Task]


class Storage:
    """Store operations for users, boards, columns and tasks.

    Board, column and task methods receive the caller's ``user_id`` and only
    touch records whose board that user owns. Writes are committed once per
    operation, so a cascade either happens completely or not at all.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def _unit_of_work(self, commit: bool = True) -> Iterator[None]:
        try:
            yield
            if commit:
                self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("store operation failed")
            raise StoreError(exc) from exc

    # === Ownership ===
    def _board_of(self, resource: Optional[Resource]) -> Optional[Board]:
        if resource is None:
            return None
        if isinstance(resource, Board):
            return resource
        if isinstance(resource, ColumnModel):
            return self.db.get(Board, resource.board_id)
        if isinstance(resource, Task):
            return self._board_of(self.db.get(ColumnModel, resource.column_id))
        raise TypeError(f"unsupported resource type: {type(resource).__name__}")

    def owns_board_of(self, resource: Optional[Resource], user_id: str) -> bool:
        board = self._board_of(resource)
        return board is not None and board.user_id == user_id

    def _owned_board(self, board_id: str, user_id: str) -> Board:
        board = self.db.scalar(select(Board).where(Board.id == board_id, Board.user_id == user_id))
        if board is None:
            raise NotFoundError("Board")
        return board

    def _owned_column(self, column_id: str, user_id: str) -> ColumnModel:
        column = self.db.get(ColumnModel, column_id)
        if not self.owns_board_of(column, user_id):
            raise NotFoundError("Column")
        return column

    def _owned_task(self, task_id: str, user_id: str) -> Task:
        task = self.db.get(Task, task_id)
        if not self.owns_board_of(task, user_id):
            raise NotFoundError("Task")
        return task

    @staticmethod
    def _apply(record: Resource, changes: Dict[str, Any], allowed: frozenset) -> None:
        for field, value in changes.items():
            if field in allowed:
                setattr(record, field, value)

    # === Board operations ===
    def create_board(self, user_id: str, title: str, description: Optional[str]) -> Board:
        with self._unit_of_work():
            board = Board(id=new_id(), title=title, description=description, user_id=user_id)
            self.db.add(board)
            for order, column_title in enumerate(DEFAULT_COLUMNS):
                self.db.add(ColumnModel(board_id=board.id, title=column_title, order=order))
        logger.info("board %s created by user %s", board.id, user_id)
        return board

    def list_boards(self, user_id: str) -> List[Board]:
        with self._unit_of_work(commit=False):
            stmt = (
                select(Board)
                .where(Board.user_id == user_id)
                .order_by(Board.created_at.desc(), Board.id.desc())
            )
            return list(self.db.scalars(stmt))

    def board_detail(self, board_id: str, user_id: str) -> Tuple[Board, List[Tuple[ColumnModel, List[Task]]]]:
        with self._unit_of_work(commit=False):
            board = self._owned_board(board_id, user_id)
            columns = list(
                self.db.scalars(
                    select(ColumnModel)
                    .where(ColumnModel.board_id == board.id)
                    .order_by(ColumnModel.order, ColumnModel.created_at, ColumnModel.id)
                )
            )
            tasks_by_column: Dict[str, List[Task]] = {c.id: [] for c in columns}
            if columns:
                tasks = self.db.scalars(
                    select(Task)
                    .where(Task.column_id.in_(list(tasks_by_column)))
                    .order_by(Task.order, Task.created_at, Task.id)
                )
                for task in tasks:
                    tasks_by_column[task.column_id].append(task)
            return board, [(c, tasks_by_column[c.id]) for c in columns]

    def update_board(self, board_id: str, user_id: str, changes: Dict[str, Any]) -> Board:
        with self._unit_of_work():
            board = self._owned_board(board_id, user_id)
            self._apply(board, changes, BOARD_FIELDS)
        return board

    def delete_board(self, board_id: str, user_id: str) -> None:
        with self._unit_of_work():
            board = self._owned_board(board_id, user_id)
            column_ids = list(self.db.scalars(select(ColumnModel.id).where(ColumnModel.board_id == board.id)))
            self.db.execute(delete(Task).where(Task.column_id.in_(column_ids)))
            self.db.execute(delete(ColumnModel).where(ColumnModel.board_id == board.id))
            self.db.delete(board)
        logger.info("board %s deleted with %d columns", board_id, len(column_ids))

    # === Column operations ===
    def create_column(self, user_id: str, board_id: str, title: str, order: int = 0) -> ColumnModel:
        with self._unit_of_work():
            board = self._owned_board(board_id, user_id)
            column = ColumnModel(board_id=board.id, title=title, order=order)
            self.db.add(column)
        return column

    def update_column(self, column_id: str, user_id: str, changes: Dict[str, Any]) -> ColumnModel:
        with self._unit_of_work():
            column = self._owned_column(column_id, user_id)
            self._apply(column, changes, COLUMN_FIELDS)
        return column

    def delete_column(self, column_id: str, user_id: str) -> None:
        with self._unit_of_work():
            column = self._owned_column(column_id, user_id)
            self.db.execute(delete(Task).where(Task.column_id == column.id))
            self.db.delete(column)
        logger.info("column %s deleted", column_id)

    # === Task operations ===
    def create_task(
        self,
        user_id: str,
        column_id: str,
        title: str,
        description: Optional[str],
        order: int = 0,
    ) -> Task:
        with self._unit_of_work():
            column = self._owned_column(column_id, user_id)
            task = Task(column_id=column.id, title=title, description=description, order=order)
            self.db.add(task)
        return task

    def update_task(self, task_id: str, user_id: str, changes: Dict[str, Any]) -> Task:
        with self._unit_of_work():
            task = self._owned_task(task_id, user_id)
            self._apply(task, changes, TASK_FIELDS)
        return task

    def move_task(self, task_id: str, user_id: str, new_column_id: str, order: int = 0) -> Task:
        """Reparent a task onto another column of the same board.

        Sibling tasks keep their order values; ties are broken on read by
        creation time.
        """
        with self._unit_of_work():
            task = self._owned_task(task_id, user_id)
            current = self.db.get(ColumnModel, task.column_id)
            target = self.db.scalar(
                select(ColumnModel).where(
                    ColumnModel.id == new_column_id,
                    ColumnModel.board_id == current.board_id,
                )
            )
            if target is None:
                raise ValidationError("Invalid column or column not in same board")
            source_id = task.column_id
            task.column_id = target.id
            task.order = order
        logger.info("task %s moved from column %s to %s", task_id, source_id, new_column_id)
        return task

    def delete_task(self, task_id: str, user_id: str) -> None:
        with self._unit_of_work():
            task = self._owned_task(task_id, user_id)
            self.db.delete(task)

    def column_title(self, task: Task) -> str:
        with self._unit_of_work(commit=False):
            return task.column.title

    # === User operations ===
    def register_user(self, name: str, email: str, password: str) -> Tuple[User, str]:
        email = email.lower()
        duplicate = ValidationError("User already exists", [{"field": "email", "message": "User already exists"}])
        with self._unit_of_work():
            if self.db.scalar(select(User.id).where(User.email == email)) is not None:
                raise duplicate
            user = User(id=new_id(), name=name, email=email, password_hash=hash_password(password))
            self.db.add(user)
            try:
                self.db.flush()
            except IntegrityError as exc:
                # a concurrent registration took the email after the check above
                self.db.rollback()
                raise duplicate from exc
            token = issue_token(self.db, user)
        logger.info("user %s registered", user.id)
        return user, token

    def authenticate(self, email: str, password: str) -> Tuple[User, str]:
        with self._unit_of_work():
            user = self.db.scalar(select(User).where(User.email == email.lower()))
            if user is None or not verify_password(password, user.password_hash):
                raise ValidationError("Invalid credentials")
            token = issue_token(self.db, user)
        return user, token

    def update_theme(self, user_id: str, theme: str) -> User:
        with self._unit_of_work():
            user = self.db.get(User, user_id)
            if user is None:
                raise NotFoundError("User")
            user.theme_preference = theme
        return user
