"""User and task stores over the relational database.

``UserStore`` is the credential adapter plus the registration and
login flows.  ``TaskStore`` holds the ownership-scoped task operations:
every read and write is filtered by the task id *and* the owner, so a
task owned by someone else is indistinguishable from a missing one.

Database failures are logged here and re-raised as ``ServerError``;
no driver text ever leaves this module.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth import (
    DEFAULT_ALGORITHM,
    DEFAULT_BCRYPT_ROUNDS,
    DEFAULT_TOKEN_TTL,
    create_token,
    hash_password,
    verify_password,
)
from contract import validate_task_record, validate_user_record
from db import Database, tasks, users
from errors import (
    MissingDataError,
    PasswordIncorrectError,
    PasswordPolicyError,
    ServerError,
    TaskNotFoundError,
    UserExistsError,
    UserNotFoundError,
)
from models import Task, TaskPayload, User
from policy import validate_password

logger = logging.getLogger(__name__)


def _missing(value: Any) -> bool:
    return value is None or value == ""


@contextmanager
def _database_errors(operation: str) -> Iterator[None]:
    """Log any database failure and surface it as an opaque server error."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.exception("Database failure during %s", operation)
        raise ServerError() from e


# ---------------------------------------------------------------------------
# User store
# ---------------------------------------------------------------------------

class UserStore:
    """Credential store plus the register/login flows."""

    def __init__(
        self,
        db: Database,
        *,
        bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
    ) -> None:
        self._db = db
        self._bcrypt_rounds = bcrypt_rounds

    # -- adapter -------------------------------------------------------------

    def get_by_name(self, name: str) -> User | None:
        """Look up a user by exact (case-sensitive) name."""
        with _database_errors("user lookup"):
            row = self._db.fetch_one(select(users).where(users.c.name == name))
        return User.model_validate(row) if row else None

    def exists(self, name: str) -> bool:
        with _database_errors("user existence check"):
            row = self._db.fetch_one(
                select(users.c.id).where(users.c.name == name)
            )
        return row is not None

    def insert(self, name: str, password_hash: str) -> User:
        """Store a new user; a taken name raises ``UserExistsError``."""
        record = {"name": name, "password_hash": password_hash}
        report = validate_user_record(record)
        if not report.passed:
            logger.error("Refusing to store invalid user record:\n%s",
                         report.summary())
            raise ServerError()

        try:
            result = self._db.execute(insert(users).values(**record))
        except IntegrityError as e:                               # REG-DUP-RACE
            logger.info("Unique constraint rejected user %r", name)
            raise UserExistsError() from e
        except SQLAlchemyError as e:
            logger.exception("Database failure during user insert")
            raise ServerError() from e
        return User(id=result.inserted_id, **record)

    def count(self) -> int:
        with _database_errors("user count"):
            return len(self._db.fetch_all(select(users.c.id)))

    # -- registration --------------------------------------------------------

    def register(self, name: str | None, password: str | None) -> User:
        """Register a new user.

        Branches: REG-MISSING, REG-POLICY, REG-DUP, REG-DUP-RACE, REG-SUCCESS
        """
        if _missing(name) or _missing(password):                  # REG-MISSING
            raise MissingDataError()

        result = validate_password(password)
        if not result.accepted:                                   # REG-POLICY
            raise PasswordPolicyError(result.violation.error_code)

        if self.exists(name):                                     # REG-DUP
            raise UserExistsError()

        try:
            pw_hash = hash_password(password, rounds=self._bcrypt_rounds)
        except ValueError as e:
            logger.exception("Password hashing failed during registration")
            raise ServerError() from e

        user = self.insert(name, pw_hash)                         # REG-SUCCESS
        logger.info("Registered user %r (id=%s)", user.name, user.id)
        return user

    # -- login ---------------------------------------------------------------

    def login(
        self,
        name: str | None,
        password: str | None,
        secret: str,
        *,
        token_ttl: int = DEFAULT_TOKEN_TTL,
        algorithm: str = DEFAULT_ALGORITHM,
    ) -> tuple[User, str]:
        """Check credentials and return ``(user, token)``.

        Branches: LOGIN-MISSING, LOGIN-NO-USER, LOGIN-BAD-PASS, LOGIN-SUCCESS
        """
        if _missing(name) or _missing(password):                  # LOGIN-MISSING
            raise MissingDataError()

        user = self.get_by_name(name)
        if user is None:                                          # LOGIN-NO-USER
            raise UserNotFoundError()

        try:
            matched = verify_password(password, user.password_hash)
        except ValueError as e:
            logger.exception("Stored credential for user id=%s is unreadable",
                             user.id)
            raise ServerError() from e

        if not matched:                                           # LOGIN-BAD-PASS
            raise PasswordIncorrectError()

        # LOGIN-SUCCESS
        token = create_token(
            user.id, user.name, secret, ttl=token_ttl, algorithm=algorithm
        )
        return user, token


# ---------------------------------------------------------------------------
# Task store
# ---------------------------------------------------------------------------

def _owner_id_of(name: str):
    """Scalar subquery resolving a user name to its id."""
    return select(users.c.id).where(users.c.name == name).scalar_subquery()


def _content(payload: TaskPayload) -> dict[str, Any]:
    return {
        "title": payload.title,
        "description": payload.description or None,
        "priority": int(payload.priority) if payload.priority is not None else None,
        "status": int(payload.status) if payload.status is not None else None,
        "due_date": payload.due_date,
    }


class TaskStore:
    """Ownership-scoped CRUD over tasks.

    Every method takes the requester's user name and resolves it to the
    owner id on each call.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def _resolve_owner(self, owner_name: str) -> int:
        with _database_errors("owner lookup"):
            row = self._db.fetch_one(
                select(users.c.id).where(users.c.name == owner_name)
            )
        if row is None:
            # A valid token whose user no longer resolves.
            logger.error("Authenticated user %r has no record", owner_name)
            raise ServerError()
        return row["id"]

    def list(self, owner_name: str) -> list[Task]:
        """All tasks owned by ``owner_name``, oldest first."""
        stmt = (
            select(tasks)
            .where(tasks.c.owner_id == _owner_id_of(owner_name))
            .order_by(tasks.c.id)
        )
        with _database_errors("task list"):
            rows = self._db.fetch_all(stmt)
        return [Task.model_validate(r) for r in rows]

    def create(self, owner_name: str, payload: TaskPayload) -> int:
        """Create a task and return its id.

        Branches: TASK-CREATE-MISSING, TASK-CREATE-OK
        """
        if any(
            _missing(v)
            for v in (payload.title, payload.priority, payload.status,
                      payload.due_date)
        ):                                                        # TASK-CREATE-MISSING
            raise MissingDataError()

        record = _content(payload)
        record["owner_id"] = self._resolve_owner(owner_name)

        report = validate_task_record(record)
        if not report.passed:
            logger.error("Refusing to store invalid task record:\n%s",
                         report.summary())
            raise ServerError()

        with _database_errors("task insert"):
            result = self._db.execute(insert(tasks).values(**record))
        logger.debug("User %r created task %s", owner_name, result.inserted_id)
        return result.inserted_id                                 # TASK-CREATE-OK

    def update(self, owner_name: str, task_id: int, payload: TaskPayload) -> None:
        """Replace every content field of an owned task.

        Absent fields are written as null.

        Branches: TASK-UPDATE-OK, TASK-UPDATE-MISS
        """
        stmt = (
            update(tasks)
            .where(tasks.c.id == task_id)
            .where(tasks.c.owner_id == _owner_id_of(owner_name))
            .values(**_content(payload))
        )
        with _database_errors("task update"):
            result = self._db.execute(stmt)
        if result.rowcount == 0:                                  # TASK-UPDATE-MISS
            raise TaskNotFoundError(task_id)
        # TASK-UPDATE-OK

    def delete(self, owner_name: str, task_id: int) -> None:
        """Remove an owned task.

        Branches: TASK-DELETE-OK, TASK-DELETE-MISS
        """
        stmt = (
            delete(tasks)
            .where(tasks.c.id == task_id)
            .where(tasks.c.owner_id == _owner_id_of(owner_name))
        )
        with _database_errors("task delete"):
            result = self._db.execute(stmt)
        if result.rowcount == 0:                                  # TASK-DELETE-MISS
            raise TaskNotFoundError(task_id)
        # TASK-DELETE-OK
