"""Data shapes for users, tasks, tokens and request/response bodies.

Pydantic models only -- no business logic lives here.  Request bodies
accept absent fields so that the store, not the framework, decides
which of them are missing.
"""
from __future__ import annotations

from datetime import date
from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Priority(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3


class Status(IntEnum):
    PENDING = 1
    IN_PROGRESS = 2
    COMPLETED = 3


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------

class User(BaseModel):
    """User row as stored.  Never returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    password_hash: str


class Task(BaseModel):
    """Task row as stored and returned by the API.

    Content fields are nullable: an update replaces every field and
    absent values are written as null.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str | None = None
    description: str | None = None
    priority: int | None = None
    status: int | None = None
    due_date: date | None = None
    owner_id: int


# ---------------------------------------------------------------------------
# Identity and token claims
# ---------------------------------------------------------------------------

class Identity(BaseModel):
    """The authenticated user resolved from a bearer token."""

    name: str


class TokenClaims(BaseModel):
    """Decoded session token payload."""

    sub: str
    name: str
    iat: int
    exp: int


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class Credentials(BaseModel):
    """Name/password pair for registration and login."""

    name: str | None = None
    password: str | None = None


class TaskPayload(BaseModel):
    """Fields for creating or fully replacing a task."""

    title: str | None = None
    description: str | None = None
    priority: Priority | None = None
    status: Status | None = None
    due_date: date | None = None


# ---------------------------------------------------------------------------
# Response bodies
# ---------------------------------------------------------------------------

class MessageResponse(BaseModel):
    message: str


class LoginResponse(BaseModel):
    message: str = "LOGIN_OK"
    token: str
    token_type: str = "bearer"


class TaskCreatedResponse(BaseModel):
    message: str = "TASK_CREATED"
    id: int = Field(..., ge=1)


class ProfileResponse(BaseModel):
    message: str = "ACCESS_GRANTED"
    name: str
