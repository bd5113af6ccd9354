"""FastAPI REST endpoints.

Routes
------
POST   /register          Register a new user
POST   /login             Log in and receive a token

Protected routes (require ``Authorization: Bearer <token>``)
------------------------------------------------------------
GET    /profile           Name of the authenticated user
GET    /tasks             List the caller's tasks
POST   /tasks             Create a task
PUT    /tasks/{task_id}   Replace a task
DELETE /tasks/{task_id}   Delete a task

Every failure body is ``{"detail": "<TAG>"}``.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from errors import ServiceError
from middleware import get_current_identity
from models import (
    Credentials,
    Identity,
    LoginResponse,
    MessageResponse,
    ProfileResponse,
    Task,
    TaskCreatedResponse,
    TaskPayload,
)
from store import TaskStore, UserStore


def get_user_store(request: Request) -> UserStore:
    return request.app.state.user_store


def get_task_store(request: Request) -> TaskStore:
    return request.app.state.task_store


def _http_error(e: ServiceError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.code.value)


# ---------------------------------------------------------------------------
# Auth router
# ---------------------------------------------------------------------------

auth_router = APIRouter(tags=["auth"])


@auth_router.post("/register", response_model=MessageResponse, status_code=201)
def register(
    payload: Credentials,
    store: UserStore = Depends(get_user_store),
) -> MessageResponse:
    """Register a new user account."""
    try:
        store.register(payload.name, payload.password)
    except ServiceError as e:
        raise _http_error(e) from e
    return MessageResponse(message="USER_REGISTERED")


@auth_router.post("/login", response_model=LoginResponse)
def login(
    payload: Credentials,
    request: Request,
    store: UserStore = Depends(get_user_store),
) -> LoginResponse:
    """Authenticate and receive a session token."""
    settings = request.app.state.settings
    try:
        _, token = store.login(
            payload.name,
            payload.password,
            settings.jwt_secret,
            token_ttl=settings.TOKEN_TTL_SECONDS,
            algorithm=settings.JWT_ALGORITHM,
        )
    except ServiceError as e:
        raise _http_error(e) from e
    return LoginResponse(token=token)


@auth_router.get("/profile", response_model=ProfileResponse)
def profile(
    identity: Identity = Depends(get_current_identity),
) -> ProfileResponse:
    """Return the authenticated user's name."""
    return ProfileResponse(name=identity.name)


# ---------------------------------------------------------------------------
# Task router
# ---------------------------------------------------------------------------

task_router = APIRouter(prefix="/tasks", tags=["tasks"])


@task_router.get("", response_model=list[Task])
def list_tasks(
    identity: Identity = Depends(get_current_identity),
    store: TaskStore = Depends(get_task_store),
) -> list[Task]:
    """List every task owned by the caller."""
    try:
        return store.list(identity.name)
    except ServiceError as e:
        raise _http_error(e) from e


@task_router.post("", response_model=TaskCreatedResponse, status_code=201)
def create_task(
    payload: TaskPayload,
    identity: Identity = Depends(get_current_identity),
    store: TaskStore = Depends(get_task_store),
) -> TaskCreatedResponse:
    """Create a task owned by the caller."""
    try:
        task_id = store.create(identity.name, payload)
    except ServiceError as e:
        raise _http_error(e) from e
    return TaskCreatedResponse(id=task_id)


@task_router.put("/{task_id}", response_model=MessageResponse)
def update_task(
    task_id: int,
    payload: TaskPayload,
    identity: Identity = Depends(get_current_identity),
    store: TaskStore = Depends(get_task_store),
) -> MessageResponse:
    """Replace every field of one of the caller's tasks."""
    try:
        store.update(identity.name, task_id, payload)
    except ServiceError as e:
        raise _http_error(e) from e
    return MessageResponse(message="TASK_UPDATED")


@task_router.delete("/{task_id}", response_model=MessageResponse)
def delete_task(
    task_id: int,
    identity: Identity = Depends(get_current_identity),
    store: TaskStore = Depends(get_task_store),
) -> MessageResponse:
    """Delete one of the caller's tasks."""
    try:
        store.delete(identity.name, task_id)
    except ServiceError as e:
        raise _http_error(e) from e
    return MessageResponse(message="TASK_DELETED")
