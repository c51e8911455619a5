"""FastAPI application exposing the task and user use cases over REST."""
from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .application import Services
from .auth import LoginResult
from .config import Settings
from .errors import ErrorKind, TaskHubError, transport_status
from .models import Task, User
from .security import TokenAuth

logger = logging.getLogger("taskhub.api")

API_PREFIX = "/api/v1"


class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    login: str = Field(..., description="Username or email address")
    password: str


class RefreshTokenRequest(BaseModel):
    token: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user_id: str
    username: str


class UserResponse(BaseModel):
    id: str
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UpdateUserRequest(BaseModel):
    email: Optional[str] = None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    password: Optional[str] = None


class CreateTaskRequest(BaseModel):
    title: str
    description: Optional[str] = None
    priority: int
    due_date: Optional[datetime] = None


class UpdateTaskRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[int] = None
    due_date: Optional[datetime] = None


class AssignTaskRequest(BaseModel):
    assignee_id: str = Field(..., min_length=1)


class TaskResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    status: str
    priority: int
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: datetime


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def task_to_response(task: Task) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        title=task.title,
        description=task.description,
        status=task.status.value,
        priority=task.priority,
        due_date=task.due_date,
        assigned_to=task.assigned_to,
        created_by=task.created_by,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


def login_to_response(result: LoginResult) -> LoginResponse:
    return LoginResponse(
        access_token=result.access_token,
        expires_at=result.expires_at,
        user_id=result.user_id,
        username=result.username,
    )


def create_app(services: Services, *, settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    app = FastAPI(
        title="Task Management API",
        description="Task and user management with token authentication",
        version=settings.app.version,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.state.services = services

    auth = TokenAuth(services.auth.tokens)

    async def get_current_user_id(request: Request) -> str:
        return await auth(request)

    router = APIRouter(prefix=API_PREFIX)

    @router.get("/health")
    def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @router.post("/auth/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    def register(payload: RegisterRequest) -> UserResponse:
        user = services.users.register(
            payload.username,
            payload.email,
            payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
        )
        return user_to_response(user)

    @router.post("/auth/login", response_model=LoginResponse)
    def login(payload: LoginRequest) -> LoginResponse:
        return login_to_response(services.auth.login(payload.login, payload.password))

    @router.post("/auth/refresh-token", response_model=LoginResponse)
    def refresh_token(payload: RefreshTokenRequest) -> LoginResponse:
        return login_to_response(services.auth.refresh_token(payload.token))

    @router.get("/me", response_model=UserResponse)
    def read_profile(current_user_id: str = Depends(get_current_user_id)) -> UserResponse:
        return user_to_response(services.users.get_by_id(current_user_id))

    @router.get("/users/{user_id}", response_model=UserResponse)
    def read_user(user_id: str, current_user_id: str = Depends(get_current_user_id)) -> UserResponse:
        return user_to_response(services.users.get_by_id(user_id))

    @router.put("/users/{user_id}", response_model=UserResponse)
    def update_user(
        user_id: str,
        payload: UpdateUserRequest,
        current_user_id: str = Depends(get_current_user_id),
    ) -> UserResponse:
        services.auth.authorize_resource_access(current_user_id, user_id, "user")
        updates = payload.model_dump(exclude_unset=True)
        return user_to_response(services.users.update(user_id, **updates))

    @router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_user(user_id: str, current_user_id: str = Depends(get_current_user_id)) -> Response:
        services.auth.authorize_resource_access(current_user_id, user_id, "user")
        services.users.delete(user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.get("/users/{user_id}/tasks", response_model=List[TaskResponse])
    def list_user_tasks(user_id: str, current_user_id: str = Depends(get_current_user_id)) -> List[TaskResponse]:
        return [task_to_response(task) for task in services.tasks.list_by_user(user_id)]

    @router.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
    def create_task(payload: CreateTaskRequest, current_user_id: str = Depends(get_current_user_id)) -> TaskResponse:
        task = services.tasks.create(
            payload.title,
            payload.description,
            payload.priority,
            payload.due_date,
            created_by=current_user_id,
        )
        return task_to_response(task)

    @router.get("/tasks", response_model=List[TaskResponse])
    def list_tasks(
        task_status: Optional[str] = Query(default=None, alias="status"),
        current_user_id: str = Depends(get_current_user_id),
    ) -> List[TaskResponse]:
        if task_status:
            tasks = services.tasks.list_by_status(task_status)
        else:
            tasks = services.tasks.list_all()
        return [task_to_response(task) for task in tasks]

    @router.get("/tasks/{task_id}", response_model=TaskResponse)
    def read_task(task_id: str, current_user_id: str = Depends(get_current_user_id)) -> TaskResponse:
        return task_to_response(services.tasks.get_by_id(task_id))

    @router.put("/tasks/{task_id}", response_model=TaskResponse)
    def update_task(
        task_id: str,
        payload: UpdateTaskRequest,
        current_user_id: str = Depends(get_current_user_id),
    ) -> TaskResponse:
        updates = payload.model_dump(exclude_unset=True)
        task = services.tasks.update(task_id, updated_by=current_user_id, **updates)
        return task_to_response(task)

    @router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_task(task_id: str, current_user_id: str = Depends(get_current_user_id)) -> Response:
        services.tasks.delete(task_id, current_user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.post("/tasks/{task_id}/assign", response_model=TaskResponse)
    def assign_task(
        task_id: str,
        payload: AssignTaskRequest,
        current_user_id: str = Depends(get_current_user_id),
    ) -> TaskResponse:
        return task_to_response(services.tasks.assign(task_id, payload.assignee_id, current_user_id))

    app.include_router(router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, elapsed_ms)
        return response

    @app.exception_handler(TaskHubError)
    async def handle_domain_error(request: Request, exc: TaskHubError):
        mapped = transport_status(exc)
        if exc.kind is ErrorKind.INTERNAL:
            logger.error("Internal error handling %s %s", request.method, request.url.path, exc_info=exc)
        headers = {"WWW-Authenticate": "Bearer"} if mapped.http_status == status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(
            status_code=mapped.http_status,
            content={"detail": mapped.message, "error": exc.kind.value},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors()), "error": ErrorKind.INVALID_INPUT.value},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": transport_status(exc).message, "error": ErrorKind.INTERNAL.value},
        )

    return app


__all__ = [
    "API_PREFIX",
    "create_app",
    "login_to_response",
    "task_to_response",
    "user_to_response",
]
