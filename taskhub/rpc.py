"""gRPC adapter for the task and user use cases.

Services and methods follow ``task.proto`` (``task.TaskService`` and
``task.UserService``). Messages travel as JSON documents described by the
pydantic models below, so no generated stubs are needed on either side.
"""
from __future__ import annotations

import logging
from concurrent import futures
from datetime import datetime
from typing import Callable, Dict, List, Optional, Type, TypeVar

import grpc
from pydantic import BaseModel, ConfigDict, ValidationError

from .application import Services
from .errors import ErrorKind, InvalidInputError, InvalidTokenError, TaskHubError, UnauthorizedError, transport_status
from .models import Task, TaskStatus, User
from .security import parse_bearer

logger = logging.getLogger("taskhub.rpc")

TASK_SERVICE = "task.TaskService"
USER_SERVICE = "task.UserService"
MAX_MESSAGE_BYTES = 4 * 1024 * 1024

STATUS_UNSPECIFIED = "TASK_STATUS_UNSPECIFIED"
_STATUS_TO_WIRE: Dict[TaskStatus, str] = {
    TaskStatus.PENDING: "TASK_STATUS_PENDING",
    TaskStatus.IN_PROGRESS: "TASK_STATUS_IN_PROGRESS",
    TaskStatus.COMPLETED: "TASK_STATUS_COMPLETED",
}
_WIRE_TO_STATUS: Dict[str, TaskStatus] = {value: key for key, value in _STATUS_TO_WIRE.items()}


def status_to_wire(status: TaskStatus) -> str:
    return _STATUS_TO_WIRE[status]


def status_from_wire(value: str) -> Optional[TaskStatus]:
    """Return the domain status, or ``None`` for the unspecified value."""

    if not value or value == STATUS_UNSPECIFIED:
        return None
    try:
        return _WIRE_TO_STATUS[value]
    except KeyError as exc:
        raise InvalidInputError(f"unknown task status: {value}") from exc


M = TypeVar("M", bound="Message")


class Message(BaseModel):
    """JSON wire message. Only explicitly set fields are encoded, so partial updates stay partial."""

    model_config = ConfigDict(extra="ignore")

    def to_bytes(self) -> bytes:
        return self.model_dump_json(exclude_unset=True).encode("utf-8")

    @classmethod
    def from_bytes(cls: Type[M], data: bytes) -> M:
        return cls.model_validate_json(data or b"{}")


class Empty(Message):
    pass


class CreateTaskRequest(Message):
    title: str = ""
    description: str = ""
    priority: int = 0
    due_date: Optional[datetime] = None
    created_by: str = ""


class GetTaskRequest(Message):
    id: str = ""


class UpdateTaskRequest(Message):
    id: str = ""
    title: Optional[str] = None
    description: Optional[str] = None
    status: str = STATUS_UNSPECIFIED
    priority: Optional[int] = None
    due_date: Optional[datetime] = None
    updated_by: str = ""


class DeleteTaskRequest(Message):
    id: str = ""
    user_id: str = ""


class ListTasksRequest(Message):
    status: str = STATUS_UNSPECIFIED


class AssignTaskRequest(Message):
    task_id: str = ""
    assignee_id: str = ""
    assigned_by: str = ""


class GetUserTasksRequest(Message):
    user_id: str = ""


class TaskResponse(Message):
    id: str
    title: str
    description: str = ""
    status: str
    priority: int
    due_date: Optional[datetime] = None
    assigned_to: str = ""
    created_by: str
    created_at: datetime
    updated_at: datetime


class ListTasksResponse(Message):
    tasks: List[TaskResponse] = []


class GetUserRequest(Message):
    id: str = ""


class UserResponse(Message):
    id: str
    username: str
    email: str
    first_name: str = ""
    last_name: str = ""
    created_at: datetime


class ValidateTokenRequest(Message):
    token: str = ""


class ValidateTokenResponse(Message):
    user_id: str = ""
    username: str = ""
    valid: bool = False


def task_to_message(task: Task) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        title=task.title,
        description=task.description or "",
        status=status_to_wire(task.status),
        priority=task.priority,
        due_date=task.due_date,
        assigned_to=task.assigned_to or "",
        created_by=task.created_by,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


def user_to_message(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name or "",
        last_name=user.last_name or "",
        created_at=user.created_at,
    )


def _require(value: str, name: str) -> str:
    if not value:
        raise InvalidInputError(f"{name} is required")
    return value


def _ensure_actor(claimed: str, caller_id: str) -> None:
    if claimed and claimed != caller_id:
        raise UnauthorizedError("request user does not match the authenticated caller")


def caller_id_from_context(services: Services, context: grpc.ServicerContext) -> str:
    """Validate the ``authorization`` metadata and return the caller's user id."""

    header = None
    for key, value in context.invocation_metadata() or ():
        if key.lower() == "authorization":
            header = value
            break
    token = parse_bearer(header)
    if token is None:
        raise InvalidTokenError("authorization token is not provided")
    return services.auth.tokens.validate_token(token)


class TaskServicer:
    """Implements ``task.TaskService``; the acting user always comes from the token."""

    def __init__(self, services: Services) -> None:
        self._services = services

    def CreateTask(self, request: CreateTaskRequest, context: grpc.ServicerContext) -> TaskResponse:
        caller_id = caller_id_from_context(self._services, context)
        _ensure_actor(request.created_by, caller_id)
        task = self._services.tasks.create(
            request.title,
            request.description or None,
            request.priority,
            request.due_date,
            created_by=caller_id,
        )
        return task_to_message(task)

    def GetTask(self, request: GetTaskRequest, context: grpc.ServicerContext) -> TaskResponse:
        caller_id_from_context(self._services, context)
        return task_to_message(self._services.tasks.get_by_id(_require(request.id, "task id")))

    def UpdateTask(self, request: UpdateTaskRequest, context: grpc.ServicerContext) -> TaskResponse:
        caller_id = caller_id_from_context(self._services, context)
        _ensure_actor(request.updated_by, caller_id)
        provided = request.model_fields_set
        updates: Dict[str, object] = {}
        for name in ("title", "description", "priority", "due_date"):
            if name in provided:
                updates[name] = getattr(request, name)
        status = status_from_wire(request.status)
        if status is not None:
            updates["status"] = status
        task = self._services.tasks.update(_require(request.id, "task id"), updated_by=caller_id, **updates)
        return task_to_message(task)

    def DeleteTask(self, request: DeleteTaskRequest, context: grpc.ServicerContext) -> Empty:
        caller_id = caller_id_from_context(self._services, context)
        _ensure_actor(request.user_id, caller_id)
        self._services.tasks.delete(_require(request.id, "task id"), caller_id)
        return Empty()

    def ListTasks(self, request: ListTasksRequest, context: grpc.ServicerContext) -> ListTasksResponse:
        caller_id_from_context(self._services, context)
        status = status_from_wire(request.status)
        if status is None:
            tasks = self._services.tasks.list_all()
        else:
            tasks = self._services.tasks.list_by_status(status)
        return ListTasksResponse(tasks=[task_to_message(task) for task in tasks])

    def AssignTask(self, request: AssignTaskRequest, context: grpc.ServicerContext) -> TaskResponse:
        caller_id = caller_id_from_context(self._services, context)
        _ensure_actor(request.assigned_by, caller_id)
        task = self._services.tasks.assign(
            _require(request.task_id, "task id"),
            _require(request.assignee_id, "assignee id"),
            caller_id,
        )
        return task_to_message(task)

    def GetUserTasks(self, request: GetUserTasksRequest, context: grpc.ServicerContext) -> ListTasksResponse:
        caller_id_from_context(self._services, context)
        tasks = self._services.tasks.list_by_user(_require(request.user_id, "user id"))
        return ListTasksResponse(tasks=[task_to_message(task) for task in tasks])


class UserServicer:
    """Implements ``task.UserService``."""

    def __init__(self, services: Services) -> None:
        self._services = services

    def GetUser(self, request: GetUserRequest, context: grpc.ServicerContext) -> UserResponse:
        caller_id_from_context(self._services, context)
        return user_to_message(self._services.users.get_by_id(_require(request.id, "user id")))

    def ValidateToken(self, request: ValidateTokenRequest, context: grpc.ServicerContext) -> ValidateTokenResponse:
        try:
            claims = self._services.auth.tokens.decode_claims(request.token)
        except InvalidTokenError:
            return ValidateTokenResponse(valid=False)
        return ValidateTokenResponse(user_id=claims.user_id, username=claims.username, valid=True)


def _unary_handler(
    method: Callable[[Message, grpc.ServicerContext], Message],
    request_type: Type[Message],
    full_name: str,
) -> grpc.RpcMethodHandler:
    def invoke(raw: bytes, context: grpc.ServicerContext) -> bytes:
        try:
            request = request_type.from_bytes(raw)
        except ValidationError:
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, "malformed request message")
        try:
            response = method(request, context)
        except TaskHubError as exc:
            mapped = transport_status(exc)
            if exc.kind is ErrorKind.INTERNAL:
                logger.error("Internal error in %s", full_name, exc_info=exc)
            else:
                logger.debug("%s failed: %s", full_name, exc)
            context.abort(grpc.StatusCode[mapped.grpc_code], mapped.message)
        except Exception as exc:  # noqa: BLE001 - every failure must become a status
            logger.error("Unhandled error in %s", full_name, exc_info=exc)
            context.abort(grpc.StatusCode.INTERNAL, transport_status(exc).message)
        return response.to_bytes()

    return grpc.unary_unary_rpc_method_handler(invoke)


_TASK_METHODS: Dict[str, Type[Message]] = {
    "CreateTask": CreateTaskRequest,
    "GetTask": GetTaskRequest,
    "UpdateTask": UpdateTaskRequest,
    "DeleteTask": DeleteTaskRequest,
    "ListTasks": ListTasksRequest,
    "AssignTask": AssignTaskRequest,
    "GetUserTasks": GetUserTasksRequest,
}

_USER_METHODS: Dict[str, Type[Message]] = {
    "GetUser": GetUserRequest,
    "ValidateToken": ValidateTokenRequest,
}


def build_handlers(services: Services) -> List[grpc.GenericRpcHandler]:
    handlers: List[grpc.GenericRpcHandler] = []
    for service_name, servicer, methods in (
        (TASK_SERVICE, TaskServicer(services), _TASK_METHODS),
        (USER_SERVICE, UserServicer(services), _USER_METHODS),
    ):
        method_handlers = {
            name: _unary_handler(getattr(servicer, name), request_type, f"{service_name}/{name}")
            for name, request_type in methods.items()
        }
        handlers.append(grpc.method_handlers_generic_handler(service_name, method_handlers))
    return handlers


class GrpcServer:
    """Owns the grpc server object for the lifetime of the process."""

    def __init__(
        self,
        services: Services,
        *,
        host: str = "0.0.0.0",
        port: int = 50051,
        max_workers: int = 10,
    ) -> None:
        self._server = grpc.server(
            futures.ThreadPoolExecutor(max_workers=max_workers),
            options=[
                ("grpc.max_receive_message_length", MAX_MESSAGE_BYTES),
                ("grpc.max_send_message_length", MAX_MESSAGE_BYTES),
            ],
        )
        self._server.add_generic_rpc_handlers(tuple(build_handlers(services)))
        self._port = self._server.add_insecure_port(f"{host}:{port}")
        if self._port == 0:
            raise RuntimeError(f"Unable to bind gRPC server to {host}:{port}")

    @property
    def port(self) -> int:
        return self._port

    def start(self) -> None:
        logger.info("Starting gRPC server on port %d", self._port)
        self._server.start()

    def stop(self, grace: Optional[float] = 5.0) -> None:
        logger.info("Stopping gRPC server")
        self._server.stop(grace).wait()

    def wait_for_termination(self, timeout: Optional[float] = None) -> bool:
        return self._server.wait_for_termination(timeout)


__all__ = [
    "AssignTaskRequest",
    "CreateTaskRequest",
    "DeleteTaskRequest",
    "Empty",
    "GetTaskRequest",
    "GetUserRequest",
    "GetUserTasksRequest",
    "GrpcServer",
    "ListTasksRequest",
    "ListTasksResponse",
    "Message",
    "STATUS_UNSPECIFIED",
    "TASK_SERVICE",
    "TaskResponse",
    "USER_SERVICE",
    "UpdateTaskRequest",
    "UserResponse",
    "ValidateTokenRequest",
    "ValidateTokenResponse",
    "build_handlers",
    "status_from_wire",
    "status_to_wire",
]
