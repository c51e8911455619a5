"""Blocking gRPC client for the task and user services."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Type

import grpc

from .models import TaskStatus
from .rpc import (
    STATUS_UNSPECIFIED,
    TASK_SERVICE,
    USER_SERVICE,
    AssignTaskRequest,
    CreateTaskRequest,
    DeleteTaskRequest,
    Empty,
    GetTaskRequest,
    GetUserRequest,
    GetUserTasksRequest,
    ListTasksRequest,
    ListTasksResponse,
    M,
    Message,
    TaskResponse,
    UpdateTaskRequest,
    UserResponse,
    ValidateTokenRequest,
    ValidateTokenResponse,
    status_to_wire,
)

logger = logging.getLogger("taskhub.client")

DEFAULT_TIMEOUT = 5.0


class TaskHubClient:
    """Thin wrapper around a gRPC channel.

    Failed calls raise :class:`grpc.RpcError`; ``exc.code()`` carries the
    status the server mapped the domain error to.
    """

    def __init__(
        self,
        address: str,
        *,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        channel: Optional[grpc.Channel] = None,
    ) -> None:
        self._channel = channel or grpc.insecure_channel(address)
        self._token = token
        self._timeout = timeout

    def __enter__(self) -> "TaskHubClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def set_auth_token(self, token: Optional[str]) -> None:
        self._token = token

    def close(self) -> None:
        self._channel.close()

    def _metadata(self) -> Sequence[Tuple[str, str]]:
        if not self._token:
            return ()
        return (("authorization", f"Bearer {self._token}"),)

    def _call(self, service: str, method: str, request: Message, response_type: Type[M]) -> M:
        stub = self._channel.unary_unary(
            f"/{service}/{method}",
            request_serializer=lambda message: message.to_bytes(),
            response_deserializer=response_type.from_bytes,
        )
        logger.debug("Calling %s/%s", service, method)
        return stub(request, timeout=self._timeout, metadata=self._metadata())

    def create_task(
        self,
        title: str,
        description: str = "",
        priority: int = 1,
        due_date: Optional[datetime] = None,
        *,
        created_by: str = "",
    ) -> TaskResponse:
        request = CreateTaskRequest(
            title=title,
            description=description,
            priority=priority,
            due_date=due_date,
            created_by=created_by,
        )
        return self._call(TASK_SERVICE, "CreateTask", request, TaskResponse)

    def get_task(self, task_id: str) -> TaskResponse:
        return self._call(TASK_SERVICE, "GetTask", GetTaskRequest(id=task_id), TaskResponse)

    def update_task(self, task_id: str, *, status: Optional[TaskStatus] = None, **fields) -> TaskResponse:
        """Send a partial update; only the keyword fields given are transmitted."""

        data = dict(fields, id=task_id)
        if status is not None:
            data["status"] = status_to_wire(TaskStatus(status))
        request = UpdateTaskRequest(**data)
        return self._call(TASK_SERVICE, "UpdateTask", request, TaskResponse)

    def delete_task(self, task_id: str, *, user_id: str = "") -> None:
        self._call(TASK_SERVICE, "DeleteTask", DeleteTaskRequest(id=task_id, user_id=user_id), Empty)

    def list_tasks(self, status: Optional[TaskStatus] = None) -> List[TaskResponse]:
        wire_status = status_to_wire(TaskStatus(status)) if status is not None else STATUS_UNSPECIFIED
        response = self._call(TASK_SERVICE, "ListTasks", ListTasksRequest(status=wire_status), ListTasksResponse)
        return response.tasks

    def assign_task(self, task_id: str, assignee_id: str, *, assigned_by: str = "") -> TaskResponse:
        request = AssignTaskRequest(task_id=task_id, assignee_id=assignee_id, assigned_by=assigned_by)
        return self._call(TASK_SERVICE, "AssignTask", request, TaskResponse)

    def get_user_tasks(self, user_id: str) -> List[TaskResponse]:
        response = self._call(TASK_SERVICE, "GetUserTasks", GetUserTasksRequest(user_id=user_id), ListTasksResponse)
        return response.tasks

    def get_user(self, user_id: str) -> UserResponse:
        return self._call(USER_SERVICE, "GetUser", GetUserRequest(id=user_id), UserResponse)

    def validate_token(self, token: str) -> ValidateTokenResponse:
        return self._call(USER_SERVICE, "ValidateToken", ValidateTokenRequest(token=token), ValidateTokenResponse)


__all__ = ["DEFAULT_TIMEOUT", "TaskHubClient"]
