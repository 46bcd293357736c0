"""Response envelope and snapshot contracts.

Every payload that leaves the process (control server responses, CLI
output) is built from these models so response shapes stay consistent.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

TaskStatusName = Literal["not_started", "running", "paused", "stopped", "completed", "failed"]


class TaskInfo(BaseModel):
    """Point-in-time snapshot of one task."""

    task_id: str | None = Field(default=None, description="Registry id")
    name: str
    description: str = ""
    status: TaskStatusName
    is_running: bool
    is_paused: bool
    advances: int = Field(description="Successful producer advances so far")
    created_at: float
    started_at: float | None = None
    ended_at: float | None = None
    elapsed_time: float = 0.0
    manual_stop: bool | None = Field(
        default=None, description="Set once finished: True if ended by stop()"
    )
    error: str | None = None

    @classmethod
    def from_task(cls, task: Any) -> "TaskInfo":
        fault = task.fault
        return cls(
            task_id=task.task_id,
            name=task.name,
            description=task.description,
            status=task.status.value,
            is_running=task.is_running,
            is_paused=task.is_paused,
            advances=task.advance_count,
            created_at=task.created_at,
            started_at=task.started_at,
            ended_at=task.ended_at,
            elapsed_time=task.elapsed_time(),
            manual_stop=task.manual,
            error="{}: {}".format(type(fault).__name__, fault) if fault is not None else None,
        )


class Pagination(BaseModel):
    total_count: int
    displayed_count: int
    offset: int
    limit: int | None
    has_more: bool


class TaskList(BaseModel):
    tasks: list[TaskInfo]
    pagination: Pagination


class ControlError(BaseModel):
    """Structured error for control payloads."""

    code: str = Field(description="Stable machine-readable error code")
    message: str = Field(description="Human-readable error summary")
    details: dict[str, Any] | None = Field(
        default=None, description="Optional structured error details"
    )


class ControlEnvelope(BaseModel):
    """Unified response shape for all control operations."""

    ok: bool = Field(description="Operation success flag")
    data: Any | None = Field(default=None, description="Operation-specific payload")
    error: ControlError | None = Field(default=None, description="Structured error payload")

    @model_validator(mode="after")
    def _validate_coherence(self) -> "ControlEnvelope":
        if self.ok and self.error is not None:
            raise ValueError("ok=true responses must not include error")
        if not self.ok and self.error is None:
            raise ValueError("ok=false responses must include error")
        return self


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return data


def build_ok(data: Any) -> dict[str, Any]:
    """Build and validate a success envelope."""
    return ControlEnvelope(ok=True, data=_dump(data)).model_dump(exclude_none=True)


def build_error(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    *,
    data: Any | None = None,
) -> dict[str, Any]:
    """Build and validate an error envelope."""
    return ControlEnvelope(
        ok=False,
        data=_dump(data),
        error=ControlError(code=code, message=message, details=details),
    ).model_dump(exclude_none=True)
