from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

TaskStatus = Literal["pending", "running", "succeeded", "failed", "fallback_applied"]


class TaskRecord(BaseModel):
    """Outcome of one background task, stored on the entity that owns it."""

    task_id: str
    name: str
    status: TaskStatus = "pending"
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    model_config = ConfigDict(extra="forbid")

    @property
    def done(self) -> bool:
        return self.status in ("succeeded", "failed", "fallback_applied")
