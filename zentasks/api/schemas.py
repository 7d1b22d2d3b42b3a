"""Request bodies for the HTTP routes.

Required fields are Optional here so a missing field yields the route's own
400 response instead of FastAPI's 422.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class TaskAgentRequest(BaseModel):
    user_id: Optional[str] = None
    message: Optional[str] = None
    history: list = Field(default_factory=list)
    mode: str = "chat"


class ListTasksRequest(BaseModel):
    user_id: Optional[str] = None
    status: Optional[str] = None


class UpdateTaskRequest(BaseModel):
    task_id: Optional[str] = None
    fields: Optional[dict] = None
