from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel

from taskboard.core.database import as_utc
from taskboard.models.task import Task


class TaskIn(BaseModel):
    """
    Create/replace payload. Every field is optional at the schema level so the
    consistency engine can report missing ones with its own messages.
    """

    name: Optional[str] = None
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    completed: Optional[bool] = None
    assigned_user: Optional[str] = None
    assigned_user_name: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class TaskOut(BaseModel):
    id: str
    name: str
    description: str
    deadline: datetime
    completed: bool
    assigned_user: str
    assigned_user_name: str
    date_created: datetime

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

    @field_validator("deadline", "date_created")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


def task_document(task: Task) -> Dict[str, Any]:
    return TaskOut.model_validate(task).model_dump(mode="json", by_alias=True)
