from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel

from taskboard.core.database import as_utc
from taskboard.models.user import User


class UserIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    pending_tasks: Optional[List[str]] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    @property
    def pending_tasks_provided(self) -> bool:
        """True when the client sent the field at all, even as [] or null."""
        return "pending_tasks" in self.model_fields_set


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    pending_tasks: List[str]
    date_created: datetime

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

    @field_validator("date_created")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


def user_document(user: User) -> Dict[str, Any]:
    return UserOut.model_validate(user).model_dump(mode="json", by_alias=True)
