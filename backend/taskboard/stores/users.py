from datetime import datetime
from typing import Any, Dict, Iterable, List

from taskboard.models.user import User
from taskboard.schemas.user import user_document
from taskboard.stores.base import SqlStore


def unique_ids(ids: Iterable[str]) -> List[str]:
    """Drop duplicate ids, keeping the first occurrence of each."""
    return list(dict.fromkeys(str(i) for i in ids))


class UserStore(SqlStore):
    model = User
    entity_name = "User"
    conflict_message = "Email already exists"
    fields = {
        "id": ("id", str),
        "name": ("name", str),
        "email": ("email", str),
        "pendingTasks": ("pending_tasks", List[str]),
        "dateCreated": ("date_created", datetime),
    }
    unfilterable = frozenset({"pendingTasks"})

    def to_document(self, record: User) -> Dict[str, Any]:
        return user_document(record)

    def _prepare(self, record: User) -> None:
        record.pending_tasks = unique_ids(record.pending_tasks or [])
