import logging
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import update

from taskboard.core.query import Filter
from taskboard.models.task import Task
from taskboard.schemas.task import task_document
from taskboard.stores.base import SqlStore

logger = logging.getLogger(__name__)


class TaskStore(SqlStore):
    model = Task
    entity_name = "Task"
    fields = {
        "id": ("id", str),
        "name": ("name", str),
        "description": ("description", str),
        "deadline": ("deadline", datetime),
        "completed": ("completed", bool),
        "assignedUser": ("assigned_user", str),
        "assignedUserName": ("assigned_user_name", str),
        "dateCreated": ("date_created", datetime),
    }

    def to_document(self, record: Task) -> Dict[str, Any]:
        return task_document(record)

    async def update_many(self, where: Filter, values: Dict[str, Any]) -> int:
        """Set `values` (model attribute -> value) on every task matching `where`."""
        stmt = (
            update(Task)
            .where(self._compile(where))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            await session.commit()
        logger.debug("Bulk task update matched=%s values=%s", result.rowcount, sorted(values))
        return result.rowcount
