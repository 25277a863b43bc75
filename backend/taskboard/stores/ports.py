"""
Ports used by the consistency engine.

The engine depends on these Protocols rather than on the SQL stores, so tests
can wrap or replace a store (e.g. to inject failures) without a database.
"""

from typing import Any, Dict, List, Optional, Protocol

from taskboard.core.query import Filter, Projection, SortKey
from taskboard.models.task import Task
from taskboard.models.user import User


class TaskRepo(Protocol):
    async def find(
        self,
        where: Optional[Filter] = None,
        *,
        sort: Optional[List[SortKey]] = None,
        projection: Optional[Projection] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]: ...

    async def count(self, where: Optional[Filter] = None) -> int: ...
    async def get_by_id(self, task_id: str) -> Optional[Task]: ...
    async def insert(self, task: Task) -> Task: ...
    async def replace(self, task: Task) -> Optional[Task]: ...
    async def update_fields(self, task_id: str, values: Dict[str, Any]) -> bool: ...
    async def delete(self, task_id: str) -> bool: ...
    async def update_many(self, where: Filter, values: Dict[str, Any]) -> int: ...


class UserRepo(Protocol):
    async def find(
        self,
        where: Optional[Filter] = None,
        *,
        sort: Optional[List[SortKey]] = None,
        projection: Optional[Projection] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]: ...

    async def count(self, where: Optional[Filter] = None) -> int: ...
    async def get_by_id(self, user_id: str) -> Optional[User]: ...
    async def insert(self, user: User) -> User: ...
    async def replace(self, user: User) -> Optional[User]: ...
    async def update_fields(self, user_id: str, values: Dict[str, Any]) -> bool: ...
    async def delete(self, user_id: str) -> bool: ...
