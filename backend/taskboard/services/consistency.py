"""
Consistency engine for the task <-> user assignment relation.

`Task.assigned_user` and `User.pending_tasks` are two views of one relation.
This module is the only code path that writes either side. Every mutation:

1. validates its input and every reference it will follow (no writes yet),
2. writes the primary record,
3. repairs the other side one record at a time.

There are no multi-record transactions. If a repair write fails after the
primary write committed, the error surfaces as a StoreFault and the two
collections stay out of step until the next mutation touching the same records
re-derives them. Repairs never roll back the primary write.

Invariants restored after each successful call:
- an assigned, unfinished task is in its user's pending set;
- a finished or unassigned task is in no pending set;
- every pending id points to an existing unfinished task assigned to that user;
- `assigned_user_name` mirrors the assignee's name, or "unassigned";
- pending sets hold no duplicates.
"""

import asyncio
import functools
import logging
from typing import Optional

from taskboard.core.errors import NotFound, StoreFault, ValidationFailure
from taskboard.core.query import Condition, Projection
from taskboard.core.references import is_valid_reference
from taskboard.models.task import UNASSIGNED_NAME, Task
from taskboard.models.user import User
from taskboard.schemas.task import TaskIn
from taskboard.schemas.user import UserIn
from taskboard.stores.ports import TaskRepo, UserRepo
from taskboard.stores.users import unique_ids

logger = logging.getLogger(__name__)

TASK_NOT_FOUND = "Task not found"
USER_NOT_FOUND = "User not found"


def _log_detached_outcome(task: "asyncio.Future") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Mutation failed after its caller went away", exc_info=exc)


def run_to_completion(fn):
    """
    Run a mutation in its own asyncio task, shielded from the caller.

    If the awaiting request is cancelled the writes already started keep going;
    only a store failure can leave a mutation half applied.
    """

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        task = asyncio.ensure_future(fn(*args, **kwargs))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(_log_detached_outcome)
            raise

    return wrapper


class ConsistencyEngine:
    def __init__(self, tasks: TaskRepo, users: UserRepo) -> None:
        self._tasks = tasks
        self._users = users

    # ---- validation ----

    @staticmethod
    def _require_task_fields(payload: TaskIn) -> None:
        if not payload.name or payload.deadline is None:
            raise ValidationFailure("Name and deadline are required")

    @staticmethod
    def _require_user_fields(payload: UserIn) -> None:
        if not payload.name or not payload.email:
            raise ValidationFailure("Name and email are required")

    async def _resolve_assignee(
        self, assigned_user: Optional[str], claimed_name: Optional[str]
    ) -> Optional[User]:
        """Return the user a task payload points at, or None when unassigned."""
        if not assigned_user:
            return None
        if not is_valid_reference(assigned_user):
            raise ValidationFailure("Assigned user id is invalid")
        user = await self._users.get_by_id(assigned_user)
        if user is None:
            raise ValidationFailure("Assigned user does not exist")
        # The user record owns the name; a caller may only echo it back.
        if claimed_name and claimed_name != user.name:
            raise ValidationFailure("Assigned user name does not match user's actual name")
        return user

    async def _validate_pending(self, task_ids: list) -> None:
        if any(not is_valid_reference(tid) for tid in task_ids):
            raise ValidationFailure("One or more task IDs are invalid")
        if not task_ids:
            return
        docs = await self._tasks.find(
            Condition("id", "$in", list(task_ids)),
            projection=Projection(frozenset({"completed"}), include=True),
            limit=len(task_ids),
        )
        if len(docs) != len(task_ids):
            raise ValidationFailure("One or more task IDs do not exist")
        if any(doc["completed"] for doc in docs):
            raise ValidationFailure("Cannot modify completed tasks")

    # ---- pending-set repairs ----

    async def _add_pending(self, user_id: str, task_id: str) -> None:
        user = await self._users.get_by_id(user_id)
        if user is None:
            logger.warning("User %s is gone; task %s not added to its pending set", user_id, task_id)
            return
        if task_id in user.pending_tasks:
            return
        pending = [*user.pending_tasks, task_id]
        if not await self._users.update_fields(user_id, {"pending_tasks": pending}):
            logger.warning("User %s deleted while adding pending task %s", user_id, task_id)
            return
        logger.debug("Task %s added to pending set of user %s", task_id, user_id)

    async def _remove_pending(self, user_id: str, task_id: str) -> None:
        user = await self._users.get_by_id(user_id)
        if user is None or task_id not in user.pending_tasks:
            return
        remaining = [tid for tid in user.pending_tasks if tid != task_id]
        await self._users.update_fields(user_id, {"pending_tasks": remaining})
        logger.debug("Task %s removed from pending set of user %s", task_id, user_id)

    async def _release_task(self, task_id: str, user_id: str) -> None:
        """Unassign a task, but only if it still belongs to `user_id`."""
        task = await self._tasks.get_by_id(task_id)
        if task is None or task.assigned_user != user_id:
            return
        await self._tasks.update_fields(
            task_id, {"assigned_user": "", "assigned_user_name": UNASSIGNED_NAME}
        )
        logger.debug("Task %s released from user %s", task_id, user_id)

    async def _claim_task(self, task_id: str, user: User) -> None:
        """Assign a task to `user`, taking it out of its previous holder's pending set first."""
        task = await self._tasks.get_by_id(task_id)
        if task is None:
            logger.warning("Task %s vanished before it could be assigned to user %s", task_id, user.id)
            return
        previous = task.assigned_user
        if previous and previous != user.id:
            await self._remove_pending(previous, task_id)
        await self._tasks.update_fields(
            task_id, {"assigned_user": user.id, "assigned_user_name": user.name}
        )
        logger.debug("Task %s claimed by user %s (was %s)", task_id, user.id, previous or "-")

    async def _reconcile_task(self, task: Task, old_user: str, old_completed: bool) -> None:
        new_user = task.assigned_user
        if old_user != new_user:
            if old_user:
                await self._remove_pending(old_user, task.id)
            if new_user and not task.completed:
                await self._add_pending(new_user, task.id)
        elif new_user:
            if task.completed:
                await self._remove_pending(new_user, task.id)
            else:
                await self._add_pending(new_user, task.id)
        logger.debug(
            "Task %s reconciled user %s->%s completed %s->%s",
            task.id,
            old_user or "-",
            new_user or "-",
            old_completed,
            task.completed,
        )

    # ---- task mutations ----

    @run_to_completion
    async def create_task(self, payload: TaskIn) -> Task:
        self._require_task_fields(payload)
        assignee = await self._resolve_assignee(payload.assigned_user, payload.assigned_user_name)

        task = Task(
            name=payload.name,
            description=payload.description or "",
            deadline=payload.deadline,
            completed=bool(payload.completed),
            assigned_user=assignee.id if assignee else "",
            assigned_user_name=assignee.name if assignee else UNASSIGNED_NAME,
        )
        task = await self._tasks.insert(task)
        logger.info("Task %s created assigned_user=%s", task.id, task.assigned_user or "-")

        if assignee is not None and not task.completed:
            await self._add_pending(assignee.id, task.id)
        return task

    @run_to_completion
    async def replace_task(self, task_id: str, payload: TaskIn) -> Task:
        self._require_task_fields(payload)
        task = await self._tasks.get_by_id(task_id)
        if task is None:
            raise NotFound(TASK_NOT_FOUND)
        assignee = await self._resolve_assignee(payload.assigned_user, payload.assigned_user_name)

        old_user, old_completed = task.assigned_user, task.completed
        task.name = payload.name
        task.description = payload.description or ""
        task.deadline = payload.deadline
        task.completed = bool(payload.completed)
        task.assigned_user = assignee.id if assignee else ""
        task.assigned_user_name = assignee.name if assignee else UNASSIGNED_NAME

        if await self._tasks.replace(task) is None:
            raise NotFound(TASK_NOT_FOUND)
        logger.info("Task %s replaced", task.id)

        await self._reconcile_task(task, old_user, old_completed)
        return task

    @run_to_completion
    async def delete_task(self, task_id: str) -> None:
        task = await self._tasks.get_by_id(task_id)
        if task is None or not await self._tasks.delete(task_id):
            raise NotFound(TASK_NOT_FOUND)
        logger.info("Task %s deleted", task_id)

        if task.assigned_user:
            await self._remove_pending(task.assigned_user, task.id)

    # ---- user mutations ----

    @run_to_completion
    async def create_user(self, payload: UserIn) -> User:
        self._require_user_fields(payload)
        if payload.pending_tasks_provided:
            raise ValidationFailure("Users cannot be created with pending tasks")

        user = await self._users.insert(User(name=payload.name, email=payload.email, pending_tasks=[]))
        logger.info("User %s created", user.id)
        return user

    @run_to_completion
    async def replace_user(self, user_id: str, payload: UserIn) -> User:
        self._require_user_fields(payload)
        user = await self._users.get_by_id(user_id)
        if user is None:
            raise NotFound(USER_NOT_FOUND)

        new_pending = None
        if payload.pending_tasks_provided:
            new_pending = unique_ids(payload.pending_tasks or [])
            await self._validate_pending(new_pending)

        old_pending = list(user.pending_tasks)
        name_changed = user.name != payload.name
        user.name = payload.name
        user.email = payload.email
        # pending_tasks is written only when the caller sent it.
        values = {"name": user.name, "email": user.email}
        if new_pending is not None:
            values["pending_tasks"] = new_pending

        if not await self._users.update_fields(user.id, values):
            raise NotFound(USER_NOT_FOUND)
        logger.info("User %s replaced name_changed=%s", user.id, name_changed)

        # Repairs run one at a time: several of them may touch the same record.
        if name_changed:
            await self._tasks.update_many(
                Condition("assignedUser", "$eq", user.id),
                {"assigned_user_name": user.name},
            )

        if new_pending is not None:
            kept, previous = set(new_pending), set(old_pending)
            for task_id in old_pending:
                if task_id not in kept:
                    await self._release_task(task_id, user.id)
            for task_id in new_pending:
                if task_id not in previous:
                    await self._claim_task(task_id, user)

        stored = await self._users.get_by_id(user.id)
        if stored is None:
            raise NotFound(USER_NOT_FOUND)
        return stored

    @run_to_completion
    async def delete_user(self, user_id: str) -> None:
        user = await self._users.get_by_id(user_id)
        if user is None or not await self._users.delete(user_id):
            raise NotFound(USER_NOT_FOUND)
        logger.info("User %s deleted, releasing %d pending tasks", user_id, len(user.pending_tasks))

        # The user is already gone: clean up as much as possible, never abort.
        for task_id in user.pending_tasks:
            try:
                await self._release_task(task_id, user.id)
            except StoreFault:
                logger.exception("Could not release task %s of deleted user %s", task_id, user_id)

        # Finished tasks are in no pending set but may still name the user.
        try:
            swept = await self._tasks.update_many(
                Condition("assignedUser", "$eq", user.id),
                {"assigned_user": "", "assigned_user_name": UNASSIGNED_NAME},
            )
        except StoreFault:
            logger.exception("Could not sweep remaining tasks of deleted user %s", user_id)
        else:
            if swept:
                logger.info("Unassigned %d more tasks of deleted user %s", swept, user_id)
