# tests/test_stores.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from taskboard.core.errors import Conflict, ValidationFailure
from taskboard.core.query import AllOf, Condition, Projection, SortKey
from taskboard.core.references import new_reference
from taskboard.models.task import Task
from taskboard.models.user import User
from taskboard.stores.tasks import TaskStore


def _task(name: str, **fields) -> Task:
    fields.setdefault("deadline", datetime(2025, 1, 1))
    fields.setdefault("assigned_user", "")
    fields.setdefault("assigned_user_name", "unassigned")
    return Task(name=name, description="", completed=fields.pop("completed", False), **fields)


@pytest.mark.asyncio
async def test_insert_assigns_reference_and_created_date(task_store) -> None:
    task = await task_store.insert(_task("a"))

    assert len(task.id) == 32
    assert task.date_created is not None
    stored = await task_store.get_by_id(task.id)
    assert stored.name == "a"


@pytest.mark.asyncio
async def test_find_defaults_to_insertion_order(task_store) -> None:
    for name in ("c", "a", "b"):
        await task_store.insert(_task(name))

    docs = await task_store.find()

    assert [d["name"] for d in docs] == ["c", "a", "b"]
    assert set(docs[0]) == {
        "id",
        "name",
        "description",
        "deadline",
        "completed",
        "assignedUser",
        "assignedUserName",
        "dateCreated",
    }


@pytest.mark.asyncio
async def test_find_filter_sort_skip_limit(task_store) -> None:
    await task_store.insert(_task("a", deadline=datetime(2024, 1, 1)))
    await task_store.insert(_task("b", deadline=datetime(2024, 6, 1), completed=True))
    await task_store.insert(_task("c", deadline=datetime(2025, 6, 1)))
    await task_store.insert(_task("d", deadline=datetime(2026, 1, 1)))

    early = await task_store.find(Condition("deadline", "$lt", "2025-01-01"))
    assert [d["name"] for d in early] == ["a", "b"]

    open_desc = await task_store.find(
        AllOf((Condition("completed", "$eq", False), Condition("name", "$ne", "d"))),
        sort=[SortKey("name", descending=True)],
    )
    assert [d["name"] for d in open_desc] == ["c", "a"]

    page = await task_store.find(sort=[SortKey("name")], skip=1, limit=2)
    assert [d["name"] for d in page] == ["b", "c"]

    assert await task_store.count(Condition("completed", "$eq", True)) == 1
    assert await task_store.count() == 4


@pytest.mark.asyncio
async def test_default_limit_applies(sessions) -> None:
    store = TaskStore(sessions, default_limit=2)
    for name in ("a", "b", "c"):
        await store.insert(_task(name))

    assert len(await store.find()) == 2
    assert len(await store.find(limit=3)) == 3


@pytest.mark.asyncio
async def test_find_with_projection(task_store) -> None:
    await task_store.insert(_task("a"))

    docs = await task_store.find(projection=Projection(frozenset({"name"}), include=True))

    assert list(docs[0]) == ["id", "name"]


@pytest.mark.asyncio
async def test_bad_filter_value_is_a_validation_failure(task_store) -> None:
    with pytest.raises(ValidationFailure, match="Invalid value for deadline"):
        await task_store.find(Condition("deadline", "$lt", "not a date"))


@pytest.mark.asyncio
async def test_pending_tasks_cannot_be_queried(user_store) -> None:
    with pytest.raises(ValidationFailure):
        await user_store.find(Condition("pendingTasks", "$eq", []))


@pytest.mark.asyncio
async def test_replace_and_delete(task_store) -> None:
    task = await task_store.insert(_task("a"))

    task.name = "renamed"
    assert await task_store.replace(task) is task
    assert (await task_store.get_by_id(task.id)).name == "renamed"

    assert await task_store.delete(task.id) is True
    assert await task_store.delete(task.id) is False
    assert await task_store.replace(task) is None


@pytest.mark.asyncio
async def test_malformed_ids_are_simply_absent(task_store) -> None:
    assert await task_store.get_by_id("xyz") is None
    assert await task_store.get_by_id(new_reference()) is None
    assert await task_store.delete("xyz") is False


@pytest.mark.asyncio
async def test_update_many(task_store) -> None:
    owner = new_reference()
    mine = await task_store.insert(_task("mine", assigned_user=owner, assigned_user_name="Ann"))
    other = await task_store.insert(_task("other"))

    changed = await task_store.update_many(
        Condition("assignedUser", "$eq", owner), {"assigned_user_name": "Annie"}
    )

    assert changed == 1
    assert (await task_store.get_by_id(mine.id)).assigned_user_name == "Annie"
    assert (await task_store.get_by_id(other.id)).assigned_user_name == "unassigned"


@pytest.mark.asyncio
async def test_duplicate_email_is_a_conflict(user_store) -> None:
    await user_store.insert(User(name="Ann", email="a@x.com", pending_tasks=[]))

    with pytest.raises(Conflict, match="Email already exists"):
        await user_store.insert(User(name="Bob", email="a@x.com", pending_tasks=[]))

    assert await user_store.count() == 1


@pytest.mark.asyncio
async def test_user_pending_tasks_are_deduplicated(user_store) -> None:
    a, b = new_reference(), new_reference()
    user = await user_store.insert(User(name="Ann", email="a@x.com", pending_tasks=[a, b, a]))

    assert (await user_store.get_by_id(user.id)).pending_tasks == [a, b]


@pytest.mark.asyncio
async def test_offset_deadlines_are_compared_as_instants(task_store) -> None:
    plus_five = timezone(timedelta(hours=5))
    task = await task_store.insert(_task("a", deadline=datetime(2025, 1, 1, 5, tzinfo=plus_five)))

    stored = await task_store.get_by_id(task.id)
    assert stored.deadline == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert stored.date_created.tzinfo is not None

    assert await task_store.count(Condition("deadline", "$lt", "2025-01-01T04:00:00+03:00")) == 1
    assert await task_store.count(Condition("deadline", "$lt", "2025-01-01T02:00:00+03:00")) == 0


@pytest.mark.asyncio
async def test_update_fields_leaves_other_columns_alone(user_store) -> None:
    pending = [new_reference()]
    user = await user_store.insert(User(name="Ann", email="a@x.com", pending_tasks=pending))

    assert await user_store.update_fields(user.id, {"name": "Annie"}) is True

    stored = await user_store.get_by_id(user.id)
    assert stored.name == "Annie"
    assert stored.pending_tasks == pending
    assert await user_store.update_fields(new_reference(), {"name": "x"}) is False
    assert await user_store.update_fields("bad", {"name": "x"}) is False
