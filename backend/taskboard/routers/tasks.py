from typing import Optional

from fastapi import APIRouter, Depends

from taskboard.core.deps import get_engine, get_task_store
from taskboard.core.errors import NotFound
from taskboard.core.query import parse_list_query, parse_select
from taskboard.core.responses import created, no_content, ok
from taskboard.schemas.task import TaskIn, task_document
from taskboard.services.consistency import TASK_NOT_FOUND, ConsistencyEngine
from taskboard.stores.tasks import TaskStore

router = APIRouter(
    prefix="/api/tasks",
    tags=["tasks"],
    responses={404: {"description": "Not found"}},
)


@router.get("")
async def list_tasks(
    where: Optional[str] = None,
    sort: Optional[str] = None,
    select: Optional[str] = None,
    skip: Optional[str] = None,
    limit: Optional[str] = None,
    count: Optional[str] = None,
    store: TaskStore = Depends(get_task_store),
):
    query = parse_list_query(
        fields=store.field_names,
        where=where,
        sort=sort,
        select=select,
        skip=skip,
        limit=limit,
        count=count,
    )
    if query.count:
        return ok(await store.count(query.where))
    tasks = await store.find(
        query.where,
        sort=query.sort,
        projection=query.projection,
        skip=query.skip,
        limit=query.limit,
    )
    return ok(tasks)


@router.post("")
async def create_task(
    payload: Optional[TaskIn] = None,
    engine: ConsistencyEngine = Depends(get_engine),
):
    task = await engine.create_task(payload or TaskIn())
    return created(task_document(task))


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    select: Optional[str] = None,
    store: TaskStore = Depends(get_task_store),
):
    projection = parse_select(select, store.field_names)
    task = await store.get_by_id(task_id)
    if task is None:
        raise NotFound(TASK_NOT_FOUND)
    doc = task_document(task)
    return ok(projection.apply(doc) if projection else doc)


@router.put("/{task_id}")
async def replace_task(
    task_id: str,
    payload: Optional[TaskIn] = None,
    engine: ConsistencyEngine = Depends(get_engine),
):
    task = await engine.replace_task(task_id, payload or TaskIn())
    return ok(task_document(task))


@router.delete("/{task_id}")
async def delete_task(task_id: str, engine: ConsistencyEngine = Depends(get_engine)):
    await engine.delete_task(task_id)
    return no_content()
