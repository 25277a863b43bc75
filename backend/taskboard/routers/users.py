from typing import Optional

from fastapi import APIRouter, Depends

from taskboard.core.deps import get_engine, get_user_store
from taskboard.core.errors import NotFound
from taskboard.core.query import parse_list_query, parse_select
from taskboard.core.responses import created, no_content, ok
from taskboard.schemas.user import UserIn, user_document
from taskboard.services.consistency import USER_NOT_FOUND, ConsistencyEngine
from taskboard.stores.users import UserStore

router = APIRouter(
    prefix="/api/users",
    tags=["users"],
    responses={404: {"description": "Not found"}},
)


@router.get("")
async def list_users(
    where: Optional[str] = None,
    sort: Optional[str] = None,
    select: Optional[str] = None,
    skip: Optional[str] = None,
    limit: Optional[str] = None,
    count: Optional[str] = None,
    store: UserStore = Depends(get_user_store),
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
    users = await store.find(
        query.where,
        sort=query.sort,
        projection=query.projection,
        skip=query.skip,
        limit=query.limit,
    )
    return ok(users)


@router.post("")
async def create_user(
    payload: Optional[UserIn] = None,
    engine: ConsistencyEngine = Depends(get_engine),
):
    user = await engine.create_user(payload or UserIn())
    return created(user_document(user))


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    select: Optional[str] = None,
    store: UserStore = Depends(get_user_store),
):
    projection = parse_select(select, store.field_names)
    user = await store.get_by_id(user_id)
    if user is None:
        raise NotFound(USER_NOT_FOUND)
    doc = user_document(user)
    return ok(projection.apply(doc) if projection else doc)


@router.put("/{user_id}")
async def replace_user(
    user_id: str,
    payload: Optional[UserIn] = None,
    engine: ConsistencyEngine = Depends(get_engine),
):
    user = await engine.replace_user(user_id, payload or UserIn())
    return ok(user_document(user))


@router.delete("/{user_id}")
async def delete_user(user_id: str, engine: ConsistencyEngine = Depends(get_engine)):
    await engine.delete_user(user_id)
    return no_content()
