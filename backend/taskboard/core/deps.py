from fastapi import Request

from taskboard.services.consistency import ConsistencyEngine
from taskboard.stores.tasks import TaskStore
from taskboard.stores.users import UserStore


def get_engine(request: Request) -> ConsistencyEngine:
    return request.app.state.consistency


def get_task_store(request: Request) -> TaskStore:
    return request.app.state.task_store


def get_user_store(request: Request) -> UserStore:
    return request.app.state.user_store
