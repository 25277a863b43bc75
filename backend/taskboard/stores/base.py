import contextlib
import logging
import operator
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, FrozenSet, List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import and_, delete, func, inspect, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskboard.core.errors import Conflict, StoreFault, ValidationFailure
from taskboard.core.query import LIST_OPERATORS, AllOf, AnyOf, Filter, Projection, SortKey
from taskboard.core.references import is_valid_reference, new_reference

logger = logging.getLogger(__name__)

_COMPARATORS = {
    "$eq": operator.eq,
    "$ne": operator.ne,
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
}


class SqlStore:
    """
    Single-table store over an async SQLAlchemy session factory.

    Every public method opens its own short-lived session and commits it, so a
    single call is atomic and nothing spans two calls. Records handed out are
    detached; callers mutate them and pass them back to `replace`.
    """

    model: Any = None
    entity_name = "record"
    conflict_message = "Record already exists"
    # public field name -> (model attribute, type used to coerce filter values)
    fields: Dict[str, Tuple[str, Any]] = {}
    unfilterable: FrozenSet[str] = frozenset()

    def __init__(self, sessions: async_sessionmaker, *, default_limit: Optional[int] = None) -> None:
        self._sessions = sessions
        self._default_limit = default_limit
        self._adapters = {name: TypeAdapter(tp) for name, (_, tp) in self.fields.items()}
        self._attrs = [attr.key for attr in inspect(self.model).column_attrs]

    @property
    def field_names(self) -> List[str]:
        return list(self.fields)

    # ---- hooks ----

    def to_document(self, record: Any) -> Dict[str, Any]:
        raise NotImplementedError

    def _prepare(self, record: Any) -> None:
        """Normalize a record right before it is written."""

    # ---- low-level helpers ----

    @contextlib.asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                yield session
        except IntegrityError as exc:
            logger.info("%s write rejected by a unique constraint: %s", self.entity_name, exc.orig)
            raise Conflict(self.conflict_message) from exc
        except SQLAlchemyError as exc:
            logger.exception("%s store operation failed", self.entity_name)
            raise StoreFault("Internal server error") from exc

    def _column(self, field: str) -> Any:
        if field in self.unfilterable:
            raise ValidationFailure(f"Field {field} cannot be used in a query")
        return getattr(self.model, self.fields[field][0])

    def _coerce(self, field: str, value: Any) -> Any:
        try:
            return self._adapters[field].validate_python(value)
        except ValidationError:
            raise ValidationFailure(f"Invalid value for {field}") from None

    def _compile(self, node: Filter) -> Any:
        if isinstance(node, AllOf):
            return and_(*[self._compile(item) for item in node.items])
        if isinstance(node, AnyOf):
            return or_(*[self._compile(item) for item in node.items])

        column = self._column(node.field)
        if node.op in LIST_OPERATORS:
            values = [self._coerce(node.field, v) for v in node.value]
            return column.in_(values) if node.op == "$in" else column.not_in(values)
        return _COMPARATORS[node.op](column, self._coerce(node.field, node.value))

    # ---- public API ----

    async def find(
        self,
        where: Optional[Filter] = None,
        *,
        sort: Optional[List[SortKey]] = None,
        projection: Optional[Projection] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(self.model)
        if where is not None:
            stmt = stmt.where(self._compile(where))
        if sort:
            order = []
            for key in sort:
                column = self._column(key.field)
                order.append(column.desc() if key.descending else column.asc())
            stmt = stmt.order_by(*order)
        else:
            stmt = stmt.order_by(self.model.date_created, self.model.id)
        if skip:
            stmt = stmt.offset(skip)
        limit = limit or self._default_limit
        if limit:
            stmt = stmt.limit(limit)

        async with self._session() as session:
            result = await session.execute(stmt)
            records = result.scalars().all()

        docs = [self.to_document(r) for r in records]
        if projection is not None:
            docs = [projection.apply(d) for d in docs]
        return docs

    async def count(self, where: Optional[Filter] = None) -> int:
        stmt = select(func.count()).select_from(self.model)
        if where is not None:
            stmt = stmt.where(self._compile(where))
        async with self._session() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def get_by_id(self, record_id: str) -> Optional[Any]:
        if not is_valid_reference(record_id):
            return None
        async with self._session() as session:
            return await session.get(self.model, record_id)

    async def insert(self, record: Any) -> Any:
        record.id = new_reference()
        if record.date_created is None:
            record.date_created = datetime.now(timezone.utc)
        self._prepare(record)
        async with self._session() as session:
            session.add(record)
            await session.commit()
        logger.debug("%s inserted id=%s", self.entity_name, record.id)
        return record

    async def replace(self, record: Any) -> Optional[Any]:
        """Overwrite every column of the stored row; None if the row is gone."""
        self._prepare(record)
        values = {attr: getattr(record, attr) for attr in self._attrs if attr != "id"}
        stmt = (
            update(self.model)
            .where(self.model.id == record.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            await session.commit()
        if result.rowcount == 0:
            return None
        return record

    async def update_fields(self, record_id: str, values: Dict[str, Any]) -> bool:
        """
        Write only `values` (model attribute -> value) on one row.

        Columns not named are left as stored, so concurrent writers touching
        other columns of the same row are not overwritten. False if the row is gone.
        """
        if not is_valid_reference(record_id):
            return False
        stmt = (
            update(self.model)
            .where(self.model.id == record_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount > 0

    async def delete(self, record_id: str) -> bool:
        if not is_valid_reference(record_id):
            return False
        stmt = delete(self.model).where(self.model.id == record_id)
        async with self._session() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount > 0
