"""
Query-string parsing for collection reads.

`where`, `sort` and `select` arrive as JSON text. They are turned into small
typed structures (a filter expression tree, a sort list and a projection)
that the stores compile to SQL without ever seeing raw client JSON.

Filter grammar (Mongo-like):

    {"completed": false, "deadline": {"$lt": "2025-01-01"}}
    {"$or": [{"assignedUser": ""}, {"name": {"$in": ["a", "b"]}}]}

`_id` is accepted as an alias of `id`.
"""

import json
from dataclasses import dataclass
from typing import Any, Collection, FrozenSet, List, Optional, Tuple, Union

from taskboard.core.errors import ValidationFailure

COMPARISON_OPERATORS = frozenset({"$eq", "$ne", "$gt", "$gte", "$lt", "$lte", "$in", "$nin"})
LIST_OPERATORS = frozenset({"$in", "$nin"})

_FIELD_ALIASES = {"_id": "id"}


@dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class AllOf:
    items: Tuple["Filter", ...]


@dataclass(frozen=True)
class AnyOf:
    items: Tuple["Filter", ...]


Filter = Union[Condition, AllOf, AnyOf]


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class Projection:
    """Inclusion ({field: 1}) or exclusion ({field: 0}) of document fields."""

    fields: FrozenSet[str]
    include: bool
    keep_id: bool = True

    def apply(self, doc: dict) -> dict:
        if self.include:
            keep = set(self.fields)
            if self.keep_id:
                keep.add("id")
            return {k: v for k, v in doc.items() if k in keep}
        return {k: v for k, v in doc.items() if k not in self.fields}


@dataclass(frozen=True)
class ListQuery:
    where: Optional[Filter]
    sort: List[SortKey]
    projection: Optional[Projection]
    skip: int
    limit: Optional[int]
    count: bool


def _field_name(raw: str, fields: Collection[str]) -> str:
    name = _FIELD_ALIASES.get(raw, raw)
    if name not in fields:
        raise ValidationFailure(f"Unknown field: {raw}")
    return name


def _load_json(raw: Optional[str], param: str) -> Any:
    if raw is None or raw.strip() == "":
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationFailure(f"Invalid JSON in '{param}' parameter") from None


def parse_filter(raw: Any, fields: Collection[str]) -> Optional[Filter]:
    """Build a filter tree from decoded JSON. An empty object means no filter."""
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationFailure("Filter must be a JSON object")

    items: List[Filter] = []
    for key, value in raw.items():
        if key in ("$and", "$or"):
            if not isinstance(value, list) or not value:
                raise ValidationFailure(f"{key} expects a non-empty list")
            children = []
            for sub in value:
                if not isinstance(sub, dict):
                    raise ValidationFailure(f"{key} expects a list of objects")
                child = parse_filter(sub, fields)
                if child is not None:
                    children.append(child)
            if children:
                items.append(AllOf(tuple(children)) if key == "$and" else AnyOf(tuple(children)))
            continue

        if key.startswith("$"):
            raise ValidationFailure(f"Unsupported operator: {key}")

        field = _field_name(key, fields)
        if isinstance(value, dict) and value and all(k.startswith("$") for k in value):
            for op, operand in value.items():
                if op not in COMPARISON_OPERATORS:
                    raise ValidationFailure(f"Unsupported operator: {op}")
                if op in LIST_OPERATORS and not isinstance(operand, list):
                    raise ValidationFailure(f"{op} expects a list")
                items.append(Condition(field, op, operand))
        else:
            items.append(Condition(field, "$eq", value))

    if not items:
        return None
    if len(items) == 1:
        return items[0]
    return AllOf(tuple(items))


def parse_sort(raw: Any, fields: Collection[str]) -> List[SortKey]:
    if raw is None:
        return []
    if not isinstance(raw, dict):
        raise ValidationFailure("Sort must be a JSON object")
    keys = []
    for key, direction in raw.items():
        field = _field_name(key, fields)
        if direction in (1, "1", "asc", "ascending"):
            keys.append(SortKey(field))
        elif direction in (-1, "-1", "desc", "descending"):
            keys.append(SortKey(field, descending=True))
        else:
            raise ValidationFailure(f"Invalid sort direction for {key}")
    return keys


def parse_projection(raw: Any, fields: Collection[str]) -> Optional[Projection]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationFailure("Select must be a JSON object")
    if not raw:
        return None

    flags = {}
    for key, flag in raw.items():
        if flag not in (0, 1) or isinstance(flag, float):
            raise ValidationFailure(f"Invalid select value for {key}")
        flags[_field_name(key, fields)] = bool(flag)

    keep_id = flags.pop("id", True)
    if not flags:
        # Only id was mentioned: {"_id": 0} excludes it, {"_id": 1} keeps only it.
        if keep_id:
            return Projection(frozenset(), include=True)
        return Projection(frozenset({"id"}), include=False)

    modes = set(flags.values())
    if len(modes) > 1:
        raise ValidationFailure("Cannot mix inclusion and exclusion in select")
    if modes == {True}:
        return Projection(frozenset(flags), include=True, keep_id=keep_id)
    excluded = set(flags)
    if not keep_id:
        excluded.add("id")
    return Projection(frozenset(excluded), include=False)


def _parse_non_negative(raw: Optional[str], param: str) -> Optional[int]:
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValidationFailure(f"'{param}' must be an integer") from None
    if value < 0:
        raise ValidationFailure(f"'{param}' must be non-negative")
    return value


def parse_list_query(
    *,
    fields: Collection[str],
    where: Optional[str] = None,
    sort: Optional[str] = None,
    select: Optional[str] = None,
    skip: Optional[str] = None,
    limit: Optional[str] = None,
    count: Optional[str] = None,
) -> ListQuery:
    """Parse the raw query-string values of a collection read."""
    return ListQuery(
        where=parse_filter(_load_json(where, "where"), fields),
        sort=parse_sort(_load_json(sort, "sort"), fields),
        projection=parse_projection(_load_json(select, "select"), fields),
        skip=_parse_non_negative(skip, "skip") or 0,
        # 0 means "use the collection default".
        limit=_parse_non_negative(limit, "limit") or None,
        count=(count or "").strip().lower() == "true",
    )


def parse_select(select: Optional[str], fields: Collection[str]) -> Optional[Projection]:
    return parse_projection(_load_json(select, "select"), fields)
