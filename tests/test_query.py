# tests/test_query.py

from __future__ import annotations

import pytest

from taskboard.core.errors import ValidationFailure
from taskboard.core.query import (
    AllOf,
    AnyOf,
    Condition,
    Projection,
    SortKey,
    parse_list_query,
    parse_select,
)

FIELDS = ["id", "name", "completed", "deadline", "assignedUser"]


def test_empty_query_uses_defaults() -> None:
    query = parse_list_query(fields=FIELDS)

    assert query.where is None
    assert query.sort == []
    assert query.projection is None
    assert query.skip == 0
    assert query.limit is None
    assert query.count is False


def test_where_with_operators_and_alias() -> None:
    query = parse_list_query(
        fields=FIELDS,
        where='{"_id": {"$in": ["a", "b"]}, "completed": false, "deadline": {"$lt": "2025-01-01"}}',
    )

    assert query.where == AllOf(
        (
            Condition("id", "$in", ["a", "b"]),
            Condition("completed", "$eq", False),
            Condition("deadline", "$lt", "2025-01-01"),
        )
    )


def test_where_with_or() -> None:
    query = parse_list_query(
        fields=FIELDS, where='{"$or": [{"assignedUser": ""}, {"name": "x"}]}'
    )
    assert query.where == AnyOf(
        (Condition("assignedUser", "$eq", ""), Condition("name", "$eq", "x"))
    )


def test_sort_skip_limit_count() -> None:
    query = parse_list_query(
        fields=FIELDS, sort='{"name": 1, "deadline": -1}', skip="5", limit="10", count="true"
    )

    assert query.sort == [SortKey("name"), SortKey("deadline", descending=True)]
    assert query.skip == 5
    assert query.limit == 10
    assert query.count is True


def test_zero_limit_falls_back_to_default() -> None:
    assert parse_list_query(fields=FIELDS, limit="0").limit is None


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"where": "{not json"}, "Invalid JSON in 'where' parameter"),
        ({"sort": "[1"}, "Invalid JSON in 'sort' parameter"),
        ({"where": '{"colour": "red"}'}, "Unknown field: colour"),
        ({"where": '{"name": {"$regex": "a"}}'}, "Unsupported operator: $regex"),
        ({"where": '{"$where": "1"}'}, "Unsupported operator: $where"),
        ({"where": '{"name": {"$in": "a"}}'}, "$in expects a list"),
        ({"sort": '{"name": 2}'}, "Invalid sort direction for name"),
        ({"select": '{"name": 1, "completed": 0}'}, "Cannot mix inclusion and exclusion in select"),
        ({"skip": "two"}, "'skip' must be an integer"),
        ({"limit": "-1"}, "'limit' must be non-negative"),
    ],
)
def test_malformed_queries(kwargs, message) -> None:
    with pytest.raises(ValidationFailure) as err:
        parse_list_query(fields=FIELDS, **kwargs)
    assert err.value.message == message


def test_inclusion_projection_keeps_id() -> None:
    projection = parse_select('{"name": 1}', FIELDS)
    doc = {"id": "i", "name": "n", "completed": False}

    assert projection == Projection(frozenset({"name"}), include=True)
    assert projection.apply(doc) == {"id": "i", "name": "n"}


def test_inclusion_projection_can_drop_id() -> None:
    projection = parse_select('{"name": 1, "_id": 0}', FIELDS)
    assert projection.apply({"id": "i", "name": "n", "completed": False}) == {"name": "n"}


def test_exclusion_projection() -> None:
    projection = parse_select('{"completed": 0}', FIELDS)
    assert projection.apply({"id": "i", "name": "n", "completed": False}) == {"id": "i", "name": "n"}


def test_id_only_projections() -> None:
    doc = {"id": "i", "name": "n"}
    assert parse_select('{"_id": 0}', FIELDS).apply(doc) == {"name": "n"}
    assert parse_select('{"_id": 1}', FIELDS).apply(doc) == {"id": "i"}
