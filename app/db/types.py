"""Portable Column Types — PostgreSQL arrays that degrade to JSON on other dialects.

Invariants:
    - On PostgreSQL, StringArray/IntegerArray are native text[]/integer[] (GIN-indexable, && / @>)
    - Elsewhere (SQLite in tests) they are JSON lists with the same Python shape
    - Array predicates go through array_contains_all / array_overlaps, never raw operators

Design Decisions:
    - with_variant over a custom TypeDecorator: no bind/result processing to maintain
      (ADR: test suite runs on aiosqlite, production on asyncpg)
    - JSON fallback predicates use LIKE on the serialized list: adequate for the
      short tag/event lists stored here
"""

import json
from typing import Any, Sequence

from sqlalchemy import JSON, Boolean, Integer, String, and_, cast, or_
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

StringArray = JSON().with_variant(postgresql.ARRAY(String), "postgresql")
IntegerArray = JSON().with_variant(postgresql.ARRAY(Integer), "postgresql")


def dialect_name(db: AsyncSession) -> str:
    return db.get_bind().dialect.name


def _pg_array(values: Sequence[Any]):
    element = Integer if values and isinstance(values[0], int) else String
    return cast(list(values), postgresql.ARRAY(element))


def _json_member(column, value: Any) -> ColumnElement[bool]:
    text_col = cast(column, String)
    if isinstance(value, int):
        return or_(
            text_col == f"[{value}]",
            text_col.like(f"[{value},%"),
            text_col.like(f"%, {value},%"),
            text_col.like(f"%, {value}]"),
        )
    return text_col.like(f"%{json.dumps(value)}%")


def array_contains_all(column, values: Sequence[Any], dialect: str) -> ColumnElement[bool]:
    """column @> values"""
    if dialect == "postgresql":
        return column.op("@>", return_type=Boolean)(_pg_array(values))
    return and_(*[_json_member(column, v) for v in values])


def array_overlaps(column, values: Sequence[Any], dialect: str) -> ColumnElement[bool]:
    """column && values"""
    if dialect == "postgresql":
        return column.op("&&", return_type=Boolean)(_pg_array(values))
    return or_(*[_json_member(column, v) for v in values])
