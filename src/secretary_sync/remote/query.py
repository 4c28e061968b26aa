# src/secretary_sync/remote/query.py

"""
Query model shared by remote stores and the coordinator's offline fallback.

A query is an equality/range filter list, one ordering field, a direction,
an opaque `start_after` cursor and an optional limit. Ordering is always
tie-broken by document key so cursors are stable.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Literal

from ..core.errors import ValidationError

KEY_FIELD = "__key__"
MAX_BATCH_SIZE = 500

Direction = Literal["asc", "desc"]

_OPS = {"==", "!=", "<", "<=", ">", ">="}


@dataclass(frozen=True, slots=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPS:
            raise ValidationError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True, slots=True)
class Query:
    where: tuple[Filter, ...] = ()
    order_by: str = KEY_FIELD
    direction: Direction = "asc"
    start_after: str | None = None
    limit: int | None = None


@dataclass(frozen=True, slots=True)
class Document:
    key: str
    data: dict[str, Any]


@dataclass(slots=True)
class QueryPage:
    docs: list[Document] = field(default_factory=list)
    cursor: str | None = None


@dataclass(frozen=True, slots=True)
class WriteOp:
    """One operation of a batched write. `kind` is "set", "update" or "delete"."""

    kind: str
    path: str
    data: dict[str, Any] | None = None


def field_value(doc: Document, name: str) -> Any:
    if name == KEY_FIELD:
        return doc.key
    return doc.data.get(name)


def _sort_value(value: Any) -> tuple[int, Any]:
    # None sorts first; bools/numbers/strings never share a field in our documents.
    if value is None:
        return (0, "")
    if isinstance(value, bool):
        return (1, int(value))
    return (1, value)


def _sort_key(doc: Document, order_by: str) -> tuple[tuple[int, Any], str]:
    return (_sort_value(field_value(doc, order_by)), doc.key)


def encode_cursor(doc: Document, order_by: str) -> str:
    payload = json.dumps([field_value(doc, order_by), doc.key], ensure_ascii=False)
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> tuple[Any, str]:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii"))
        value, key = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError, TypeError) as e:
        raise ValidationError(f"Malformed cursor: {cursor!r}") from e
    return value, str(key)


def _matches(doc: Document, flt: Filter) -> bool:
    actual = field_value(doc, flt.field)
    if flt.op == "==":
        return actual == flt.value
    if flt.op == "!=":
        return actual != flt.value
    if actual is None:
        return False
    try:
        if flt.op == "<":
            return actual < flt.value
        if flt.op == "<=":
            return actual <= flt.value
        if flt.op == ">":
            return actual > flt.value
        return actual >= flt.value
    except TypeError:
        return False


def apply_query(docs: Iterable[Document], query: Query) -> QueryPage:
    """Filter, order, seek past the cursor and truncate, entirely in memory."""
    selected = [d for d in docs if all(_matches(d, f) for f in query.where)]
    reverse = query.direction == "desc"
    selected.sort(key=lambda d: _sort_key(d, query.order_by), reverse=reverse)

    if query.start_after:
        value, key = decode_cursor(query.start_after)
        anchor = (_sort_value(value), key)
        if reverse:
            selected = [d for d in selected if _sort_key(d, query.order_by) < anchor]
        else:
            selected = [d for d in selected if _sort_key(d, query.order_by) > anchor]

    if query.limit is not None:
        selected = selected[: max(0, int(query.limit))]

    cursor = encode_cursor(selected[-1], query.order_by) if selected else None
    return QueryPage(docs=selected, cursor=cursor)
