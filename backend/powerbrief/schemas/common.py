from __future__ import annotations

from typing import Any, Iterable

from fastapi.encoders import jsonable_encoder


def serialize_row(obj: Any, *, exclude: Iterable[str] = ()) -> dict[str, Any]:
    """Column values of an ORM row; attribute access reloads rows expired by a commit."""
    skipped = set(exclude)
    data = {
        column.key: getattr(obj, column.key)
        for column in obj.__table__.columns
        if column.key not in skipped
    }
    return jsonable_encoder(data)


def serialize_rows(rows: Iterable[Any], *, exclude: Iterable[str] = ()) -> list[dict[str, Any]]:
    skipped = tuple(exclude)
    return [serialize_row(row, exclude=skipped) for row in rows]
