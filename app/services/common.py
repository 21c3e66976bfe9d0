import uuid

from fastapi import HTTPException


def coerce_uuid(value):
    """Path and payload ids arrive as strings; a malformed one is a 400."""
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid identifier: {value}")


def apply_ordering(stmt, order_by: str, order_dir: str, allowed_columns: dict):
    column = allowed_columns.get(order_by)
    if column is None:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid order_by. Allowed: {', '.join(sorted(allowed_columns))}",
        )
    return stmt.order_by(column.desc() if order_dir == "desc" else column.asc())


def apply_pagination(stmt, limit: int, offset: int):
    return stmt.limit(limit).offset(offset)
