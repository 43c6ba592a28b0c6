from typing import Any

from sqlalchemy.orm import DeclarativeBase


def model_to_dict(model: DeclarativeBase, include_defaults: bool = False) -> dict[str, Any]:
    """
    Converts a SQLAlchemy model to a dictionary.  Unless include_defaults is set, columns that are unset on the
    model and are generated by the database (surrogate keys, server defaults) are omitted so the database can
    fill them on insert.
    """
    values = {}
    for column in model.__table__.columns:  # type: ignore[attr-defined]
        value = getattr(model, column.key)
        if value is None and not include_defaults:
            if column.server_default is not None or (column.primary_key and column.autoincrement is True):
                continue
        values[column.name] = value
    return values
