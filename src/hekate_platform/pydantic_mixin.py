"""
Pydantic-style mixin for SQLAlchemy models.

Adds ``model_dump`` to SQLAlchemy ORM models so rows can be returned from
handlers and compared in tests the same way as the pydantic request/
response schemas.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic.alias_generators import to_camel
from sqlalchemy import inspect as sa_inspect


class PydanticMixin:
    """
    Mixin that adds Pydantic-like methods to SQLAlchemy models.

    Usage:
        class Base(DeclarativeBase, PydanticMixin):
            pass

        class User(Base):
            __tablename__ = "users"
            id: Mapped[str] = mapped_column(String, primary_key=True)
            display_name: Mapped[str] = mapped_column(String)

        user = User(id="1", display_name="Ana")
        user.model_dump()  # {'id': '1', 'display_name': 'Ana'}
        user.model_dump(mode="json", by_alias=True)  # {'id': '1', 'displayName': 'Ana'}
    """

    def model_dump(
        self,
        *,
        mode: str = "python",
        include: set[str] | None = None,
        exclude: set[str] | None = None,
        exclude_none: bool = False,
        by_alias: bool = False,
    ) -> dict[str, Any]:
        """
        Serialize the model to a dictionary (Pydantic-compatible interface).

        Args:
            mode: Serialization mode ('python' or 'json')
            include: Column keys to include
            exclude: Column keys to exclude
            exclude_none: Exclude columns with None values
            by_alias: Emit camelCase keys instead of column keys

        Returns:
            Dictionary representation of the row
        """
        inspector = sa_inspect(self.__class__)
        result = {}

        for column in inspector.columns:
            col_name = column.key

            if include and col_name not in include:
                continue
            if exclude and col_name in exclude:
                continue

            value = getattr(self, col_name, None)
            if exclude_none and value is None:
                continue

            if mode == "json":
                value = _serialize_for_json(value)

            key = to_camel(col_name.rstrip("_")) if by_alias else col_name
            result[key] = value

        return result


def _serialize_for_json(value: Any) -> Any:
    """Serialize Python value to JSON-compatible type."""
    if value is None:
        return None
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, (str, int, float, bool)):
        return value
    elif isinstance(value, datetime):
        # SQLite hands back naive values; everything is stored as UTC
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    elif isinstance(value, date):
        return value.isoformat()
    elif isinstance(value, UUID):
        return str(value)
    elif isinstance(value, Decimal):
        return float(value)
    elif isinstance(value, dict):
        return {k: _serialize_for_json(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple, set)):
        return [_serialize_for_json(item) for item in value]
    elif isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    else:
        return str(value)
