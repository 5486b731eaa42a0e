# Base class for calendar service database models
from sqlalchemy.orm import DeclarativeBase
from hekate_platform.pydantic_mixin import PydanticMixin


class Base(DeclarativeBase, PydanticMixin):
    """Base class for all calendar ORM models with Pydantic-style serialization."""

    pass
