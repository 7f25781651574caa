"""Base Model Module."""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from sqlalchemy import inspect
from sqlalchemy.orm import DeclarativeBase

from anisync.exceptions import UnsupportedModeError


def generic_serialize(obj: Any) -> Any:
    """Convert a non-JSON-native value to a JSON-serializable one."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


class Base(DeclarativeBase):
    """Base class for all database models."""

    def model_dump(
        self,
        *,
        mode: Literal["json", "python"] | str = "python",
        include: set[str] | None = None,
        exclude: set[str] | None = None,
        exclude_none: bool = False,
        by_alias: bool = False,
    ) -> dict[str, Any]:
        """Dump the mapped column values to a dictionary.

        Imitates the behavior of Pydantic's model_dump method. Only loaded column
        attributes are included, keyed by attribute name (or by column name when
        `by_alias` is set).
        """
        result: dict[str, Any] = {}
        for attr in inspect(self.__class__).column_attrs:
            key = attr.key
            if include and key not in include:
                continue
            if exclude and key in exclude:
                continue
            value = getattr(self, key)
            if exclude_none and value is None:
                continue
            name = attr.columns[0].name if by_alias else key
            result[name] = value

        if mode == "python":
            return result
        if mode == "json":
            return json.loads(json.dumps(result, default=generic_serialize))
        raise UnsupportedModeError(f"Unsupported mode: {mode}")
