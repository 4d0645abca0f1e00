"""Pydantic schemas for history plugin registration options."""
from __future__ import annotations
import enum
from datetime import datetime
from typing import Any, Literal, Optional
from pydantic import BaseModel, TypeAdapter, field_validator


class FailurePolicy(str, enum.Enum):
    block = "block"     # history write failure fails the guarded mutation
    ignore = "ignore"   # failure is logged, the mutation proceeds unaudited


_EXTRA_PYTHON_TYPES: dict[str, Any] = {
    "String": str,
    "Text": str,
    "Integer": int,
    "Float": float,
    "Boolean": bool,
    "DateTime": datetime,
    "JSON": Any,
}


class IndexSpec(BaseModel):
    """Index on a history table column; ``path`` may name an extra path."""

    path: str
    direction: Literal["asc", "desc"] = "asc"

    @property
    def column_name(self) -> str:
        return self.path.replace(".", "_")


class ExtraPath(BaseModel):
    """Document field copied onto every history record of a model.

    ``key`` may be dotted (``owner.team``) to reach into nested values; it is
    stored in the column ``owner_team``.
    """

    key: str
    type: Literal["String", "Text", "Integer", "Float", "Boolean", "DateTime", "JSON"] = "String"

    @property
    def column_name(self) -> str:
        return self.key.replace(".", "_")

    def coerce(self, value: Any) -> Any:
        """Convert a snapshot (JSON-safe) value back to the column's Python type."""
        if value is None:
            return None
        return TypeAdapter(_EXTRA_PYTHON_TYPES[self.type]).validate_python(value)


class HistoryOptions(BaseModel):
    collection_name: Optional[str] = None
    module_name: Optional[str] = None
    indexes: list[IndexSpec] = []
    omit_paths: Optional[list[str]] = None
    extra_paths: list[ExtraPath] = []
    failure_policy: Optional[FailurePolicy] = None

    @field_validator("extra_paths")
    @classmethod
    def _unique_columns(cls, value: list[ExtraPath]) -> list[ExtraPath]:
        names = [p.column_name for p in value]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate extra path columns: {names}")
        return value
