"""Pydantic schemas for changes and history records."""
from __future__ import annotations
import enum
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict

from historylog.models.history_log import HistoryMethod


class ChangeKind(str, enum.Enum):
    added = "added"
    modified = "modified"
    removed = "removed"


class Change(BaseModel):
    """One field-level difference. ``old`` is unset for added fields, ``new`` for removed ones."""

    model_config = ConfigDict(frozen=True)

    path: str
    kind: ChangeKind
    old: Any = None
    new: Any = None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)


class HistoryRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    module: str
    document_number: Optional[str] = None
    method: HistoryMethod
    action: str
    changes: list[Change] = []
    extra: dict[str, Any] = {}


class HistoryLogRead(BaseModel):
    """A stored history row; configured extra path columns come through as extra fields."""

    model_config = ConfigDict(from_attributes=True, extra="allow")

    id: int
    module: str
    document_number: Optional[str] = None
    method: HistoryMethod
    action: str
    changes: list[dict[str, Any]]
    created_at: Optional[datetime] = None
