"""HistoryLog storage model: one table of history records per audited table."""
import enum
from datetime import datetime, timezone
from sqlalchemy import (
    Boolean, Column, DateTime, Enum as SAEnum, Float, Index, Integer, JSON, MetaData, String,
    Table, Text,
)

from historylog.config import settings
from historylog.schemas.options import HistoryOptions


class HistoryMethod(str, enum.Enum):
    created = "created"
    updated = "updated"
    deleted = "deleted"


HistoryMethodEnum = SAEnum(
    HistoryMethod,
    name="history_method",
    native_enum=False,
)

_EXTRA_COLUMN_TYPES = {
    "String": lambda: String(255),
    "Text": Text,
    "Integer": Integer,
    "Float": Float,
    "Boolean": Boolean,
    "DateTime": lambda: DateTime(timezone=True),
    "JSON": JSON,
}

BASE_COLUMNS = ("id", "module", "document_number", "method", "action", "changes", "created_at")


def history_table_name(source_table: str, options: HistoryOptions) -> str:
    return options.collection_name or f"{source_table}{settings.HISTORY_TABLE_SUFFIX}"


def history_log_table(metadata: MetaData, source_table: str, options: HistoryOptions) -> Table:
    """Build (or return the already built) history table for ``source_table``.

    The table lives in the audited table's metadata so ``create_all`` creates
    both together.
    """
    name = history_table_name(source_table, options)
    if name in metadata.tables:
        return metadata.tables[name]

    columns = [
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("module", String(255), nullable=False, index=True),
        Column("document_number", String(255), nullable=True, index=True),
        Column("method", HistoryMethodEnum, nullable=False),
        Column("action", String(50), nullable=False),
        Column("changes", JSON, nullable=False),
        Column("created_at", DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)),
    ]
    for extra in options.extra_paths:
        if extra.column_name in BASE_COLUMNS:
            raise ValueError(f"Extra path '{extra.key}' collides with history column '{extra.column_name}'")
        columns.append(Column(extra.column_name, _EXTRA_COLUMN_TYPES[extra.type](), nullable=True))

    table = Table(name, metadata, *columns)

    for index_spec in options.indexes:
        if index_spec.column_name not in table.c:
            raise ValueError(f"Cannot index unknown history column '{index_spec.path}' on {name}")
        column = table.c[index_spec.column_name]
        Index(
            f"ix_{name}_{index_spec.column_name}_{index_spec.direction}",
            column.desc() if index_spec.direction == "desc" else column,
        )
    return table
