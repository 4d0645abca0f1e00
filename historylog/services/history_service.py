"""Read side of the history tables."""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from historylog.models.history_log import HistoryMethod
from historylog.plugin import HistoryPlugin
from historylog.schemas.history import HistoryLogRead


def list_history(
    db: Session,
    plugin: HistoryPlugin,
    document_number: Optional[str] = None,
    method: Optional[HistoryMethod] = None,
) -> list[HistoryLogRead]:
    """History records of one module, oldest first."""
    table = plugin.table
    query = select(table).where(table.c.module == plugin.module)
    if document_number is not None:
        query = query.where(table.c.document_number == document_number)
    if method is not None:
        query = query.where(table.c.method == method)
    rows = db.execute(query.order_by(table.c.created_at, table.c.id)).mappings().all()
    return [HistoryLogRead.model_validate(dict(row)) for row in rows]
