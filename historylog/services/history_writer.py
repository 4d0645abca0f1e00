"""History writer: persists one HistoryRecord per call."""
import logging
from typing import Sequence

from sqlalchemy import Table
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from historylog.schemas.history import HistoryRecord
from historylog.schemas.options import ExtraPath, FailurePolicy

logger = logging.getLogger(__name__)


class HistoryWriter:
    """Inserts history rows on the connection that carries the audited mutation.

    With ``FailurePolicy.block`` insert errors propagate and fail the
    mutation. With ``FailurePolicy.ignore`` the insert runs in a SAVEPOINT and
    a failure is logged, leaving the outer transaction usable.
    """

    def __init__(
        self,
        table: Table,
        connection: Connection,
        failure_policy: FailurePolicy = FailurePolicy.block,
        extra_paths: Sequence[ExtraPath] = (),
    ):
        self.table = table
        self.connection = connection
        self.failure_policy = failure_policy
        self.extra_paths = list(extra_paths)

    def _row(self, record: HistoryRecord) -> dict:
        row = {
            "module": record.module,
            "document_number": record.document_number,
            "method": record.method,
            "action": record.action,
            "changes": [change.to_json() for change in record.changes],
        }
        for extra in self.extra_paths:
            row[extra.column_name] = extra.coerce(record.extra.get(extra.key))
        return row

    def write(self, record: HistoryRecord) -> None:
        if not record.changes:
            logger.warning(
                "No changes generated for %s %s (%s); history not written",
                record.module, record.document_number, record.method.value,
            )
            return

        statement = self.table.insert().values(**self._row(record))
        if self.failure_policy is FailurePolicy.ignore:
            try:
                with self.connection.begin_nested():
                    self.connection.execute(statement)
            except SQLAlchemyError:
                logger.exception(
                    "Failed to write history for %s %s; mutation proceeds unaudited",
                    record.module, record.document_number,
                )
                return
        else:
            self.connection.execute(statement)

        logger.debug(
            "History %s for %s %s (%d changes)",
            record.method.value, record.module, record.document_number, len(record.changes),
        )
