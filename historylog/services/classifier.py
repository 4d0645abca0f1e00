"""Change classifier: maps a mutation method and its changes to a HistoryRecord."""
from typing import Any, Optional, Sequence, Union

from historylog.models.history_log import HistoryMethod
from historylog.schemas.history import Change, HistoryRecord

ACTIONS: dict[HistoryMethod, str] = {
    HistoryMethod.created: "Created Document",
    HistoryMethod.updated: "Edited Document",
    HistoryMethod.deleted: "Removed Document",
}


def action_for(method: Union[HistoryMethod, str]) -> str:
    """Label for ``method``; anything outside HistoryMethod raises ValueError."""
    return ACTIONS[HistoryMethod(method)]


def classify(
    method: Union[HistoryMethod, str],
    module: str,
    document_number: Optional[str],
    changes: Sequence[Change],
    extra: Optional[dict[str, Any]] = None,
) -> HistoryRecord:
    action = action_for(method)
    return HistoryRecord(
        module=module,
        document_number=document_number,
        method=HistoryMethod(method),
        action=action,
        changes=list(changes),
        extra=extra or {},
    )
