"""Snapshot normalizer: turns documents into plain, JSON-safe dicts."""
from collections.abc import Mapping
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import inspect
from sqlalchemy.engine import Row
from sqlalchemy.orm import InstanceState


def _column_state(document: Any) -> Any:
    """Loaded column attributes of a mapped instance; anything else is returned as is.

    Reads the instance ``__dict__`` through its state so that expired or
    deferred attributes are skipped instead of loaded.
    """
    state = inspect(document, raiseerr=False)
    if not isinstance(state, InstanceState):
        return document
    loaded = state.dict
    return {
        prop.key: loaded[prop.key]
        for prop in state.mapper.column_attrs
        if prop.key in loaded
    }


def normalize(document: Any) -> dict[str, Any]:
    """Return a deep, JSON-serializable copy of ``document``; ``{}`` when there is none."""
    if document is None:
        return {}
    if isinstance(document, Row):
        document = document._mapping
    elif not isinstance(document, Mapping):
        document = _column_state(document)
    if not document:
        return {}
    encoded = jsonable_encoder(dict(document) if isinstance(document, Mapping) else document)
    return encoded if isinstance(encoded, dict) else {}
