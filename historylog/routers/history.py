"""History API routes: read-only access to recorded history."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from historylog.database import get_db
from historylog.models.history_log import HistoryMethod
from historylog.plugin import plugin_for_module, registered_modules
from historylog.schemas.history import HistoryLogRead
from historylog.services import history_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[str])
def list_modules():
    """Modules with history auditing registered."""
    return registered_modules()


@router.get("/{module}", response_model=list[HistoryLogRead])
def list_history(
    module: str,
    document_number: Optional[str] = Query(None),
    method: Optional[HistoryMethod] = Query(None),
    db: Session = Depends(get_db),
):
    """History of a module, optionally narrowed to one document or method."""
    plugin = plugin_for_module(module)
    if plugin is None:
        logger.info("History requested for unknown module %s", module)
        raise HTTPException(status_code=404, detail="Module not found")
    return history_service.list_history(db, plugin, document_number=document_number, method=method)
