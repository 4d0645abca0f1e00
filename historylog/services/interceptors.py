"""Mutation interceptors: one per mutation shape.

Every interceptor runs the same pipeline: gather the old/new snapshots,
diff them, classify the result and hand it to the writer. They differ only
in where the snapshots come from.

Read-before-write: ``pre_update``, ``pre_delete`` and ``pre_bulk_delete``
read the current row(s) with the mutation's own filter before the mutation
runs. The read is a point-in-time read inside the caller's transaction; a
concurrent writer may change the row between the read and the write, in
which case the recorded "old" values are the ones this transaction saw.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from historylog.models.history_log import HistoryMethod
from historylog.schemas.options import ExtraPath
from historylog.services.classifier import classify
from historylog.services.diff import FieldPolicy, diff
from historylog.services.history_writer import HistoryWriter
from historylog.services.snapshot import normalize

logger = logging.getLogger(__name__)

FindOne = Callable[[Any], Any]
FindMany = Callable[[Any], Iterable[Any]]


@dataclass(frozen=True)
class AuditConfig:
    """Per-model settings shared by every interceptor call."""

    module: str
    key_fields: tuple[str, ...]
    policy: FieldPolicy
    extra_paths: tuple[ExtraPath, ...] = ()


@dataclass
class MutationContext:
    """State of one interceptor call; never shared or persisted."""

    conditions: Any
    method: HistoryMethod
    old: dict = field(default_factory=dict)
    new: dict = field(default_factory=dict)


def _is_empty(conditions: Any) -> bool:
    # SQL expressions have no truth value, only None/empty containers are empty
    if conditions is None:
        return True
    if isinstance(conditions, (Mapping, list, tuple, set)):
        return not conditions
    return False


def _lookup(snapshot: Mapping, path: str) -> Any:
    value: Any = snapshot
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


def document_number(snapshot: Mapping, key_fields: Iterable[str]) -> Optional[str]:
    values = [snapshot.get(k) for k in key_fields]
    if not values or any(v is None for v in values):
        return None
    return ",".join(str(v) for v in values)


def _record(ctx: MutationContext, config: AuditConfig, writer: HistoryWriter) -> None:
    if not ctx.old and _is_empty(ctx.conditions):
        logger.warning("Not found documents to %s history logs for %s", ctx.method.value, config.module)
        return

    subject = ctx.new if ctx.method is HistoryMethod.created else ctx.old or ctx.new
    source = ctx.old if ctx.method is HistoryMethod.deleted else ctx.new
    extra = {p.key: _lookup(source, p.key) for p in config.extra_paths}

    changes = diff(ctx.old, ctx.new, config.policy)
    record = classify(ctx.method, config.module, document_number(subject, config.key_fields), changes, extra)
    writer.write(record)


def pre_save(
    document: Any,
    original: Optional[Mapping],
    is_new: bool,
    config: AuditConfig,
    writer: HistoryWriter,
) -> None:
    """Single-document insert or update; ``original`` is the previously loaded state."""
    new = normalize(document)
    ctx = MutationContext(
        conditions={k: new.get(k) for k in config.key_fields},
        method=HistoryMethod.created if is_new else HistoryMethod.updated,
        old={} if is_new else normalize(original),
        new=new,
    )
    _record(ctx, config, writer)


def pre_update(
    conditions: Any,
    assignments: Mapping,
    find_one: FindOne,
    config: AuditConfig,
    writer: HistoryWriter,
) -> None:
    """Query-based update; assignments win over the stored values."""
    old = normalize(find_one(conditions))
    ctx = MutationContext(conditions=conditions, method=HistoryMethod.updated, old=old)
    ctx.new = {**old, **normalize(assignments)}
    _record(ctx, config, writer)


def pre_delete(conditions: Any, find_one: FindOne, config: AuditConfig, writer: HistoryWriter) -> None:
    ctx = MutationContext(
        conditions=conditions,
        method=HistoryMethod.deleted,
        old=normalize(find_one(conditions)),
    )
    _record(ctx, config, writer)


def pre_bulk_delete(conditions: Any, find_many: FindMany, config: AuditConfig, writer: HistoryWriter) -> int:
    """One record per matched document. The first failing write aborts the rest.

    Returns the number of matched documents.
    """
    count = 0
    for document in find_many(conditions):
        old = normalize(document)
        ctx = MutationContext(conditions=conditions, method=HistoryMethod.deleted, old=old)
        _record(ctx, config, writer)
        count += 1
    return count


def post_delete(document: Any, config: AuditConfig, writer: HistoryWriter) -> None:
    """Delete that hands back the removed document."""
    old = normalize(document)
    ctx = MutationContext(
        conditions={k: old.get(k) for k in config.key_fields if k in old},
        method=HistoryMethod.deleted,
        old=old,
    )
    _record(ctx, config, writer)
