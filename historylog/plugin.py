"""SQLAlchemy binding: wires the history interceptors to a mapped class.

One named listener per lifecycle event:

- mapper ``after_insert`` / ``after_update``   -> ``pre_save`` (inside the flush)
- mapper ``before_delete`` (``session.delete``) -> ``pre_delete``
- session ``do_orm_execute`` for ORM UPDATE     -> ``pre_update`` per matched row
- session ``do_orm_execute`` for ORM DELETE     -> ``pre_bulk_delete``, or
  ``post_delete`` per returned row when the statement is ``RETURNING`` the entity

Usage::

    register_history(Invoice, indexes=[{"path": "created_at", "direction": "desc"}])
"""
import logging
from collections.abc import Mapping
from typing import Any, Optional

from sqlalchemy import and_, event, inspect, select
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Mapper, ORMExecuteState, Session
from sqlalchemy.sql.elements import BindParameter, ClauseElement, Null

from historylog.config import settings
from historylog.models.history_log import history_log_table
from historylog.schemas.options import FailurePolicy, HistoryOptions
from historylog.services.diff import FieldPolicy
from historylog.services.history_writer import HistoryWriter
from historylog.services.interceptors import (
    AuditConfig, post_delete, pre_bulk_delete, pre_delete, pre_save, pre_update,
)

logger = logging.getLogger(__name__)

_plugins: dict[Mapper, "HistoryPlugin"] = {}


class HistoryPlugin:
    """History auditing for one mapped class."""

    def __init__(self, model: type, options: Optional[HistoryOptions] = None, **kwargs: Any):
        self.model = model
        self.options = options or HistoryOptions(**kwargs)
        self.mapper: Mapper = inspect(model)

        source = self.mapper.local_table
        self.table = history_log_table(source.metadata, source.name, self.options)
        self.failure_policy = self.options.failure_policy or FailurePolicy(settings.HISTORY_FAILURE_POLICY)

        self.key_fields = tuple(self.mapper.get_property_by_column(c).key for c in self.mapper.primary_key)
        omit = set(settings.HISTORY_OMIT_PATHS if self.options.omit_paths is None else self.options.omit_paths)
        omit.update(self.key_fields)
        if self.mapper.version_id_col is not None:
            omit.add(self.mapper.get_property_by_column(self.mapper.version_id_col).key)

        self.config = AuditConfig(
            module=self.options.module_name or source.name,
            key_fields=self.key_fields,
            policy=FieldPolicy(omit),
            extra_paths=tuple(self.options.extra_paths),
        )

        # column key / name / attribute key -> attribute key, for UPDATE assignments
        self._attribute_keys: dict[str, str] = {}
        for prop in self.mapper.column_attrs:
            for column in prop.columns:
                self._attribute_keys[column.key] = prop.key
                self._attribute_keys[column.name] = prop.key
            self._attribute_keys[prop.key] = prop.key

    @property
    def module(self) -> str:
        return self.config.module

    def register(self) -> "HistoryPlugin":
        if self.mapper in _plugins:
            raise ValueError(f"{self.model.__name__} already has a history plugin")
        event.listen(self.model, "after_insert", self.after_insert)
        event.listen(self.model, "after_update", self.after_update)
        event.listen(self.model, "before_delete", self.before_delete)
        table = self.table
        self.model.history_model = classmethod(lambda cls: table)
        _plugins[self.mapper] = self
        _install_session_hook()
        logger.info("Registered history for %s -> %s", self.module, self.table.name)
        return self

    def writer(self, connection: Connection) -> HistoryWriter:
        return HistoryWriter(self.table, connection, self.failure_policy, self.options.extra_paths)

    # -- reads ---------------------------------------------------------

    def _criteria(self, conditions: Any) -> Optional[ClauseElement]:
        if conditions is None:
            return None
        if isinstance(conditions, Mapping):
            if not conditions:
                return None
            return and_(*(getattr(self.model, k) == v for k, v in conditions.items()))
        return conditions

    def _select(self, conditions: Any):
        stmt = select(*(prop.columns[0].label(prop.key) for prop in self.mapper.column_attrs))
        criteria = self._criteria(conditions)
        if criteria is not None:
            stmt = stmt.where(criteria)
        return stmt.order_by(*(getattr(self.model, k) for k in self.key_fields))

    def find_one(self, connection: Connection, conditions: Any):
        return connection.execute(self._select(conditions).limit(1)).first()

    def find_many(self, connection: Connection, conditions: Any) -> list:
        return list(connection.execute(self._select(conditions)).all())

    # -- snapshots -----------------------------------------------------

    def original_state(self, target: Any) -> dict[str, Any]:
        """Values the instance had when loaded, for attributes whose prior value is known."""
        state = inspect(target)
        original: dict[str, Any] = {}
        for prop in self.mapper.column_attrs:
            if prop.key not in state.dict:
                continue
            history = state.attrs[prop.key].history
            if history.deleted:
                original[prop.key] = history.deleted[0]
            elif not history.added:
                original[prop.key] = state.dict[prop.key]
        return original

    def _assignments(self, values: Any) -> dict[str, Any]:
        items = values.items() if isinstance(values, Mapping) else values
        assignments: dict[str, Any] = {}
        for key, value in items:
            name = self._attribute_keys.get(key if isinstance(key, str) else getattr(key, "key", None))
            if name is None:
                continue
            if isinstance(value, BindParameter):
                value = value.effective_value
            elif isinstance(value, Null):
                value = None
            elif isinstance(value, ClauseElement):
                logger.debug("Skipping SQL expression assigned to %s.%s", self.module, name)
                continue
            assignments[name] = value
        return assignments

    def _statement_assignments(self, statement: Any) -> dict[str, Any]:
        assignments = self._assignments(getattr(statement, "_values", None) or {})
        assignments.update(self._assignments(getattr(statement, "_ordered_values", None) or ()))
        return assignments

    def _returned_entity_index(self, statement: Any) -> Optional[int]:
        for index, description in enumerate(getattr(statement, "returning_column_descriptions", None) or ()):
            if description.get("type") is self.model:
                return index
        return None

    # -- mapper events -------------------------------------------------

    def after_insert(self, mapper: Mapper, connection: Connection, target: Any) -> None:
        pre_save(target, None, True, self.config, self.writer(connection))

    def after_update(self, mapper: Mapper, connection: Connection, target: Any) -> None:
        pre_save(target, self.original_state(target), False, self.config, self.writer(connection))

    def before_delete(self, mapper: Mapper, connection: Connection, target: Any) -> None:
        identity = inspect(target).identity or ()
        conditions = dict(zip(self.key_fields, identity))
        pre_delete(conditions, lambda c: self.find_one(connection, c), self.config, self.writer(connection))

    # -- statement events ----------------------------------------------

    def audit_update(self, orm_execute_state: ORMExecuteState) -> None:
        _flush_pending(orm_execute_state)
        connection = _connection(orm_execute_state)
        writer = self.writer(connection)
        statement = orm_execute_state.statement
        parameters = orm_execute_state.parameters

        if isinstance(parameters, (list, tuple)):
            # bulk UPDATE by primary key, one parameter set per document
            for params in parameters:
                conditions = {k: params[k] for k in self.key_fields if k in params}
                if len(conditions) != len(self.key_fields):
                    logger.warning("Bulk update of %s without primary key; not audited", self.module)
                    continue
                assignments = {
                    k: v for k, v in self._assignments(params).items() if k not in self.key_fields
                }
                pre_update(conditions, assignments, lambda c: self.find_one(connection, c), self.config, writer)
            return

        assignments = self._statement_assignments(statement)
        if isinstance(parameters, Mapping):
            assignments.update(self._assignments(parameters))

        # An UPDATE addresses every row its filter matches. The rows are read
        # once here and each document's find-one is answered from that read.
        for row in self.find_many(connection, statement.whereclause):
            conditions = {k: row._mapping[k] for k in self.key_fields}
            pre_update(conditions, assignments, lambda c, row=row: row, self.config, writer)

    def audit_delete(self, orm_execute_state: ORMExecuteState):
        _flush_pending(orm_execute_state)
        connection = _connection(orm_execute_state)
        writer = self.writer(connection)
        statement = orm_execute_state.statement

        index = self._returned_entity_index(statement)
        if index is None:
            pre_bulk_delete(
                statement.whereclause,
                lambda c: self.find_many(connection, c),
                self.config,
                writer,
            )
            return None

        frozen = orm_execute_state.invoke_statement().freeze()
        for row in frozen():
            post_delete(row[index], self.config, writer)
        return frozen()


def _connection(orm_execute_state: ORMExecuteState) -> Connection:
    return orm_execute_state.session.connection(bind_arguments=orm_execute_state.bind_arguments)


def _flush_pending(orm_execute_state: ORMExecuteState) -> None:
    # do_orm_execute fires before the session autoflushes for UPDATE/DELETE,
    # so pending objects must be flushed before the read-before-write
    session = orm_execute_state.session
    if session.autoflush and orm_execute_state.execution_options.get("autoflush", True):
        session.flush()


def _on_orm_execute(orm_execute_state: ORMExecuteState):
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return None
    plugin = _plugins.get(orm_execute_state.bind_mapper)
    if plugin is None:
        return None
    if orm_execute_state.is_update:
        plugin.audit_update(orm_execute_state)
        return None
    return plugin.audit_delete(orm_execute_state)


def _install_session_hook() -> None:
    if not event.contains(Session, "do_orm_execute", _on_orm_execute):
        event.listen(Session, "do_orm_execute", _on_orm_execute)


def register_history(model: type, options: Optional[HistoryOptions] = None, **kwargs: Any) -> HistoryPlugin:
    """Audit every create / update / delete of ``model`` into its history table."""
    return HistoryPlugin(model, options, **kwargs).register()


def plugin_for(model: type) -> Optional[HistoryPlugin]:
    return _plugins.get(inspect(model))


def plugin_for_module(module: str) -> Optional[HistoryPlugin]:
    for plugin in _plugins.values():
        if plugin.module == module:
            return plugin
    return None


def registered_modules() -> list[str]:
    return sorted(plugin.module for plugin in _plugins.values())
