"""
Create, populate and drop a DuckDB schema described by SQL definition files.

``Database`` parses its definition sources once, when it is built, and keeps
per-source create, populate and drop blocks together with the ordered table and
view names discovered across all sources. ``create`` and ``drop`` run inside an
explicit transaction: a store error rolls everything back and is reported as a
``False`` result rather than raised.

Tables and views are dropped in the order they were first defined, not in
reverse. Schemas whose earlier tables are referenced by later ones need the
``CASCADE`` drop blocks from ``drop_sql`` instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import duckdb

from bootstrap_config import DEFAULT_SOURCES
from bootstrap_log import LogFunc, banner, log_error, log_message
from create_database import CreateDatabase
from schema_state import SchemaState
from sql_definition_parser import Source, SourceDefinition, read_definition
from sql_statement_patterns import INSERT, TABLE, VIEW


@dataclass(frozen=True)
class PopulateOutcome:
    source_index: int
    table: Optional[str]
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _rollback(connection: duckdb.DuckDBPyConnection, log: Optional[LogFunc]) -> None:
    try:
        connection.rollback()
    except duckdb.Error as exc:
        log_error(log, "Rollback failed: %s", exc)


class Database:
    def __init__(self, *sources: Source, log: Optional[LogFunc] = None) -> None:
        self._state = SchemaState()
        self._definitions: List[SourceDefinition] = []
        for source in sources or DEFAULT_SOURCES:
            definition, self._state = read_definition(source, self._state, log=log)
            self._definitions.append(definition)

    def table_names(self) -> List[str]:
        return list(self._state.tables)

    def view_names(self) -> List[str]:
        return list(self._state.views)

    def populated_tables(self) -> List[str]:
        names: List[str] = []
        for definition in self._definitions:
            names.extend(definition.populated_tables)
        return names

    @property
    def schema(self) -> SchemaState:
        return self._state

    def definitions(self) -> Tuple[SourceDefinition, ...]:
        return tuple(self._definitions)

    def source_count(self) -> int:
        return len(self._definitions)

    def _definition(self, index: int) -> Optional[SourceDefinition]:
        if 0 <= index < len(self._definitions):
            return self._definitions[index]
        return None

    def create_sql(self, index: int) -> Optional[str]:
        definition = self._definition(index)
        return definition.create_sql if definition else None

    def populate_sql(self, index: int) -> Optional[str]:
        definition = self._definition(index)
        return definition.populate_sql if definition else None

    def drop_sql(self, index: int) -> Optional[str]:
        definition = self._definition(index)
        return definition.drop_sql if definition else None

    def _run_statements(self, category: str, connection: duckdb.DuckDBPyConnection, log: Optional[LogFunc]) -> bool:
        for definition in self._definitions:
            for statement in definition.statements_of(category):
                connection.execute(statement.text)
                log_message(log, "%s %s created", category.capitalize(), statement.name)
        return True

    def create_tables(self, connection: duckdb.DuckDBPyConnection, log: Optional[LogFunc] = None) -> bool:
        log_message(log, "\n\nCreating tables:")
        return self._run_statements(TABLE, connection, log)

    def create_views(self, connection: duckdb.DuckDBPyConnection, log: Optional[LogFunc] = None) -> bool:
        log_message(log, "\n\nCreating views:")
        return self._run_statements(VIEW, connection, log)

    def populate_outcomes(
        self, connection: duckdb.DuckDBPyConnection, log: Optional[LogFunc] = None
    ) -> List[PopulateOutcome]:
        outcomes: List[PopulateOutcome] = []
        for index, definition in enumerate(self._definitions):
            for statement in definition.statements_of(INSERT):
                try:
                    connection.execute(statement.text)
                    log_message(log, "Populated table %s", statement.name)
                    outcomes.append(PopulateOutcome(index, statement.name))
                except duckdb.Error as exc:
                    log_message(log, "Populating table %s failed: %s", statement.name, exc)
                    outcomes.append(PopulateOutcome(index, statement.name, exc))
        return outcomes

    def populate_tables(self, connection: duckdb.DuckDBPyConnection, log: Optional[LogFunc] = None) -> bool:
        log_message(log, "\n\nPopulating tables:")
        return any(outcome.ok for outcome in self.populate_outcomes(connection, log))

    def populate(self, index: int, connection: duckdb.DuckDBPyConnection, log: Optional[LogFunc] = None) -> bool:
        sql = self.populate_sql(index)
        if sql is None:
            return False
        log_message(log, "Populating from source %d", index)
        connection.execute(sql)
        return True

    def _create_block(self, index: int, connection: duckdb.DuckDBPyConnection, log: Optional[LogFunc]) -> bool:
        sql = self.create_sql(index)
        if sql is None:
            return False
        log_message(log, "Creating from source %d", index)
        log_message(log, "%s", banner("CREATE COMMANDS", "\n" + sql))
        connection.execute(sql)
        return True

    def create_source(self, index: int, connection: duckdb.DuckDBPyConnection, log: Optional[LogFunc] = None) -> bool:
        if not self._create_block(index, connection, log):
            return False
        # Population never decides whether the source counts as created.
        return self.populate(index, connection, log) or True

    def _drop_objects(self, connection: duckdb.DuckDBPyConnection, log: Optional[LogFunc]) -> None:
        log_message(log, "\nDROPPING TABLES: %s", ", ".join(self._state.tables))
        for table in self._state.tables:
            sql = f"DROP TABLE IF EXISTS {table}"
            log_message(log, "Dropping table %s: %s", table, sql)
            connection.execute(sql)

        log_message(log, "\nDROPPING VIEWS: %s", ", ".join(self._state.views))
        for view in self._state.views:
            # DuckDB refuses DROP TABLE on a view.
            sql = f"DROP VIEW IF EXISTS {view}"
            log_message(log, "Dropping view %s: %s", view, sql)
            connection.execute(sql)

    def create(
        self,
        connection: duckdb.DuckDBPyConnection,
        log: Optional[LogFunc] = None,
        progress_cb: Optional[Callable[[], None]] = None,
    ) -> bool:
        try:
            connection.begin()
            self._drop_objects(connection, log)
            result = False
            for index in range(len(self._definitions)):
                # Insert-only sources still populate tables created by earlier sources.
                created = self._create_block(index, connection, log)
                self.populate(index, connection, log)
                result = result or created
                if progress_cb:
                    progress_cb()
            connection.commit()
            return result
        except duckdb.Error as exc:
            log_error(log, "%s", banner("Creation failed", str(exc)))
            _rollback(connection, log)
            return False

    def drop(self, connection: duckdb.DuckDBPyConnection, log: Optional[LogFunc] = None) -> bool:
        try:
            connection.begin()
            self._drop_objects(connection, log)
            connection.commit()
            return True
        except duckdb.Error as exc:
            log_error(log, "%s", banner("Drop failed", str(exc)))
            _rollback(connection, log)
            return False

    def to_create_database(self) -> CreateDatabase:
        tables: List[str] = []
        views: List[str] = []
        inits: List[str] = []
        for definition in self._definitions:
            for statement in definition.statements:
                if statement.category == TABLE:
                    tables.append(statement.text)
                elif statement.category == VIEW:
                    views.append(statement.text)
                elif statement.category == INSERT:
                    inits.append(statement.text)
        return CreateDatabase(tables, views, inits)
