"""
Create a database from literal command lists, batching statements when the
store allows it.

``CreateDatabase`` validates its table, view and initialization commands when
it is built. ``create_database`` then runs three phases (tables, table
initializations, views) over a single connection. While the store accepts
batches every statement is queued and each phase ends with one flush; the first
statement the batch refuses switches the run to sequential execution for good
and marks it failed, so every remaining statement is skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

import duckdb

from bootstrap_log import LogFunc, log_error, log_message
from sql_statement_patterns import (
    QUERY_CLAUSES,
    match_clause,
    valid_init_commands,
    valid_query_name,
    valid_query_string,
    valid_table_commands,
    valid_table_name,
    valid_view_commands,
)


class InvalidCommandError(ValueError):
    pass


INVALID_QUERY_NAME_MESSAGE = "Invalid query name"
INVALID_QUERY_STRING_MESSAGE = "Invalid query string"
INVALID_TABLE_NAME_MESSAGE = "Invalid table name"
INVALID_CONSTRAINT_MESSAGE = "Invalid query constraint"


@dataclass(frozen=True)
class ViewDefinition:
    name: str
    query: str

    @classmethod
    def from_query(cls, name: str, query: str) -> "ViewDefinition":
        if not valid_query_name(name):
            raise InvalidCommandError(INVALID_QUERY_NAME_MESSAGE)
        if not valid_query_string(query):
            raise InvalidCommandError(INVALID_QUERY_STRING_MESSAGE)
        return cls(name, query)

    @classmethod
    def create(
        cls,
        name: str,
        columns: Optional[Iterable[str]] = None,
        tables: Optional[Iterable[str]] = None,
        constraints: Optional[Iterable[Optional[str]]] = None,
    ) -> "ViewDefinition":
        """
        Build a view from column expressions, source tables and clause strings.

        Each constraint is a whole clause (``WHERE ...``, ``GROUP BY ...``,
        ``HAVING ...`` or ``ORDER BY ...``). Repeated clauses of one kind are
        merged, conditions with ``AND`` and column lists with commas. ``None``
        constraints are ignored.
        """
        if not valid_query_name(name):
            raise InvalidCommandError(INVALID_QUERY_NAME_MESSAGE)
        table_names = list(tables or [])
        if not all(valid_table_name(table) for table in table_names):
            raise InvalidCommandError(INVALID_TABLE_NAME_MESSAGE)

        parts: Dict[str, List[str]] = {clause.keyword: [] for clause in QUERY_CLAUSES}
        for constraint in constraints or []:
            if constraint is None:
                continue
            matched = match_clause(constraint)
            if matched is None:
                raise InvalidCommandError(f"{INVALID_CONSTRAINT_MESSAGE}: {constraint}")
            clause, body = matched
            parts[clause.keyword].append(body)

        query = "SELECT " + ", ".join(list(columns or []) or ["*"])
        if table_names:
            query += " FROM " + ", ".join(table_names)
        for clause in QUERY_CLAUSES:
            if parts[clause.keyword]:
                query += f" {clause.keyword} " + clause.delimiter.join(parts[clause.keyword])
        return cls(name, query)

    @property
    def create_view(self) -> str:
        return f"CREATE OR REPLACE VIEW {self.name} AS {self.query}"

    @property
    def remove_view(self) -> str:
        return f"DROP VIEW IF EXISTS {self.name}"


@dataclass
class _BatchRun:
    batch: bool
    failure: Optional[Exception] = None


def _statement_executor(connection, run: _BatchRun, log: Optional[LogFunc]) -> Callable[[str], None]:
    def execute(sql: str) -> None:
        if run.failure is not None:
            return
        if run.batch:
            try:
                connection.add_batch(sql)
            except duckdb.Error as exc:
                log_message(log, "Batch refused statement, switching to sequential execution: %s", exc)
                run.batch = False
                run.failure = exc
        else:
            try:
                connection.execute(sql)
            except duckdb.Error as exc:
                run.failure = exc

    return execute


class CreateDatabase:
    def __init__(
        self,
        table_commands: Optional[Iterable[str]] = None,
        view_commands: Optional[Iterable[str]] = None,
        init_commands: Optional[Iterable[str]] = None,
    ) -> None:
        tables = list(table_commands or [])
        views = list(view_commands or [])
        inits = list(init_commands or [])
        if not valid_table_commands(tables):
            raise InvalidCommandError("Invalid table creation commands")
        if not valid_view_commands(views):
            raise InvalidCommandError("Invalid view creation commands")
        if not valid_init_commands(inits):
            raise InvalidCommandError("Invalid table initialization commands")
        self.tables: List[str] = tables
        self.views: List[str] = views
        self.table_initializations: List[str] = inits
        # Replayed after a failed run. Nothing fills it yet.
        self.rollback_commands: List[str] = []

    def phases(self):
        return (
            ("tables", self.tables),
            ("table initializations", self.table_initializations),
            ("views", self.views),
        )

    def create_database(self, data_store, log: Optional[LogFunc] = None) -> bool:
        try:
            connection = data_store.connect()
            try:
                run = _BatchRun(batch=bool(connection.supports_batch_updates()))
                log_message(log, "Batch updates %s", "enabled" if run.batch else "disabled")
                execute = _statement_executor(connection, run, log)
                for phase, commands in self.phases():
                    log_message(log, "Creating %s (%d statement(s))", phase, len(commands))
                    for sql in commands:
                        execute(sql)
                    if run.failure is not None:
                        raise run.failure
                    if run.batch:
                        connection.execute_batch()
                return True
            finally:
                connection.close()
        except duckdb.Error as exc:
            log_error(log, "Database creation failed: %s", exc)
            self.replay_rollback(data_store, log)
            return False

    def replay_rollback(self, data_store, log: Optional[LogFunc] = None) -> None:
        for sql in self.rollback_commands:
            try:
                connection = data_store.connect()
                try:
                    connection.execute(sql)
                finally:
                    connection.close()
            except duckdb.Error as exc:
                log_error(log, "Rollback statement failed: %s (%s)", sql, exc)
