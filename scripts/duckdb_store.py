"""
DuckDB connection adapter used by the batched bootstrap path.

``DuckDBStore`` plays the role of a data source: every ``connect()`` opens a
new DuckDB connection, applies the configured settings, and wraps it in a
``StoreConnection`` that can queue statements into a batch and flush them in a
single multi-statement call.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import duckdb

from bootstrap_config import substitute_variables


def configure_connection(
    con: duckdb.DuckDBPyConnection,
    settings: Optional[Dict[str, Any]],
    variables: Optional[Dict[str, str]] = None,
) -> None:
    settings = settings or {}
    variables = variables or {}

    threads = settings.get("threads")
    if threads is not None and str(threads) != "":
        con.execute(f"SET threads={int(threads)}")

    memory_limit = settings.get("memory_limit")
    if memory_limit is not None and str(memory_limit) != "":
        con.execute(f"SET memory_limit='{substitute_variables(str(memory_limit), variables)}'")

    temp_directory = settings.get("temp_directory")
    if temp_directory is not None and str(temp_directory) != "":
        con.execute(f"SET temp_directory='{substitute_variables(str(temp_directory), variables)}'")

    max_depth = settings.get("max_expression_depth")
    if max_depth:
        con.execute(f"SET max_expression_depth={max_depth}")


def _terminated(sql: str) -> str:
    statement = sql.strip()
    return statement if statement.endswith(";") else statement + ";"


class StoreConnection:
    def __init__(self, con: duckdb.DuckDBPyConnection, *, batch_updates: bool = True) -> None:
        self.con = con
        self.batch_updates = batch_updates
        self.pending: List[str] = []

    def supports_batch_updates(self) -> bool:
        return self.batch_updates

    def add_batch(self, sql: str) -> None:
        # Parsing up front turns a malformed statement into an add failure.
        if not self.con.extract_statements(sql):
            raise duckdb.InvalidInputException(f"No SQL statement in batch entry: {sql!r}")
        self.pending.append(_terminated(sql))

    def execute_batch(self) -> None:
        if not self.pending:
            return
        batch = "\n".join(self.pending)
        self.pending = []
        self.con.execute(batch)

    def execute(self, sql: str) -> None:
        self.con.execute(sql)

    def close(self) -> None:
        self.pending = []
        self.con.close()


class DuckDBStore:
    def __init__(
        self,
        database: str = ":memory:",
        *,
        batch_updates: bool = True,
        settings: Optional[Dict[str, Any]] = None,
        variables: Optional[Dict[str, str]] = None,
    ) -> None:
        self.database = database
        self.batch_updates = batch_updates
        self.settings = dict(settings or {})
        self.variables = dict(variables or {})

    def connect(self) -> StoreConnection:
        con = duckdb.connect(self.database)
        try:
            configure_connection(con, self.settings, self.variables)
        except duckdb.Error:
            con.close()
            raise
        return StoreConnection(con, batch_updates=self.batch_updates)
