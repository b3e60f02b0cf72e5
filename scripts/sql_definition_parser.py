"""
Parse SQL definition sources into create, populate and drop command blocks.

A definition source is plain SQL text. Statements start at a header line
(``CREATE TABLE x (``, ``CREATE [OR REPLACE] VIEW x AS``,
``INSERT INTO x (a, b)``) and run until the next header line or the end of the
source. Create statements accumulate into the create block, inserts into the
populate block. Parsing also folds the discovered names into a ``SchemaState``
and derives a drop block for the names the source introduced first.
"""

from __future__ import annotations

import io
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union
from urllib.parse import urlparse
from urllib.request import urlopen

from bootstrap_log import LogFunc, banner, log_error, log_message
from schema_state import SchemaState
from sql_statement_patterns import TABLE, match_headers

Source = Union[str, Path, io.TextIOBase]

URL_SCHEMES = ("http", "https", "file")


@dataclass(frozen=True)
class SqlStatement:
    category: Optional[str]
    name: Optional[str]
    text: str


@dataclass(frozen=True)
class SourceDefinition:
    create_sql: Optional[str] = None
    populate_sql: Optional[str] = None
    drop_sql: Optional[str] = None
    populated_tables: Tuple[str, ...] = ()
    new_tables: Tuple[str, ...] = ()
    new_views: Tuple[str, ...] = ()
    statements: Tuple[SqlStatement, ...] = ()
    source: str = "<text>"

    @classmethod
    def absent(cls, source: str) -> "SourceDefinition":
        return cls(source=source)

    def statements_of(self, category: str) -> List[SqlStatement]:
        return [stmt for stmt in self.statements if stmt.category == category]


def synthesize_drop_commands(before: SchemaState, after: SchemaState) -> Optional[str]:
    commands = [f"DROP TABLE IF EXISTS {name} CASCADE;\n" for name in after.new_tables(before)]
    commands.extend(f"DROP VIEW IF EXISTS {name} CASCADE;\n" for name in after.new_views(before))
    return "".join(commands) if commands else None


def _block(lines: List[str], matched: bool) -> Optional[str]:
    text = "".join(lines)
    if not matched or not text.strip():
        return None
    return text


def parse_definition(
    lines: Iterable[str],
    state: SchemaState,
    *,
    source: str = "<text>",
    log: Optional[LogFunc] = None,
) -> Tuple[SourceDefinition, SchemaState]:
    create_lines: List[str] = []
    populate_lines: List[str] = []
    current = create_lines
    seen_create = False
    seen_insert = False

    tables: List[str] = []
    views: List[str] = []
    populated: List[str] = []

    statements: List[SqlStatement] = []
    chunk: List[str] = []
    chunk_header: Tuple[Optional[str], Optional[str]] = (None, None)

    for raw in lines:
        line = raw.rstrip("\r\n")
        matches = match_headers(line)
        for match in matches:
            if match.is_create:
                current = create_lines
                seen_create = True
                target = tables if match.category == TABLE else views
                if match.name is not None and match.name not in target:
                    target.append(match.name)
            else:
                current = populate_lines
                seen_insert = True
                if match.name is not None:
                    populated.append(match.name)
        if matches:
            if chunk:
                statements.append(SqlStatement(chunk_header[0], chunk_header[1], "".join(chunk)))
            chunk = []
            chunk_header = (matches[-1].category, matches[-1].name)
        current.append(line + "\n")
        chunk.append(line + "\n")

    if chunk:
        statements.append(SqlStatement(chunk_header[0], chunk_header[1], "".join(chunk)))

    after = state.merge(SchemaState.of(tables, views))
    new_tables = after.new_tables(state)
    new_views = after.new_views(state)
    create_sql = _block(create_lines, seen_create)

    log_message(log, "%s", banner("Create Tables", ", ".join(new_tables)))
    log_message(log, "%s", banner("Create Views", ", ".join(new_views)))
    log_message(log, "SQL Commands:\n%s", create_sql or "")

    definition = SourceDefinition(
        create_sql=create_sql,
        populate_sql=_block(populate_lines, seen_insert),
        drop_sql=synthesize_drop_commands(state, after),
        populated_tables=tuple(populated),
        new_tables=new_tables,
        new_views=new_views,
        statements=tuple(statements),
        source=source,
    )
    return definition, after


def source_label(source: Source) -> str:
    if isinstance(source, io.TextIOBase):
        return getattr(source, "name", None) or "<stream>"
    return str(source)


def _is_url(source: str) -> bool:
    return urlparse(source).scheme.lower() in URL_SCHEMES


@contextmanager
def open_source(source: Source) -> Iterator[Iterable[str]]:
    """
    Yield the lines of a definition source.

    Paths are opened as UTF-8 files, ``http``/``https``/``file`` URLs are fetched
    with ``urllib``, and already-open text streams are read as-is and left open
    for their owner to close.
    """
    if isinstance(source, io.TextIOBase):
        yield source
        return
    if isinstance(source, str) and _is_url(source):
        with urlopen(source) as response:
            yield io.StringIO(response.read().decode("utf-8"))
        return
    with Path(source).expanduser().open(encoding="utf-8") as handle:
        yield handle


def read_definition(
    source: Source,
    state: SchemaState,
    *,
    log: Optional[LogFunc] = None,
) -> Tuple[SourceDefinition, SchemaState]:
    label = source_label(source)
    try:
        with open_source(source) as lines:
            log_message(log, "Reading definitions from %s", label)
            return parse_definition(lines, state, source=label, log=log)
    except (OSError, UnicodeDecodeError) as exc:
        log_error(log, "Reading database definition of %s failed due %s", label, exc)
        return SourceDefinition.absent(label), state
