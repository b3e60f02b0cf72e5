"""
Regular expressions describing the SQL shapes the schema bootstrap understands.

Two families live here:

* statement validators (``is_create_table_statement`` and friends) which decide
  whether a whole literal command has the expected shape, and
* line header patterns (``HEADER_PATTERNS``) which recognise the first line of a
  create-table, create-view or insert statement inside a definition file.

``match_headers`` is pure: it reports what a line looks like and never touches a
schema registry. Registering names is the parser's job.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

TABLE = "table"
VIEW = "view"
INSERT = "insert"

CREATE_CATEGORIES = (TABLE, VIEW)

IDENTIFIER = r"[^\W\d_]\w*"
NAME_LIST = rf"{IDENTIFIER}(?:\s*,\s*{IDENTIFIER})*"
# Blank lines and line comments may trail a statement inside a definition file.
TRAILER = r"(?:\s|--[^\n]*)*"

_FLAGS = re.IGNORECASE | re.DOTALL

# Parenthesised body whose quoted literals may hold semicolons.
TABLE_BODY = r"""\((?:[^;'"]|'(?:[^']|'')*'|"(?:[^"]|"")*")*\)"""
COLUMN_REF = rf"{IDENTIFIER}(?:\.{IDENTIFIER})?"
COLUMN_LIST = rf"{COLUMN_REF}(?:\s*,\s*{COLUMN_REF})*"
ORDER_KEY = rf"{COLUMN_REF}(?:\s+(?:ASC|DESC))?"

IDENTIFIER_PATTERN = re.compile(IDENTIFIER)
QUOTED_IDENTIFIER_PATTERN = re.compile(r'"(?:[^"]|"")+"')

CREATE_TABLE_SQL_PATTERN = re.compile(
    r"\s*CREATE"
    r"(?:\s+(?:LOCAL|GLOBAL))?"
    r"(?:\s+TEMP(?:ORARY)?)?"
    r"\s+TABLE"
    r"(?:\s+IF\s+NOT\s+EXISTS)?"
    rf"\s+(?P<name>{IDENTIFIER})"
    r"\s*" + TABLE_BODY + r"\s*;?"
    + TRAILER,
    _FLAGS,
)

CREATE_VIEW_SQL_PATTERN = re.compile(
    r"\s*CREATE"
    r"(?:\s+OR\s+REPLACE)?"
    r"(?:\s+TEMP(?:ORARY)?)?"
    r"(?:\s+RECURSIVE)?"
    r"\s+VIEW"
    rf"\s+(?P<name>{IDENTIFIER})"
    r"\s+AS\s+\(?\s*(?:SELECT|WITH)\b.*",
    _FLAGS,
)

DROP_TABLE_SQL_PATTERN = re.compile(
    rf"\s*DROP\s+TABLE(?:\s+IF\s+EXISTS)?\s+(?P<names>{NAME_LIST})"
    r"(?:\s+(?P<propagation>CASCADE|RESTRICT))?\s*;?"
    + TRAILER,
    _FLAGS,
)

DROP_VIEW_SQL_PATTERN = re.compile(
    rf"\s*DROP\s+VIEW(?:\s+IF\s+EXISTS)?\s+(?P<names>{NAME_LIST})"
    r"(?:\s+(?P<propagation>CASCADE|RESTRICT))?\s*;?"
    + TRAILER,
    _FLAGS,
)

INSERT_SQL_PATTERN = re.compile(
    rf"\s*INSERT\s+INTO\s+(?P<name>{IDENTIFIER})"
    rf"\s*(?:\(\s*(?P<fields>{NAME_LIST})\s*\))?"
    r"\s*(?:VALUES|SELECT|WITH)\b.*",
    _FLAGS,
)

WHERE_PATTERN = re.compile(r"\s*WHERE\s+(?P<conditions>.*?)\s*", _FLAGS)
GROUP_PATTERN = re.compile(rf"\s*GROUP\s+BY\s+(?P<names>{COLUMN_LIST})\s*", _FLAGS)
HAVING_PATTERN = re.compile(r"\s*HAVING\s+(?P<conditions>.*?)\s*", _FLAGS)
ORDER_PATTERN = re.compile(rf"\s*ORDER\s+BY\s+(?P<keys>{ORDER_KEY}(?:\s*,\s*{ORDER_KEY})*)\s*", _FLAGS)


@dataclass(frozen=True)
class ClausePattern:
    keyword: str
    pattern: re.Pattern
    group: str
    delimiter: str


# Listed in the order the clauses appear in a SELECT.
QUERY_CLAUSES: tuple[ClausePattern, ...] = (
    ClausePattern("WHERE", WHERE_PATTERN, "conditions", " AND "),
    ClausePattern("GROUP BY", GROUP_PATTERN, "names", ", "),
    ClausePattern("HAVING", HAVING_PATTERN, "conditions", " AND "),
    ClausePattern("ORDER BY", ORDER_PATTERN, "keys", ", "),
)


def match_clause(constraint: Optional[str]) -> Optional[Tuple[ClausePattern, str]]:
    """Return the first query clause ``constraint`` spells out and its body."""
    if constraint is None:
        return None
    for clause in QUERY_CLAUSES:
        found = clause.pattern.fullmatch(constraint)
        if found and found.group(clause.group):
            return clause, found.group(clause.group)
    return None


CREATE_TABLE_HEADER = re.compile(
    r"^\s*CREATE\s+TABLE(?:\s+IF\s+NOT\s+EXISTS)?\s+(?P<table>\w+)\s*\(",
    re.IGNORECASE,
)

CREATE_VIEW_HEADER = re.compile(
    r"^\s*CREATE(?:\s+OR\s+REPLACE)?\s+VIEW\s+(?P<view>\w+)\s+AS\b",
    re.IGNORECASE,
)

INSERT_HEADER = re.compile(
    r"^\s*INSERT\s+INTO\s+(?P<table>\w+)\s*\((?P<fields>\w+(?:\s*,\s*\w+)*)\)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class HeaderPattern:
    category: str
    pattern: re.Pattern
    group: Optional[str] = None


@dataclass(frozen=True)
class HeaderMatch:
    category: str
    name: Optional[str]

    @property
    def is_create(self) -> bool:
        return self.category in CREATE_CATEGORIES


# Evaluation order matters: when several entries match one line the last one
# decides which buffer receives it.
HEADER_PATTERNS: tuple[HeaderPattern, ...] = (
    HeaderPattern(TABLE, CREATE_TABLE_HEADER, "table"),
    HeaderPattern(VIEW, CREATE_VIEW_HEADER, "view"),
    HeaderPattern(INSERT, INSERT_HEADER, "table"),
)


def match_headers(line: Optional[str], patterns: Sequence[HeaderPattern] = HEADER_PATTERNS) -> List[HeaderMatch]:
    if line is None:
        return []
    matches: List[HeaderMatch] = []
    for entry in patterns:
        found = entry.pattern.match(line)
        if not found:
            continue
        name = None
        if entry.group and entry.group in entry.pattern.groupindex:
            name = found.group(entry.group)
        matches.append(HeaderMatch(entry.category, name))
    return matches


def _fullmatch(pattern: re.Pattern, text: Optional[str]) -> bool:
    return text is not None and pattern.fullmatch(text) is not None


def valid_identifier(name: Optional[str]) -> bool:
    return _fullmatch(IDENTIFIER_PATTERN, name)


def valid_table_name(name: Optional[str]) -> bool:
    return valid_identifier(name)


def valid_query_name(name: Optional[str]) -> bool:
    return valid_identifier(name) or _fullmatch(QUOTED_IDENTIFIER_PATTERN, name)


def valid_query_string(query: Optional[str]) -> bool:
    return query is not None and query.upper().startswith("SELECT ")


def is_create_table_statement(sql: Optional[str]) -> bool:
    return _fullmatch(CREATE_TABLE_SQL_PATTERN, sql)


def is_create_view_statement(sql: Optional[str]) -> bool:
    return _fullmatch(CREATE_VIEW_SQL_PATTERN, sql)


def is_drop_table_statement(sql: Optional[str]) -> bool:
    return _fullmatch(DROP_TABLE_SQL_PATTERN, sql)


def is_drop_view_statement(sql: Optional[str]) -> bool:
    return _fullmatch(DROP_VIEW_SQL_PATTERN, sql)


def is_insert_statement(sql: Optional[str]) -> bool:
    return _fullmatch(INSERT_SQL_PATTERN, sql)


def valid_table_commands(commands: Iterable[Optional[str]]) -> bool:
    return all(is_create_table_statement(sql) or is_drop_table_statement(sql) for sql in commands)


def valid_view_commands(commands: Iterable[Optional[str]]) -> bool:
    return all(is_create_view_statement(sql) or is_drop_view_statement(sql) for sql in commands)


def valid_init_commands(commands: Iterable[Optional[str]]) -> bool:
    return all(is_insert_statement(sql) for sql in commands)
