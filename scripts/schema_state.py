"""
Ordered registry of the table and view names discovered in definition sources.

A ``SchemaState`` is an immutable snapshot. Parsing a source produces the
snapshot of names that source mentions, and the running state is advanced by
folding it in with ``merge``; names keep the position of their first
introduction and are never duplicated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple


def _append_new(existing: Tuple[str, ...], names: Iterable[str]) -> Tuple[str, ...]:
    result = list(existing)
    for name in names:
        if name is not None and name not in result:
            result.append(name)
    return tuple(result)


@dataclass(frozen=True)
class SchemaState:
    tables: Tuple[str, ...] = ()
    views: Tuple[str, ...] = ()

    @classmethod
    def of(cls, tables: Iterable[str] = (), views: Iterable[str] = ()) -> "SchemaState":
        return cls(_append_new((), tables), _append_new((), views))

    @property
    def is_empty(self) -> bool:
        return not self.tables and not self.views

    def merge(self, other: "SchemaState") -> "SchemaState":
        return SchemaState(_append_new(self.tables, other.tables), _append_new(self.views, other.views))

    def new_tables(self, before: "SchemaState") -> Tuple[str, ...]:
        return tuple(name for name in self.tables if name not in before.tables)

    def new_views(self, before: "SchemaState") -> Tuple[str, ...]:
        return tuple(name for name in self.views if name not in before.views)
