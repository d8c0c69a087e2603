"""
Parameterized statement builder.

Values are always bound as `?` parameters. Identifiers cannot be bound, so
they are checked against a strict pattern before being placed in SQL text.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import duckdb

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


@dataclass(frozen=True)
class Statement:
    sql: str
    params: List[Any] = field(default_factory=list)

    def execute(self, conn: duckdb.DuckDBPyConnection):
        return conn.execute(self.sql, self.params)


def ident(name: str) -> str:
    """Validate a table/column/sequence name."""
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def _where(conditions: Dict[str, Any]):
    clauses, params = [], []
    for column, value in conditions.items():
        if value is None:
            clauses.append(f"{ident(column)} IS NULL")
        else:
            clauses.append(f"{ident(column)} = ?")
            params.append(value)
    return ' AND '.join(clauses), params


def select(
    table: str,
    columns: Sequence[str],
    where: Optional[Dict[str, Any]] = None
) -> Statement:
    sql = f"SELECT {', '.join(ident(c) for c in columns)} FROM {ident(table)}"
    params: List[Any] = []
    if where:
        clause, params = _where(where)
        sql += f" WHERE {clause}"
    return Statement(sql, params)


def insert(
    table: str,
    values: Dict[str, Any],
    sequence_column: Optional[str] = None,
    sequence: Optional[str] = None
) -> Statement:
    """INSERT one row; `sequence_column` is filled from NEXTVAL(`sequence`)."""
    columns = [ident(c) for c in values]
    placeholders = ['?'] * len(columns)
    if sequence_column:
        columns.insert(0, ident(sequence_column))
        placeholders.insert(0, f"NEXTVAL('{ident(sequence)}')")
    sql = f"INSERT INTO {ident(table)} ({', '.join(columns)}) VALUES ({', '.join(placeholders)})"
    return Statement(sql, list(values.values()))


def update(table: str, values: Dict[str, Any], where: Dict[str, Any]) -> Statement:
    if not values:
        raise ValueError("UPDATE needs at least one column")
    if not where:
        raise ValueError("UPDATE without WHERE is not allowed")
    assignments = ', '.join(f"{ident(c)} = ?" for c in values)
    clause, where_params = _where(where)
    sql = f"UPDATE {ident(table)} SET {assignments} WHERE {clause}"
    return Statement(sql, list(values.values()) + where_params)
