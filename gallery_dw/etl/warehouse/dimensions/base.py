"""
Generic dimension upsert engine.

Each dimension is described by a DimensionSpec and a mapper that turns one
source row into the dimension's attribute dict (or None to defer the row).

- Type 1: surrogate key = natural key, changed rows are overwritten in place.
- SCD Type 2: surrogate key from a sequence; a change closes the current row
  and inserts a new version inside one transaction.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import duckdb
import pandas as pd

from gallery_dw.errors import PropagationCancelled
from .. import statements

logger = logging.getLogger(__name__)

UNKNOWN = 'Unknown'


@dataclass(frozen=True)
class Column:
    name: str
    kind: str = 'str'  # str, int, float, date, bool


@dataclass(frozen=True)
class DimensionSpec:
    table: str
    natural_key: str
    surrogate_key: str
    columns: Tuple[Column, ...]
    scd2: bool = False
    sequence: Optional[str] = None
    current_flag: bool = False  # Type 1 table that still carries is_current

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]


def is_null(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def coerce(value: Any, kind: str) -> Any:
    """Normalize a source or warehouse value to the column type. NaN/NaT/None become None."""
    if is_null(value):
        return None
    if kind == 'str':
        return str(value)
    if kind == 'int':
        return int(value)
    if kind == 'float':
        return round(float(value), 4)
    if kind == 'date':
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        return pd.Timestamp(value).date()
    if kind == 'bool':
        return bool(value)
    raise ValueError(f"Unknown column kind: {kind}")


def label(value: Any) -> str:
    """Descriptive label with the 'Unknown' default for missing text."""
    if is_null(value) or not str(value).strip():
        return UNKNOWN
    return str(value)


def _check_cancel(cancel_event: Optional[threading.Event], table: str):
    if cancel_event is not None and cancel_event.is_set():
        raise PropagationCancelled(table)


def _fetch_existing(conn: duckdb.DuckDBPyConnection, spec: DimensionSpec) -> Dict[int, Tuple]:
    """Current rows keyed by natural key: nk -> (sk, *attribute values)."""
    where = {'is_current': True} if spec.scd2 else None
    stmt = statements.select(
        spec.table,
        [spec.natural_key, spec.surrogate_key] + spec.column_names,
        where
    )
    rows = stmt.execute(conn).fetchall()
    return {row[0]: row[1:] for row in rows}


def _has_changes(spec: DimensionSpec, existing: Tuple, values: Dict[str, Any]) -> bool:
    old_values = existing[1:]
    for column, old in zip(spec.columns, old_values):
        if coerce(old, column.kind) != values[column.name]:
            return True
    return False


def _insert_row(conn, spec: DimensionSpec, nk: int, values: Dict[str, Any], load_ts: datetime):
    row = {spec.natural_key: nk, **values}
    if spec.scd2:
        row.update({'effective_start': load_ts, 'effective_end': None, 'is_current': True})
        statements.insert(spec.table, row, spec.surrogate_key, spec.sequence).execute(conn)
    else:
        row = {spec.surrogate_key: nk, **row, 'updated_at': load_ts}
        if spec.current_flag:
            row['is_current'] = True
        statements.insert(spec.table, row).execute(conn)


def _new_version(conn, spec: DimensionSpec, old_sk: int, nk: int, values: Dict[str, Any], load_ts: datetime):
    conn.execute("BEGIN TRANSACTION")
    try:
        statements.update(
            spec.table,
            {'is_current': False, 'effective_end': load_ts},
            {spec.surrogate_key: old_sk}
        ).execute(conn)
        _insert_row(conn, spec, nk, values, load_ts)
        conn.execute("COMMIT")
    except duckdb.Error:
        conn.execute("ROLLBACK")
        raise


def upsert_dimension(
    conn: duckdb.DuckDBPyConnection,
    spec: DimensionSpec,
    records: Iterable[Dict[str, Any]],
    load_ts: datetime,
    cancel_event: Optional[threading.Event] = None
) -> Dict[str, int]:
    """
    Upsert mapped records into a dimension table.

    Records carry the natural key plus every attribute of the dimension. Unchanged
    records cause no write, so re-running on the same source is a no-op.
    """
    stats = {'inserted': 0, 'updated': 0, 'unchanged': 0}
    existing_map = _fetch_existing(conn, spec)

    for record in records:
        _check_cancel(cancel_event, spec.table)

        nk = coerce(record[spec.natural_key], 'int')
        values = {c.name: coerce(record.get(c.name), c.kind) for c in spec.columns}
        existing = existing_map.get(nk)

        if existing is None:
            _insert_row(conn, spec, nk, values, load_ts)
            stats['inserted'] += 1
        elif _has_changes(spec, existing, values):
            if spec.scd2:
                _new_version(conn, spec, existing[0], nk, values, load_ts)
            else:
                statements.update(
                    spec.table,
                    {**values, 'updated_at': load_ts},
                    {spec.surrogate_key: existing[0]}
                ).execute(conn)
            stats['updated'] += 1
        else:
            stats['unchanged'] += 1

    return stats


def process_dimension(
    conn: duckdb.DuckDBPyConnection,
    spec: DimensionSpec,
    source_df: pd.DataFrame,
    mapper: Callable[[Dict[str, Any]], Optional[Dict[str, Any]]],
    load_ts: datetime,
    cancel_event: Optional[threading.Event] = None
) -> Dict[str, int]:
    """Map source rows, defer the ones the mapper rejects, and upsert the rest."""
    stats = {'processed': 0, 'inserted': 0, 'updated': 0, 'unchanged': 0, 'deferred': 0}

    if source_df is None or source_df.empty:
        logger.info(f"{spec.table}: no source rows")
        return stats

    source_key = source_df.columns[0]
    rows = source_df.drop_duplicates(subset=[source_key], keep='last').to_dict('records')
    stats['processed'] = len(rows)

    records = []
    for row in rows:
        if is_null(row.get(source_key)):
            stats['deferred'] += 1
            continue
        record = mapper(row)
        if record is None:
            stats['deferred'] += 1
            continue
        records.append(record)

    if stats['deferred']:
        logger.warning(f"{spec.table}: deferred {stats['deferred']} rows with unresolved references")

    stats.update(upsert_dimension(conn, spec, records, load_ts, cancel_event))
    logger.info(
        f"{spec.table}: inserted={stats['inserted']}, updated={stats['updated']}, "
        f"unchanged={stats['unchanged']}, deferred={stats['deferred']}"
    )
    return stats
