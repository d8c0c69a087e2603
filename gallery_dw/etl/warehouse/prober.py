"""
Schema capability probing.

The warehouse may be partially provisioned. Capabilities are resolved once
at the start of a run and passed to every stage instead of re-querying the
catalog per table.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable

import duckdb

from gallery_dw.errors import WarehouseUnavailableError
from .schema import WAREHOUSE_TABLES

logger = logging.getLogger(__name__)


@dataclass
class SchemaCapabilities:
    """Which warehouse tables exist, and their columns."""
    tables: Dict[str, bool] = field(default_factory=dict)
    columns: Dict[str, FrozenSet[str]] = field(default_factory=dict)

    def has_table(self, table: str) -> bool:
        return self.tables.get(table, False)

    def has_column(self, table: str, column: str) -> bool:
        return column.lower() in self.columns.get(table, frozenset())

    @property
    def present_tables(self):
        return [t for t, exists in self.tables.items() if exists]

    @property
    def missing_tables(self):
        return [t for t, exists in self.tables.items() if not exists]


def table_exists(conn: duckdb.DuckDBPyConnection, table: str) -> bool:
    """Check the catalog for a table; fall back to a zero-row probe query."""
    try:
        row = conn.execute("""
            SELECT COUNT(*) FROM information_schema.tables
            WHERE lower(table_name) = lower(?)
        """, [table]).fetchone()
        return row[0] > 0
    except duckdb.Error as e:
        logger.debug(f"Catalog lookup failed for {table}, probing: {e}")

    try:
        conn.execute(f"SELECT * FROM {table} LIMIT 0")
        return True
    except duckdb.Error:
        return False


def table_columns(conn: duckdb.DuckDBPyConnection, table: str) -> FrozenSet[str]:
    """Lower-cased column names of an existing table."""
    try:
        rows = conn.execute("""
            SELECT column_name FROM information_schema.columns
            WHERE lower(table_name) = lower(?)
        """, [table]).fetchall()
        return frozenset(r[0].lower() for r in rows)
    except duckdb.Error as e:
        logger.debug(f"Column lookup failed for {table}: {e}")
        return frozenset()


def probe_schema(
    conn: duckdb.DuckDBPyConnection,
    tables: Iterable[str] = None
) -> SchemaCapabilities:
    """Resolve table presence and column sets for the given tables (default: all)."""
    capabilities = SchemaCapabilities()
    for table in (tables if tables is not None else WAREHOUSE_TABLES):
        exists = table_exists(conn, table)
        capabilities.tables[table] = exists
        if exists:
            capabilities.columns[table] = table_columns(conn, table)

    if capabilities.missing_tables:
        logger.warning(f"Warehouse tables missing: {', '.join(capabilities.missing_tables)}")
    logger.info(f"Schema probe: {len(capabilities.present_tables)}/{len(capabilities.tables)} tables present")
    return capabilities


def ensure_connection(conn: duckdb.DuckDBPyConnection) -> None:
    """Raise WarehouseUnavailableError when the connection cannot run a query."""
    try:
        conn.execute("SELECT 1").fetchone()
    except duckdb.Error as e:
        raise WarehouseUnavailableError(str(e)) from e
