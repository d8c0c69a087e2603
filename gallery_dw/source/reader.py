"""
OLTP source readers.

Each reader returns one pandas DataFrame per source table with a fixed
column list, so downstream stages never depend on column order or extra
columns in the OLTP schema.
"""

import logging
from typing import Dict, List, Optional

import duckdb
import pandas as pd
import psycopg2

from gallery_dw.config import OLTP_SCHEMA, PG_CONN_STRING
from gallery_dw.errors import SourceUnavailableError

logger = logging.getLogger(__name__)

SOURCE_TABLES: Dict[str, List[str]] = {
    'artist': ['artist_id', 'name', 'nationality', 'birth_year', 'death_year'],
    'collection': ['collection_id', 'name', 'description', 'created_date'],
    'location': ['location_id', 'name', 'gallery_room', 'type', 'capacity'],
    'exhibitor': ['exhibitor_id', 'name', 'address', 'city', 'contact_info'],
    'insurance_policy': ['policy_id', 'provider', 'start_date', 'end_date', 'total_coverage_amount'],
    'artwork': [
        'artwork_id', 'title', 'artist_id', 'year_created', 'medium',
        'collection_id', 'location_id', 'estimated_value',
    ],
    'exhibition': ['exhibition_id', 'title', 'description', 'start_date', 'end_date', 'exhibitor_id'],
    'artwork_exhibition': ['artwork_id', 'exhibition_id'],
    'insurance': ['insurance_id', 'artwork_id', 'policy_id', 'insured_amount', 'coverage_type', 'status'],
    'loan': ['loan_id', 'artwork_id', 'exhibitor_id', 'start_date', 'end_date'],
    'restoration': ['restoration_id', 'artwork_id', 'staff_id', 'start_date', 'end_date'],
    'gallery_review': ['review_id', 'visitor_id', 'artwork_id', 'exhibition_id', 'rating', 'review_date'],
    'visitor': ['visitor_id', 'first_name', 'last_name', 'email', 'membership_type'],
    'staff': ['staff_id', 'name', 'role', 'hire_date'],
}

# Natural key column of each source table (first column by convention)
SOURCE_KEYS: Dict[str, str] = {name: columns[0] for name, columns in SOURCE_TABLES.items()}


class SourceReader:
    """Base reader. Subclasses implement `_query`."""

    def __init__(self, schema: Optional[str] = None):
        self.schema = schema

    def _query(self, sql: str) -> pd.DataFrame:
        raise NotImplementedError

    def _qualified(self, table: str) -> str:
        return f"{self.schema}.{table}" if self.schema else table

    def read_table(self, table: str) -> pd.DataFrame:
        """Read one source table. Raises SourceUnavailableError on any read failure."""
        if table not in SOURCE_TABLES:
            raise ValueError(f"Unknown source table: {table}")

        columns = SOURCE_TABLES[table]
        sql = (
            f"SELECT {', '.join(columns)} FROM {self._qualified(table)} "
            f"ORDER BY {', '.join(columns[:2]) if table == 'artwork_exhibition' else columns[0]}"
        )
        df = self._query(sql)
        logger.debug(f"Source {table}: {len(df)} rows")
        return df

    def read_all(self) -> Dict[str, pd.DataFrame]:
        """Read every source table used by the warehouse."""
        frames = {table: self.read_table(table) for table in SOURCE_TABLES}
        logger.info(f"Loaded source snapshot: {', '.join(f'{t}={len(df)}' for t, df in frames.items())}")
        return frames

    def read_ids(self, table: str) -> pd.DataFrame:
        """Read only the natural key column of a source table."""
        if table not in SOURCE_KEYS:
            raise ValueError(f"Unknown source table: {table}")
        key = SOURCE_KEYS[table]
        return self._query(f"SELECT DISTINCT {key} AS id FROM {self._qualified(table)}")


class PostgresSourceReader(SourceReader):
    """Reads the OLTP database over psycopg2."""

    def __init__(self, pg_conn_string: str = PG_CONN_STRING, schema: Optional[str] = OLTP_SCHEMA):
        super().__init__(schema)
        self.conn_string = pg_conn_string

    def _query(self, sql: str) -> pd.DataFrame:
        try:
            with psycopg2.connect(self.conn_string) as conn:
                return pd.read_sql(sql, conn)
        except (psycopg2.Error, pd.errors.DatabaseError) as e:
            logger.error(f"OLTP read failed: {e}")
            raise SourceUnavailableError(str(e)) from e


class DuckDBSourceReader(SourceReader):
    """Reads an OLTP snapshot held in DuckDB (local extracts and tests)."""

    def __init__(self, conn: duckdb.DuckDBPyConnection, schema: Optional[str] = None):
        super().__init__(schema)
        self.conn = conn

    def _query(self, sql: str) -> pd.DataFrame:
        try:
            return self.conn.execute(sql).fetchdf()
        except duckdb.Error as e:
            logger.error(f"OLTP snapshot read failed: {e}")
            raise SourceUnavailableError(str(e)) from e
