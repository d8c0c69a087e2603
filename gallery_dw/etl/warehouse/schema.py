"""
Warehouse star schema DDL.

Tables are created individually so a warehouse may be provisioned with only
part of the schema; the pipeline skips stages whose table is absent.
"""

import logging
from typing import Dict, Iterable, Optional

import duckdb

logger = logging.getLogger(__name__)

SEQUENCES = {
    'DimArtist': 'seq_dim_artist_sk',
    'DimArtwork': 'seq_dim_artwork_sk',
    'DimExhibition': 'seq_dim_exhibition_sk',
    'DimVisitor': 'seq_dim_visitor_sk',
    'DimStaff': 'seq_dim_staff_sk',
    'DimInsurance': 'seq_dim_insurance_sk',
}

TABLE_DDL: Dict[str, str] = {
    'DimDate': """
        CREATE TABLE IF NOT EXISTS DimDate (
            date_key INTEGER PRIMARY KEY,
            full_date DATE NOT NULL,
            day_of_week INTEGER,
            day_name VARCHAR,
            day_of_month INTEGER,
            day_of_year INTEGER,
            week_of_year INTEGER,
            month_number INTEGER,
            month_name VARCHAR,
            quarter INTEGER,
            quarter_name VARCHAR,
            year INTEGER,
            year_month VARCHAR,
            is_weekend BOOLEAN
        )
    """,
    'DimArtist': """
        CREATE TABLE IF NOT EXISTS DimArtist (
            artist_sk BIGINT PRIMARY KEY,
            artist_nk INTEGER NOT NULL,
            name VARCHAR,
            nationality VARCHAR,
            birth_year INTEGER,
            death_year INTEGER,
            effective_start TIMESTAMP NOT NULL,
            effective_end TIMESTAMP,
            is_current BOOLEAN NOT NULL DEFAULT TRUE
        )
    """,
    'DimCollection': """
        CREATE TABLE IF NOT EXISTS DimCollection (
            collection_key INTEGER PRIMARY KEY,
            collection_nk INTEGER NOT NULL,
            name VARCHAR,
            description VARCHAR,
            created_date_key INTEGER,
            updated_at TIMESTAMP
        )
    """,
    'DimLocation': """
        CREATE TABLE IF NOT EXISTS DimLocation (
            location_key INTEGER PRIMARY KEY,
            location_nk INTEGER NOT NULL,
            name VARCHAR,
            gallery_room VARCHAR,
            location_type VARCHAR,
            capacity INTEGER,
            is_current BOOLEAN NOT NULL DEFAULT TRUE,
            updated_at TIMESTAMP
        )
    """,
    'DimExhibitor': """
        CREATE TABLE IF NOT EXISTS DimExhibitor (
            exhibitor_key INTEGER PRIMARY KEY,
            exhibitor_nk INTEGER NOT NULL,
            name VARCHAR,
            address VARCHAR,
            city VARCHAR,
            contact_info VARCHAR,
            updated_at TIMESTAMP
        )
    """,
    'DimPolicy': """
        CREATE TABLE IF NOT EXISTS DimPolicy (
            policy_key INTEGER PRIMARY KEY,
            policy_nk INTEGER NOT NULL,
            provider VARCHAR,
            start_date_key INTEGER,
            end_date_key INTEGER,
            total_coverage_amount DOUBLE,
            updated_at TIMESTAMP
        )
    """,
    'DimArtwork': """
        CREATE TABLE IF NOT EXISTS DimArtwork (
            artwork_sk BIGINT PRIMARY KEY,
            artwork_nk INTEGER NOT NULL,
            title VARCHAR,
            artist_key BIGINT,
            year_created INTEGER,
            medium VARCHAR,
            collection_key INTEGER,
            location_key INTEGER,
            estimated_value DOUBLE,
            effective_start TIMESTAMP NOT NULL,
            effective_end TIMESTAMP,
            is_current BOOLEAN NOT NULL DEFAULT TRUE
        )
    """,
    'DimExhibition': """
        CREATE TABLE IF NOT EXISTS DimExhibition (
            exhibition_sk BIGINT PRIMARY KEY,
            exhibition_nk INTEGER NOT NULL,
            title VARCHAR,
            description VARCHAR,
            start_date DATE,
            end_date DATE,
            start_date_key INTEGER,
            end_date_key INTEGER,
            duration_days INTEGER,
            exhibitor_key INTEGER,
            effective_start TIMESTAMP NOT NULL,
            effective_end TIMESTAMP,
            is_current BOOLEAN NOT NULL DEFAULT TRUE
        )
    """,
    'DimVisitor': """
        CREATE TABLE IF NOT EXISTS DimVisitor (
            visitor_sk BIGINT PRIMARY KEY,
            visitor_nk INTEGER NOT NULL,
            full_name VARCHAR,
            email VARCHAR,
            membership_type VARCHAR,
            effective_start TIMESTAMP NOT NULL,
            effective_end TIMESTAMP,
            is_current BOOLEAN NOT NULL DEFAULT TRUE
        )
    """,
    'DimStaff': """
        CREATE TABLE IF NOT EXISTS DimStaff (
            staff_sk BIGINT PRIMARY KEY,
            staff_nk INTEGER NOT NULL,
            full_name VARCHAR,
            job_title VARCHAR,
            hire_date DATE,
            effective_start TIMESTAMP NOT NULL,
            effective_end TIMESTAMP,
            is_current BOOLEAN NOT NULL DEFAULT TRUE
        )
    """,
    'DimInsurance': """
        CREATE TABLE IF NOT EXISTS DimInsurance (
            insurance_sk BIGINT PRIMARY KEY,
            insurance_nk INTEGER NOT NULL,
            artwork_key BIGINT,
            policy_key INTEGER,
            coverage_amount DOUBLE,
            coverage_type VARCHAR,
            status VARCHAR,
            effective_start TIMESTAMP NOT NULL,
            effective_end TIMESTAMP,
            is_current BOOLEAN NOT NULL DEFAULT TRUE
        )
    """,
    'FactExhibitionActivity': """
        CREATE TABLE IF NOT EXISTS FactExhibitionActivity (
            fact_key BIGINT PRIMARY KEY,
            date_key INTEGER NOT NULL,
            artwork_key BIGINT NOT NULL,
            artist_key BIGINT NOT NULL,
            exhibition_key BIGINT NOT NULL,
            exhibitor_key INTEGER NOT NULL,
            collection_key INTEGER,
            location_key INTEGER,
            policy_key INTEGER,
            artwork_nk INTEGER NOT NULL,
            exhibition_nk INTEGER NOT NULL,
            estimated_value DOUBLE,
            insured_amount DOUBLE,
            loan_flag INTEGER,
            restoration_count INTEGER,
            review_count INTEGER,
            avg_rating DOUBLE,
            etl_load_ts TIMESTAMP,
            UNIQUE (artwork_nk, exhibition_nk)
        )
    """,
}

WAREHOUSE_TABLES = list(TABLE_DDL.keys())

# Tables cleared by a Full propagation, children first. DimDate is kept.
FULL_RESET_ORDER = [
    'FactExhibitionActivity',
    'DimInsurance',
    'DimStaff',
    'DimVisitor',
    'DimExhibition',
    'DimArtwork',
    'DimPolicy',
    'DimExhibitor',
    'DimLocation',
    'DimCollection',
    'DimArtist',
]


def setup_schema(conn: duckdb.DuckDBPyConnection, tables: Optional[Iterable[str]] = None) -> None:
    """Create the given warehouse tables (default: all) and their sequences if missing."""
    for table in (tables if tables is not None else WAREHOUSE_TABLES):
        if table not in TABLE_DDL:
            raise ValueError(f"Unknown warehouse table: {table}")
        sequence = SEQUENCES.get(table)
        if sequence:
            conn.execute(f"CREATE SEQUENCE IF NOT EXISTS {sequence} START 1")
        conn.execute(TABLE_DDL[table])
    logger.info("Schema setup complete")


def is_new_warehouse(conn: duckdb.DuckDBPyConnection) -> bool:
    """True when the database holds none of the warehouse tables."""
    placeholders = ','.join(['?'] * len(WAREHOUSE_TABLES))
    row = conn.execute(f"""
        SELECT COUNT(*) FROM information_schema.tables
        WHERE lower(table_name) IN ({placeholders})
    """, [t.lower() for t in WAREHOUSE_TABLES]).fetchone()
    return row[0] == 0


def reset_warehouse(conn: duckdb.DuckDBPyConnection, present_tables: Iterable[str]) -> Dict[str, int]:
    """Delete all rows from fact and dimension tables before a Full load."""
    present = set(present_tables)
    deleted = {}
    for table in FULL_RESET_ORDER:
        if table not in present:
            continue
        count = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        conn.execute(f"DELETE FROM {table}")
        deleted[table] = count
    logger.info(f"Full reset: {', '.join(f'{t}={n}' for t, n in deleted.items()) or 'nothing to clear'}")
    return deleted
