"""
Dimension cache utilities.
"""

import logging
from typing import Dict, Optional

import duckdb

from .prober import SchemaCapabilities, table_exists

logger = logging.getLogger(__name__)

# name -> (table, natural key column, surrogate key column, has is_current)
DIMENSION_KEYS = {
    'artist': ('DimArtist', 'artist_nk', 'artist_sk', True),
    'collection': ('DimCollection', 'collection_nk', 'collection_key', False),
    'location': ('DimLocation', 'location_nk', 'location_key', True),
    'exhibitor': ('DimExhibitor', 'exhibitor_nk', 'exhibitor_key', False),
    'policy': ('DimPolicy', 'policy_nk', 'policy_key', False),
    'artwork': ('DimArtwork', 'artwork_nk', 'artwork_sk', True),
    'exhibition': ('DimExhibition', 'exhibition_nk', 'exhibition_sk', True),
    'visitor': ('DimVisitor', 'visitor_nk', 'visitor_sk', True),
    'staff': ('DimStaff', 'staff_nk', 'staff_sk', True),
    'insurance': ('DimInsurance', 'insurance_nk', 'insurance_sk', True),
}


def _present(conn, table: str, capabilities: Optional[SchemaCapabilities]) -> bool:
    if capabilities is not None:
        return capabilities.has_table(table)
    return table_exists(conn, table)


def load_key_cache(
    conn: duckdb.DuckDBPyConnection,
    name: str,
    capabilities: Optional[SchemaCapabilities] = None
) -> Dict[int, int]:
    """natural key -> surrogate key of current rows. Empty when the table is absent."""
    table, nk, sk, has_current = DIMENSION_KEYS[name]
    if not _present(conn, table, capabilities):
        return {}
    where = " WHERE is_current = TRUE" if has_current else ""
    rows = conn.execute(f"SELECT {nk}, {sk} FROM {table}{where}").fetchall()
    return {row[0]: row[1] for row in rows}


def load_date_keys(
    conn: duckdb.DuckDBPyConnection,
    capabilities: Optional[SchemaCapabilities] = None
) -> set:
    if not _present(conn, 'DimDate', capabilities):
        return set()
    return {row[0] for row in conn.execute("SELECT date_key FROM DimDate").fetchall()}


def init_dimension_caches(
    conn: duckdb.DuckDBPyConnection,
    capabilities: Optional[SchemaCapabilities] = None
) -> Dict[str, Dict]:
    """
    Initialize caches for dimension lookups.

    Returns dict with one natural key -> surrogate key map per dimension,
    plus 'date': set of date keys present in DimDate.
    """
    caches = {name: load_key_cache(conn, name, capabilities) for name in DIMENSION_KEYS}
    caches['date'] = load_date_keys(conn, capabilities)

    logger.info(
        "Caches initialized: "
        + ", ".join(f"{name}={len(cache)}" for name, cache in caches.items())
    )
    return caches
