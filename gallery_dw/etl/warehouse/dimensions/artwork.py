"""
DimArtwork dimension processor with SCD Type 2.

The artist reference is mandatory: an artwork whose artist has no current
DimArtist row is deferred until a later run. Collection and location are
optional and resolve to NULL when their reference row is absent.
"""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Optional

import duckdb
import pandas as pd

from ..cache import load_key_cache
from ..prober import SchemaCapabilities
from .base import Column, DimensionSpec, coerce, label, process_dimension

logger = logging.getLogger(__name__)

ARTWORK = DimensionSpec(
    table='DimArtwork',
    natural_key='artwork_nk',
    surrogate_key='artwork_sk',
    columns=(
        Column('title'),
        Column('artist_key', 'int'),
        Column('year_created', 'int'),
        Column('medium'),
        Column('collection_key', 'int'),
        Column('location_key', 'int'),
        Column('estimated_value', 'float'),
    ),
    scd2=True,
    sequence='seq_dim_artwork_sk',
)


def map_artwork(
    row: Dict[str, Any],
    artists: Dict[int, int],
    collections: Dict[int, int],
    locations: Dict[int, int]
) -> Optional[Dict[str, Any]]:
    artist_key = artists.get(coerce(row.get('artist_id'), 'int'))
    if artist_key is None:
        logger.debug(f"Artwork {row.get('artwork_id')}: artist {row.get('artist_id')} not loaded")
        return None

    return {
        'artwork_nk': row['artwork_id'],
        'title': label(row.get('title')),
        'artist_key': artist_key,
        'year_created': row.get('year_created'),
        'medium': row.get('medium'),
        'collection_key': collections.get(coerce(row.get('collection_id'), 'int')),
        'location_key': locations.get(coerce(row.get('location_id'), 'int')),
        'estimated_value': row.get('estimated_value'),
    }


def process_dim_artwork(
    conn: duckdb.DuckDBPyConnection,
    artwork_df: pd.DataFrame,
    load_ts: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None,
    capabilities: Optional[SchemaCapabilities] = None
) -> Dict[str, int]:
    artists = load_key_cache(conn, 'artist', capabilities)
    collections = load_key_cache(conn, 'collection', capabilities)
    locations = load_key_cache(conn, 'location', capabilities)

    return process_dimension(
        conn, ARTWORK, artwork_df,
        lambda row: map_artwork(row, artists, collections, locations),
        load_ts or datetime.now(), cancel_event
    )
