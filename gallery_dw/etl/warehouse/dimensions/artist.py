"""
DimArtist dimension processor with SCD Type 2.
"""

import threading
from datetime import datetime
from typing import Any, Dict, Optional

import duckdb
import pandas as pd

from .base import Column, DimensionSpec, label, process_dimension

ARTIST = DimensionSpec(
    table='DimArtist',
    natural_key='artist_nk',
    surrogate_key='artist_sk',
    columns=(
        Column('name'),
        Column('nationality'),
        Column('birth_year', 'int'),
        Column('death_year', 'int'),
    ),
    scd2=True,
    sequence='seq_dim_artist_sk',
)


def map_artist(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'artist_nk': row['artist_id'],
        'name': label(row.get('name')),
        'nationality': row.get('nationality'),
        'birth_year': row.get('birth_year'),
        'death_year': row.get('death_year'),
    }


def process_dim_artist(
    conn: duckdb.DuckDBPyConnection,
    artist_df: pd.DataFrame,
    load_ts: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None
) -> Dict[str, int]:
    """Process DimArtist. Compare columns: name, nationality, birth_year, death_year."""
    return process_dimension(conn, ARTIST, artist_df, map_artist, load_ts or datetime.now(), cancel_event)
