"""
DimExhibition dimension processor with SCD Type 2.
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
from .date import to_date_key

logger = logging.getLogger(__name__)

EXHIBITION = DimensionSpec(
    table='DimExhibition',
    natural_key='exhibition_nk',
    surrogate_key='exhibition_sk',
    columns=(
        Column('title'),
        Column('description'),
        Column('start_date', 'date'),
        Column('end_date', 'date'),
        Column('start_date_key', 'int'),
        Column('end_date_key', 'int'),
        Column('duration_days', 'int'),
        Column('exhibitor_key', 'int'),
    ),
    scd2=True,
    sequence='seq_dim_exhibition_sk',
)


def map_exhibition(row: Dict[str, Any], exhibitors: Dict[int, int]) -> Optional[Dict[str, Any]]:
    """
    Map an OLTP exhibition row.

    An exhibition without an exhibitor is loaded with a NULL exhibitor_key;
    one that names an exhibitor not yet in DimExhibitor is deferred.
    """
    exhibitor_id = coerce(row.get('exhibitor_id'), 'int')
    exhibitor_key = None
    if exhibitor_id is not None:
        exhibitor_key = exhibitors.get(exhibitor_id)
        if exhibitor_key is None:
            logger.debug(f"Exhibition {row.get('exhibition_id')}: exhibitor {exhibitor_id} not loaded")
            return None

    start_date = coerce(row.get('start_date'), 'date')
    end_date = coerce(row.get('end_date'), 'date')
    duration = (end_date - start_date).days if start_date and end_date else None

    return {
        'exhibition_nk': row['exhibition_id'],
        'title': label(row.get('title')),
        'description': row.get('description'),
        'start_date': start_date,
        'end_date': end_date,
        'start_date_key': to_date_key(start_date),
        'end_date_key': to_date_key(end_date),
        'duration_days': duration,
        'exhibitor_key': exhibitor_key,
    }


def process_dim_exhibition(
    conn: duckdb.DuckDBPyConnection,
    exhibition_df: pd.DataFrame,
    load_ts: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None,
    capabilities: Optional[SchemaCapabilities] = None
) -> Dict[str, int]:
    exhibitors = load_key_cache(conn, 'exhibitor', capabilities)
    return process_dimension(
        conn, EXHIBITION, exhibition_df,
        lambda row: map_exhibition(row, exhibitors),
        load_ts or datetime.now(), cancel_event
    )
