"""
DimInsurance dimension processor with SCD Type 2.

Each OLTP insurance record links an artwork to a policy. Records for an
artwork that is not yet in DimArtwork are deferred.
"""

import threading
from datetime import datetime
from typing import Any, Dict, Optional

import duckdb
import pandas as pd

from ..cache import load_key_cache
from ..prober import SchemaCapabilities
from .base import Column, DimensionSpec, coerce, process_dimension

INSURANCE = DimensionSpec(
    table='DimInsurance',
    natural_key='insurance_nk',
    surrogate_key='insurance_sk',
    columns=(
        Column('artwork_key', 'int'),
        Column('policy_key', 'int'),
        Column('coverage_amount', 'float'),
        Column('coverage_type'),
        Column('status'),
    ),
    scd2=True,
    sequence='seq_dim_insurance_sk',
)


def map_insurance(
    row: Dict[str, Any],
    artworks: Dict[int, int],
    policies: Dict[int, int]
) -> Optional[Dict[str, Any]]:
    artwork_key = artworks.get(coerce(row.get('artwork_id'), 'int'))
    if artwork_key is None:
        return None
    return {
        'insurance_nk': row['insurance_id'],
        'artwork_key': artwork_key,
        'policy_key': policies.get(coerce(row.get('policy_id'), 'int')),
        'coverage_amount': row.get('insured_amount'),
        'coverage_type': row.get('coverage_type'),
        'status': row.get('status'),
    }


def process_dim_insurance(
    conn: duckdb.DuckDBPyConnection,
    insurance_df: pd.DataFrame,
    load_ts: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None,
    capabilities: Optional[SchemaCapabilities] = None
) -> Dict[str, int]:
    artworks = load_key_cache(conn, 'artwork', capabilities)
    policies = load_key_cache(conn, 'policy', capabilities)
    return process_dimension(
        conn, INSURANCE, insurance_df,
        lambda row: map_insurance(row, artworks, policies),
        load_ts or datetime.now(), cancel_event
    )
