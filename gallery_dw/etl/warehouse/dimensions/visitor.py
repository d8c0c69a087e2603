"""
DimVisitor dimension processor with SCD Type 2.

Only full name, email and membership type are carried into the warehouse.
"""

import threading
from datetime import datetime
from typing import Any, Dict, Optional

import duckdb
import pandas as pd

from .base import Column, DimensionSpec, is_null, label, process_dimension

VISITOR = DimensionSpec(
    table='DimVisitor',
    natural_key='visitor_nk',
    surrogate_key='visitor_sk',
    columns=(
        Column('full_name'),
        Column('email'),
        Column('membership_type'),
    ),
    scd2=True,
    sequence='seq_dim_visitor_sk',
)


def full_name(first: Any, last: Any) -> str:
    parts = [str(p).strip() for p in (first, last) if not is_null(p) and str(p).strip()]
    return label(' '.join(parts))


def map_visitor(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'visitor_nk': row['visitor_id'],
        'full_name': full_name(row.get('first_name'), row.get('last_name')),
        'email': row.get('email'),
        'membership_type': row.get('membership_type'),
    }


def process_dim_visitor(
    conn: duckdb.DuckDBPyConnection,
    visitor_df: pd.DataFrame,
    load_ts: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None
) -> Dict[str, int]:
    return process_dimension(conn, VISITOR, visitor_df, map_visitor, load_ts or datetime.now(), cancel_event)
