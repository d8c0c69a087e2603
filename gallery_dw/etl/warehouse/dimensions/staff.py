"""
DimStaff dimension processor with SCD Type 2.
"""

import threading
from datetime import datetime
from typing import Any, Dict, Optional

import duckdb
import pandas as pd

from .base import Column, DimensionSpec, label, process_dimension

STAFF = DimensionSpec(
    table='DimStaff',
    natural_key='staff_nk',
    surrogate_key='staff_sk',
    columns=(
        Column('full_name'),
        Column('job_title'),
        Column('hire_date', 'date'),
    ),
    scd2=True,
    sequence='seq_dim_staff_sk',
)


def map_staff(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'staff_nk': row['staff_id'],
        'full_name': label(row.get('name')),
        'job_title': row.get('role'),
        'hire_date': row.get('hire_date'),
    }


def process_dim_staff(
    conn: duckdb.DuckDBPyConnection,
    staff_df: pd.DataFrame,
    load_ts: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None
) -> Dict[str, int]:
    return process_dimension(conn, STAFF, staff_df, map_staff, load_ts or datetime.now(), cancel_event)
