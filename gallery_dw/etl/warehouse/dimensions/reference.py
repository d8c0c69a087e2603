"""
Type 1 reference dimensions: DimCollection, DimLocation, DimExhibitor, DimPolicy.

The OLTP id is used as the surrogate key and changes overwrite the row in
place. DimLocation keeps an is_current flag (always TRUE) so queries can
filter every dimension the same way.
"""

import threading
from datetime import datetime
from typing import Any, Dict, Optional

import duckdb
import pandas as pd

from .base import Column, DimensionSpec, label, process_dimension
from .date import to_date_key

COLLECTION = DimensionSpec(
    table='DimCollection',
    natural_key='collection_nk',
    surrogate_key='collection_key',
    columns=(
        Column('name'),
        Column('description'),
        Column('created_date_key', 'int'),
    ),
)

LOCATION = DimensionSpec(
    table='DimLocation',
    natural_key='location_nk',
    surrogate_key='location_key',
    columns=(
        Column('name'),
        Column('gallery_room'),
        Column('location_type'),
        Column('capacity', 'int'),
    ),
    current_flag=True,
)

EXHIBITOR = DimensionSpec(
    table='DimExhibitor',
    natural_key='exhibitor_nk',
    surrogate_key='exhibitor_key',
    columns=(
        Column('name'),
        Column('address'),
        Column('city'),
        Column('contact_info'),
    ),
)

POLICY = DimensionSpec(
    table='DimPolicy',
    natural_key='policy_nk',
    surrogate_key='policy_key',
    columns=(
        Column('provider'),
        Column('start_date_key', 'int'),
        Column('end_date_key', 'int'),
        Column('total_coverage_amount', 'float'),
    ),
)


def map_collection(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'collection_nk': row['collection_id'],
        'name': label(row.get('name')),
        'description': row.get('description'),
        'created_date_key': to_date_key(row.get('created_date')),
    }


def map_location(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'location_nk': row['location_id'],
        'name': label(row.get('name')),
        'gallery_room': row.get('gallery_room'),
        'location_type': row.get('type'),
        'capacity': row.get('capacity'),
    }


def map_exhibitor(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'exhibitor_nk': row['exhibitor_id'],
        'name': label(row.get('name')),
        'address': row.get('address'),
        'city': row.get('city'),
        'contact_info': row.get('contact_info'),
    }


def map_policy(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'policy_nk': row['policy_id'],
        'provider': label(row.get('provider')),
        'start_date_key': to_date_key(row.get('start_date')),
        'end_date_key': to_date_key(row.get('end_date')),
        'total_coverage_amount': row.get('total_coverage_amount'),
    }


def process_dim_collection(
    conn: duckdb.DuckDBPyConnection,
    collection_df: pd.DataFrame,
    load_ts: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None
) -> Dict[str, int]:
    return process_dimension(conn, COLLECTION, collection_df, map_collection, load_ts or datetime.now(), cancel_event)


def process_dim_location(
    conn: duckdb.DuckDBPyConnection,
    location_df: pd.DataFrame,
    load_ts: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None
) -> Dict[str, int]:
    return process_dimension(conn, LOCATION, location_df, map_location, load_ts or datetime.now(), cancel_event)


def process_dim_exhibitor(
    conn: duckdb.DuckDBPyConnection,
    exhibitor_df: pd.DataFrame,
    load_ts: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None
) -> Dict[str, int]:
    return process_dimension(conn, EXHIBITOR, exhibitor_df, map_exhibitor, load_ts or datetime.now(), cancel_event)


def process_dim_policy(
    conn: duckdb.DuckDBPyConnection,
    policy_df: pd.DataFrame,
    load_ts: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None
) -> Dict[str, int]:
    return process_dimension(conn, POLICY, policy_df, map_policy, load_ts or datetime.now(), cancel_event)
