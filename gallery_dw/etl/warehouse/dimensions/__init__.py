"""
Dimension processing modules for DWH ETL.
"""

from .base import DimensionSpec, Column, coerce, label, upsert_dimension, process_dimension
from .date import process_dim_date, to_date_key
from .artist import process_dim_artist
from .artwork import process_dim_artwork
from .exhibition import process_dim_exhibition
from .visitor import process_dim_visitor
from .staff import process_dim_staff
from .insurance import process_dim_insurance
from .reference import (
    process_dim_collection,
    process_dim_location,
    process_dim_exhibitor,
    process_dim_policy,
)

__all__ = [
    'DimensionSpec',
    'Column',
    'coerce',
    'label',
    'upsert_dimension',
    'process_dimension',
    'process_dim_date',
    'to_date_key',
    'process_dim_artist',
    'process_dim_artwork',
    'process_dim_exhibition',
    'process_dim_visitor',
    'process_dim_staff',
    'process_dim_insurance',
    'process_dim_collection',
    'process_dim_location',
    'process_dim_exhibitor',
    'process_dim_policy',
]
