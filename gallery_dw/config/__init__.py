"""Configuration read from environment variables."""

from .database_config import DB_CONFIG, OLTP_SCHEMA, PG_CONN_STRING
from .storage_config import MINIO_CONFIG, DW_BACKUP_KEEP
from .warehouse_config import (
    DW_DATE_PROJECTION_DAYS,
    INTEGRITY_ERROR_THRESHOLD,
    ANALYTICS_CACHE_TTL_SECONDS,
    KPI_CACHE_TTL_SECONDS,
)

__all__ = [
    'DB_CONFIG',
    'OLTP_SCHEMA',
    'PG_CONN_STRING',
    'MINIO_CONFIG',
    'DW_BACKUP_KEEP',
    'DW_DATE_PROJECTION_DAYS',
    'INTEGRITY_ERROR_THRESHOLD',
    'ANALYTICS_CACHE_TTL_SECONDS',
    'KPI_CACHE_TTL_SECONDS',
]
