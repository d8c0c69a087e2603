"""Warehouse file storage on MinIO."""

from .minio import (
    get_minio_client,
    init_minio_buckets,
    download_duckdb,
    upload_duckdb,
    backup_duckdb,
    get_duckdb_connection,
    export_parquet,
)

__all__ = [
    'get_minio_client',
    'init_minio_buckets',
    'download_duckdb',
    'upload_duckdb',
    'backup_duckdb',
    'get_duckdb_connection',
    'export_parquet',
]
