"""
MinIO storage operations.

Buckets:
- gallery-warehouse: DWH DuckDB file + Parquet exports
- gallery-backup: DuckDB backups
"""

import logging
import os
import tempfile
from datetime import datetime
from typing import Optional

import duckdb
from minio import Minio
from minio.error import S3Error

from gallery_dw.config import MINIO_CONFIG, DW_BACKUP_KEEP

logger = logging.getLogger(__name__)

# Buckets
WAREHOUSE_BUCKET = MINIO_CONFIG["bucket"]
BACKUP_BUCKET = "gallery-backup"

ALL_BUCKETS = [WAREHOUSE_BUCKET, BACKUP_BUCKET]

# DWH paths
DUCKDB_FILENAME = 'art_gallery_dw.duckdb'
DUCKDB_OBJECT = f'dwh/{DUCKDB_FILENAME}'
PARQUET_PREFIX = 'parquet'
BACKUP_PREFIX = 'dwh_backups'
LOCAL_TEMP_DIR = '/tmp/gallery_dwh'


def get_minio_client() -> Minio:
    """Get MinIO client."""
    return Minio(
        MINIO_CONFIG["endpoint"],
        access_key=MINIO_CONFIG["access_key"],
        secret_key=MINIO_CONFIG["secret_key"],
        secure=MINIO_CONFIG["secure"]
    )


def _ensure_bucket(client: Minio, bucket: str):
    if not client.bucket_exists(bucket):
        client.make_bucket(bucket)
        logger.info(f"Created bucket: {bucket}")


def init_minio_buckets():
    """Initialize all MinIO buckets on startup."""
    try:
        client = get_minio_client()
        for bucket in ALL_BUCKETS:
            _ensure_bucket(client, bucket)
        logger.info("MinIO initialization completed")
    except S3Error as e:
        logger.error(f"MinIO initialization error: {e}")
        raise


def download_duckdb(force_new: bool = False) -> str:
    """Download DuckDB file from MinIO. Returns local path."""
    os.makedirs(LOCAL_TEMP_DIR, exist_ok=True)
    local_path = os.path.join(LOCAL_TEMP_DIR, DUCKDB_FILENAME)

    for ext in ['', '.wal', '.tmp']:
        path = local_path + ext
        if os.path.exists(path):
            os.remove(path)

    if force_new:
        logger.info("Creating fresh DuckDB")
        return local_path

    client = get_minio_client()
    try:
        client.stat_object(WAREHOUSE_BUCKET, DUCKDB_OBJECT)
    except S3Error as e:
        if e.code in ('NoSuchKey', 'NoSuchBucket', 'NoSuchObject'):
            logger.info("No existing DuckDB, will create new")
            return local_path
        logger.error(f"Download DuckDB error: {e}")
        raise

    client.fget_object(WAREHOUSE_BUCKET, DUCKDB_OBJECT, local_path)
    logger.info("Downloaded DuckDB from MinIO")
    return local_path


def upload_duckdb(local_path: str):
    """Upload DuckDB file to MinIO."""
    try:
        client = get_minio_client()
        _ensure_bucket(client, WAREHOUSE_BUCKET)
        client.fput_object(WAREHOUSE_BUCKET, DUCKDB_OBJECT, local_path)
        logger.info("Uploaded DuckDB to MinIO")
    except S3Error as e:
        logger.error(f"Upload DuckDB error: {e}")
        raise


def get_duckdb_connection(local_path: str = None) -> duckdb.DuckDBPyConnection:
    """Get DuckDB connection from local temp file."""
    if local_path is None:
        local_path = os.path.join(LOCAL_TEMP_DIR, DUCKDB_FILENAME)
    os.makedirs(os.path.dirname(local_path), exist_ok=True)
    return duckdb.connect(local_path)


def backup_duckdb(local_path: str, keep: int = DW_BACKUP_KEEP) -> Optional[str]:
    """Backup DuckDB to MinIO. Keeps the last `keep` backups."""
    if not os.path.exists(local_path):
        return None

    try:
        client = get_minio_client()
        _ensure_bucket(client, BACKUP_BUCKET)

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        backup_object = f'{BACKUP_PREFIX}/art_gallery_dw_{timestamp}.duckdb'

        client.fput_object(BACKUP_BUCKET, backup_object, local_path)
        logger.info(f"Backed up DuckDB: {backup_object}")

        # Cleanup old backups
        objects = list(client.list_objects(BACKUP_BUCKET, prefix=BACKUP_PREFIX, recursive=True))
        backups = sorted([o.object_name for o in objects if o.object_name.endswith('.duckdb')])
        while len(backups) > keep:
            client.remove_object(BACKUP_BUCKET, backups.pop(0))

        return backup_object
    except S3Error as e:
        logger.error(f"Backup DuckDB error: {e}")
        return None


def export_parquet(conn: duckdb.DuckDBPyConnection, load_date: str) -> int:
    """Export facts joined with current dimension labels to Parquet on MinIO. Returns row count."""
    df = conn.execute("""
        SELECT
            f.*,
            aw.title AS artwork_title,
            ar.name AS artist_name,
            ex.title AS exhibition_title,
            d.full_date AS exhibition_start
        FROM FactExhibitionActivity f
        JOIN DimArtwork aw ON f.artwork_key = aw.artwork_sk
        JOIN DimArtist ar ON f.artist_key = ar.artist_sk
        JOIN DimExhibition ex ON f.exhibition_key = ex.exhibition_sk
        JOIN DimDate d ON f.date_key = d.date_key
    """).fetchdf()

    if df.empty:
        logger.info("No facts to export")
        return 0

    client = get_minio_client()
    _ensure_bucket(client, WAREHOUSE_BUCKET)

    with tempfile.NamedTemporaryFile(suffix='.parquet', delete=False) as tmp:
        tmp_path = tmp.name
    try:
        df.to_parquet(tmp_path, index=False)
        object_name = f'{PARQUET_PREFIX}/load_date={load_date}/fact_exhibition_activity.parquet'
        client.fput_object(WAREHOUSE_BUCKET, object_name, tmp_path)
    finally:
        os.unlink(tmp_path)

    logger.info(f"Exported {len(df)} records to Parquet")
    return len(df)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_minio_buckets()
