"""Storage configuration (MinIO)"""
import os

MINIO_CONFIG = {
    "endpoint": os.getenv("MINIO_ENDPOINT", "minio:9000"),
    "access_key": os.getenv("MINIO_ACCESS_KEY", "minioadmin"),
    "secret_key": os.getenv("MINIO_SECRET_KEY", "minioadmin"),
    "bucket": os.getenv("MINIO_WAREHOUSE_BUCKET", "gallery-warehouse"),
    "secure": os.getenv("MINIO_SECURE", "false").lower() == "true",
}

DW_BACKUP_KEEP = int(os.getenv("DW_BACKUP_KEEP", "5"))
