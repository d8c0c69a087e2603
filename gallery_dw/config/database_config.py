"""Database configuration"""
import os

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "postgres"),
    "port": int(os.getenv("DB_PORT", "5432")),
    "user": os.getenv("DB_USER", "gallery"),
    "password": os.getenv("DB_PASSWORD", "gallery"),
    "database": os.getenv("DB_NAME", "art_gallery"),
}

# Schema holding the OLTP tables read by the warehouse job
OLTP_SCHEMA = os.getenv("OLTP_SCHEMA", "art_gallery_oltp")

PG_CONN_STRING = os.getenv(
    "PG_CONN_STRING",
    "postgresql://{user}:{password}@{host}:{port}/{database}".format(**DB_CONFIG),
)
