"""Warehouse ETL, integrity and analytics configuration"""
import os

# DimDate is extended this many days past the latest date seen in a run
DW_DATE_PROJECTION_DAYS = int(os.getenv("DW_DATE_PROJECTION_DAYS", "30"))

# Integrity issues at or above this count are reported as Error
INTEGRITY_ERROR_THRESHOLD = int(os.getenv("INTEGRITY_ERROR_THRESHOLD", "100"))

# Analytics cache lifetimes
ANALYTICS_CACHE_TTL_SECONDS = int(os.getenv("ANALYTICS_CACHE_TTL_SECONDS", "300"))
KPI_CACHE_TTL_SECONDS = int(os.getenv("KPI_CACHE_TTL_SECONDS", "600"))
