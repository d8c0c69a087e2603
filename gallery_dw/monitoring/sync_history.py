"""Sync history - one row per warehouse propagation run."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import psycopg2

logger = logging.getLogger(__name__)

SOURCE_SYSTEM = 'ART_GALLERY_OLTP'
TARGET_SYSTEM = 'ART_GALLERY_DW'


@dataclass
class SyncRecord:
    """Sync run record."""
    sync_type: str
    sync_date: datetime = field(default_factory=datetime.now)
    status: str = 'running'
    records_processed: int = 0
    records_failed: int = 0
    duration_seconds: float = 0.0
    source_system: str = SOURCE_SYSTEM
    target_system: str = TARGET_SYSTEM
    error_message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class SyncHistoryLogger:
    """Writes sync runs to monitoring.etl_sync and reads summary statistics."""

    def __init__(self, pg_conn_string: str):
        self.conn_string = pg_conn_string

    def log(self, record: SyncRecord) -> bool:
        """Insert a sync record. Failures are logged, never raised."""
        try:
            with psycopg2.connect(self.conn_string) as conn:
                with conn.cursor() as cur:
                    cur.execute("""
                        INSERT INTO monitoring.etl_sync (
                            sync_date, status, records_processed, records_failed,
                            duration_seconds, source_system, target_system, sync_type,
                            error_message, details
                        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """, (
                        record.sync_date, record.status,
                        record.records_processed, record.records_failed,
                        record.duration_seconds, record.source_system, record.target_system,
                        record.sync_type, record.error_message,
                        json.dumps(record.details, default=str) if record.details else None,
                    ))
                conn.commit()
            logger.info(f"Sync logged: {record.sync_type} {record.status} - {record.records_processed} records")
            return True
        except psycopg2.Error as e:
            logger.warning(f"Failed to log sync history: {e}")
            return False

    def log_run(
        self,
        mode: str,
        success: bool,
        propagation=None,
        duration_seconds: float = 0.0,
        error_message: Optional[str] = None
    ) -> bool:
        """Build a record from a PropagationResult (if any) and log it."""
        record = SyncRecord(
            sync_type=mode,
            status='Success' if success else 'Failed',
            duration_seconds=duration_seconds,
            error_message=error_message,
        )
        if propagation is not None:
            record.records_processed = propagation.loaded_record_count
            record.records_failed = sum(t.deferred for t in propagation.per_table_results)
            record.details = {
                t.table: {'status': t.status, 'inserted': t.inserted, 'updated': t.updated,
                          'deferred': t.deferred, 'error': t.error}
                for t in propagation.per_table_results
            }
        return self.log(record)

    def get_statistics(self) -> Dict[str, Any]:
        """Totals, success rate, average duration and run counts per sync type."""
        stats = {
            'total_syncs': 0,
            'successful_syncs': 0,
            'failed_syncs': 0,
            'success_rate': 0.0,
            'total_records_processed': 0,
            'avg_duration_seconds': 0.0,
            'last_sync_date': None,
            'by_type': {},
        }
        try:
            with psycopg2.connect(self.conn_string) as conn:
                with conn.cursor() as cur:
                    cur.execute("""
                        SELECT
                            COUNT(*),
                            COUNT(*) FILTER (WHERE status = 'Success'),
                            COUNT(*) FILTER (WHERE status = 'Failed'),
                            COALESCE(SUM(records_processed), 0),
                            COALESCE(AVG(duration_seconds), 0),
                            MAX(sync_date)
                        FROM monitoring.etl_sync
                    """)
                    total, ok, failed, records, avg_duration, last_sync = cur.fetchone()

                    cur.execute("""
                        SELECT sync_type, COUNT(*)
                        FROM monitoring.etl_sync
                        GROUP BY sync_type
                        ORDER BY sync_type
                    """)
                    by_type = {row[0]: row[1] for row in cur.fetchall()}
        except psycopg2.Error as e:
            logger.warning(f"Failed to read sync statistics: {e}")
            return stats

        stats.update({
            'total_syncs': total,
            'successful_syncs': ok,
            'failed_syncs': failed,
            'success_rate': round(ok / total * 100, 2) if total else 0.0,
            'total_records_processed': int(records),
            'avg_duration_seconds': float(avg_duration),
            'last_sync_date': last_sync,
            'by_type': by_type,
        })
        return stats
