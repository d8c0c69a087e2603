"""Unit tests for sync history logging."""
from datetime import datetime
from unittest import mock

import psycopg2
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from gallery_dw.etl.warehouse.results import PropagationResult, TableResult
from gallery_dw.monitoring import SyncHistoryLogger, SyncRecord


@pytest.fixture
def pg():
    """Patched psycopg2.connect; yields the cursor used inside the logger."""
    with mock.patch('gallery_dw.monitoring.sync_history.psycopg2.connect') as connect:
        conn = connect.return_value.__enter__.return_value
        cursor = conn.cursor.return_value.__enter__.return_value
        yield connect, cursor


class TestLog:
    """Tests for SyncHistoryLogger.log."""

    def test_inserts_record(self, pg):
        connect, cursor = pg
        record = SyncRecord(sync_type='Full', status='Success', records_processed=12, details={'a': 1})

        assert SyncHistoryLogger('postgresql://x').log(record) is True

        sql, params = cursor.execute.call_args[0]
        assert 'INSERT INTO monitoring.etl_sync' in sql
        assert params[1] == 'Success'
        assert params[2] == 12
        assert params[7] == 'Full'
        assert params[9] == '{"a": 1}'
        connect.assert_called_once_with('postgresql://x')

    def test_database_error_returns_false(self, pg):
        connect, _ = pg
        connect.side_effect = psycopg2.OperationalError('connection refused')

        assert SyncHistoryLogger('postgresql://x').log(SyncRecord(sync_type='Full')) is False

    def test_log_run_from_propagation(self, pg):
        _, cursor = pg
        propagation = PropagationResult(mode='Incremental', start_time=datetime(2024, 11, 1))
        propagation.per_table_results = [
            TableResult('DimArtist', 'Success', records_processed=3, inserted=3),
            TableResult('DimArtwork', 'Success', records_processed=3, inserted=1, updated=1, deferred=1),
        ]

        SyncHistoryLogger('postgresql://x').log_run('Incremental', True, propagation, duration_seconds=1.5)

        params = cursor.execute.call_args[0][1]
        assert params[1] == 'Success'
        assert params[2] == 5
        assert params[3] == 1
        assert params[4] == 1.5
        assert '"DimArtwork"' in params[9]

    def test_log_run_failure_without_propagation(self, pg):
        _, cursor = pg
        SyncHistoryLogger('postgresql://x').log_run('Full', False, error_message='boom')

        params = cursor.execute.call_args[0][1]
        assert params[1] == 'Failed'
        assert params[8] == 'boom'
        assert params[9] is None


class TestStatistics:
    """Tests for get_statistics."""

    def test_statistics(self, pg):
        _, cursor = pg
        last = datetime(2024, 11, 2, 2, 0)
        cursor.fetchone.return_value = (4, 3, 1, 120, 2.5, last)
        cursor.fetchall.return_value = [('Full', 1), ('Incremental', 3)]

        stats = SyncHistoryLogger('postgresql://x').get_statistics()

        assert stats['total_syncs'] == 4
        assert stats['success_rate'] == 75.0
        assert stats['total_records_processed'] == 120
        assert stats['avg_duration_seconds'] == 2.5
        assert stats['last_sync_date'] == last
        assert stats['by_type'] == {'Full': 1, 'Incremental': 3}

    def test_defaults_on_error(self, pg):
        connect, _ = pg
        connect.side_effect = psycopg2.OperationalError('down')

        stats = SyncHistoryLogger('postgresql://x').get_statistics()

        assert stats['total_syncs'] == 0
        assert stats['success_rate'] == 0.0
        assert stats['by_type'] == {}
