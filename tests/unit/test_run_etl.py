"""Unit tests for run_etl with MinIO and PostgreSQL patched out."""
from unittest import mock

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from gallery_dw.etl.warehouse import pipeline
from gallery_dw.source import DuckDBSourceReader

PIPELINE = 'gallery_dw.etl.warehouse.pipeline'


@pytest.fixture
def patched(tmp_path, oltp_conn):
    db_path = str(tmp_path / 'art_gallery_dw.duckdb')
    with mock.patch(f'{PIPELINE}.download_duckdb', return_value=db_path) as download, \
            mock.patch(f'{PIPELINE}.backup_duckdb', return_value='backup/x.duckdb') as backup, \
            mock.patch(f'{PIPELINE}.upload_duckdb', return_value=True) as upload, \
            mock.patch(f'{PIPELINE}.export_parquet', return_value=3) as export, \
            mock.patch(f'{PIPELINE}.PostgresSourceReader', return_value=DuckDBSourceReader(oltp_conn)), \
            mock.patch('gallery_dw.monitoring.sync_history.SyncHistoryLogger') as history:
        yield {
            'path': db_path,
            'download': download,
            'backup': backup,
            'upload': upload,
            'export': export,
            'history': history.return_value,
        }


class TestRunEtl:
    """Tests for the run_etl job."""

    def test_success(self, patched):
        result = pipeline.run_etl('postgresql://x', mode='full')

        assert result['success'] is True
        assert result['mode'] == 'Full'
        assert result['integrity']['is_valid'] is True
        assert result['stats']['parquet_export'] == 3
        assert result['backup_object'] == 'backup/x.duckdb'
        patched['upload'].assert_called_once_with(patched['path'])
        assert not os.path.exists(patched['path'])

        kwargs = patched['history'].log_run.call_args.kwargs
        assert kwargs['mode'] == 'Full'
        assert kwargs['success'] is True
        assert kwargs['propagation'].status == 'Success'

    def test_force_new_skips_backup(self, patched):
        pipeline.run_etl('postgresql://x', force_new=True)

        patched['download'].assert_called_once_with(force_new=True)
        patched['backup'].assert_not_called()

    def test_download_failure(self, patched):
        patched['download'].side_effect = RuntimeError('minio down')

        result = pipeline.run_etl('postgresql://x')

        assert result['success'] is False
        assert result['message'] == 'minio down'
        patched['upload'].assert_not_called()
        kwargs = patched['history'].log_run.call_args.kwargs
        assert kwargs['success'] is False
        assert kwargs['propagation'] is None
        assert kwargs['error_message'] == 'minio down'

    def test_invalid_mode(self, patched):
        with pytest.raises(ValueError):
            pipeline.run_etl('postgresql://x', mode='nightly')

    def test_cli_exit_code(self):
        with mock.patch(f'{PIPELINE}.run_etl', return_value={'success': False}) as run:
            assert pipeline.main(['--mode', 'full']) == 1
        run.assert_called_once_with(mode='full', force_new=False)
