"""
ETL Pipeline: OLTP to DWH.
Main orchestrator for the propagation run.
"""

import argparse
import logging
import os
import threading
import time
from collections import namedtuple
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import duckdb
import pandas as pd

from gallery_dw.config import PG_CONN_STRING
from gallery_dw.errors import PropagationCancelled, SourceUnavailableError, WarehouseUnavailableError
from gallery_dw.source import PostgresSourceReader, SourceReader
from gallery_dw.storage.minio import (
    download_duckdb,
    upload_duckdb,
    backup_duckdb,
    export_parquet,
    get_duckdb_connection
)
from .cache import init_dimension_caches
from .dimensions import (
    process_dim_date,
    process_dim_artist,
    process_dim_collection,
    process_dim_location,
    process_dim_exhibitor,
    process_dim_policy,
    process_dim_artwork,
    process_dim_exhibition,
    process_dim_visitor,
    process_dim_staff,
    process_dim_insurance,
)
from .facts import process_facts, FACT_TABLE
from .prober import SchemaCapabilities, ensure_connection, probe_schema
from .results import (
    PropagationMode,
    PropagationResult,
    TableResult,
    STATUS_CANCELLED,
    STATUS_ERROR,
    STATUS_SKIPPED,
    STATUS_SUCCESS,
)
from .schema import is_new_warehouse, reset_warehouse, setup_schema

logger = logging.getLogger(__name__)


@dataclass
class StageContext:
    load_ts: datetime
    capabilities: SchemaCapabilities
    cancel_event: Optional[threading.Event] = None


Stage = namedtuple('Stage', ['table', 'run'])

# Dependency order: referenced dimensions before the rows that point at them
STAGES: List[Stage] = [
    Stage('DimDate', lambda conn, frames, ctx: process_dim_date(conn, frames, ctx.load_ts)),
    Stage('DimArtist', lambda conn, frames, ctx: process_dim_artist(
        conn, frames['artist'], ctx.load_ts, ctx.cancel_event)),
    Stage('DimCollection', lambda conn, frames, ctx: process_dim_collection(
        conn, frames['collection'], ctx.load_ts, ctx.cancel_event)),
    Stage('DimLocation', lambda conn, frames, ctx: process_dim_location(
        conn, frames['location'], ctx.load_ts, ctx.cancel_event)),
    Stage('DimExhibitor', lambda conn, frames, ctx: process_dim_exhibitor(
        conn, frames['exhibitor'], ctx.load_ts, ctx.cancel_event)),
    Stage('DimPolicy', lambda conn, frames, ctx: process_dim_policy(
        conn, frames['insurance_policy'], ctx.load_ts, ctx.cancel_event)),
    Stage('DimArtwork', lambda conn, frames, ctx: process_dim_artwork(
        conn, frames['artwork'], ctx.load_ts, ctx.cancel_event, ctx.capabilities)),
    Stage('DimExhibition', lambda conn, frames, ctx: process_dim_exhibition(
        conn, frames['exhibition'], ctx.load_ts, ctx.cancel_event, ctx.capabilities)),
    Stage('DimVisitor', lambda conn, frames, ctx: process_dim_visitor(
        conn, frames['visitor'], ctx.load_ts, ctx.cancel_event)),
    Stage('DimStaff', lambda conn, frames, ctx: process_dim_staff(
        conn, frames['staff'], ctx.load_ts, ctx.cancel_event)),
    Stage('DimInsurance', lambda conn, frames, ctx: process_dim_insurance(
        conn, frames['insurance'], ctx.load_ts, ctx.cancel_event, ctx.capabilities)),
    Stage(FACT_TABLE, lambda conn, frames, ctx: process_facts(
        conn, frames, init_dimension_caches(conn, ctx.capabilities), ctx.load_ts, ctx.cancel_event)),
]


def _run_stage(
    conn: duckdb.DuckDBPyConnection,
    stage: Stage,
    frames: Dict[str, pd.DataFrame],
    ctx: StageContext,
    result: PropagationResult
) -> TableResult:
    table_result = TableResult(table=stage.table)
    start = time.time()

    if not ctx.capabilities.has_table(stage.table):
        message = f"{stage.table}: table not found in warehouse, stage skipped"
        logger.warning(message)
        result.warnings.append(message)
        table_result.status = STATUS_SKIPPED
        return table_result

    try:
        stats = stage.run(conn, frames, ctx)
        table_result.records_processed = stats.get('processed', 0)
        table_result.inserted = stats.get('inserted', 0)
        table_result.updated = stats.get('updated', 0)
        table_result.unchanged = stats.get('unchanged', 0)
        table_result.deferred = stats.get('deferred', 0)
    except PropagationCancelled:
        logger.warning(f"{stage.table}: cancelled")
        table_result.status = STATUS_CANCELLED
        table_result.error = 'Cancelled'
        result.errors.append(f"{stage.table}: cancelled")
    except duckdb.Error as e:
        logger.error(f"{stage.table}: write failed: {e}")
        table_result.status = STATUS_ERROR
        table_result.error = str(e)
        result.errors.append(f"{stage.table}: {e}")
    except Exception as e:
        table_result.status = STATUS_ERROR
        table_result.error = str(e)
        result.per_table_results.append(table_result)
        raise
    finally:
        table_result.duration_ms = (time.time() - start) * 1000

    return table_result


def run_propagation(
    conn: duckdb.DuckDBPyConnection,
    source: SourceReader,
    mode=PropagationMode.INCREMENTAL,
    capabilities: Optional[SchemaCapabilities] = None,
    cancel_event: Optional[threading.Event] = None,
    load_ts: Optional[datetime] = None
) -> PropagationResult:
    """
    Propagate the OLTP snapshot into the warehouse.

    Stages run sequentially in dependency order. A stage whose table is
    missing is skipped with a warning; a stage that fails to write is marked
    Error and later stages still run. Committed writes are never rolled back
    across stages. Always returns a result, never raises.
    """
    mode = PropagationMode.parse(mode)
    load_ts = load_ts or datetime.now()
    result = PropagationResult(mode=mode.value, start_time=datetime.now())
    start = time.time()

    logger.info("=" * 60)
    logger.info(f"PROPAGATION START: mode={mode.value}, load_ts={load_ts}")
    logger.info("=" * 60)

    try:
        ensure_connection(conn)
        frames = source.read_all()

        if capabilities is None:
            capabilities = probe_schema(conn)

        if mode is PropagationMode.FULL:
            reset_warehouse(conn, capabilities.present_tables)

        ctx = StageContext(load_ts=load_ts, capabilities=capabilities, cancel_event=cancel_event)

        for index, stage in enumerate(STAGES):
            if cancel_event is not None and cancel_event.is_set():
                remaining = STAGES[index:]
                result.errors.append("Propagation cancelled")
            else:
                table_result = _run_stage(conn, stage, frames, ctx, result)
                result.per_table_results.append(table_result)
                if table_result.status != STATUS_CANCELLED:
                    continue
                remaining = STAGES[index + 1:]

            for pending in remaining:
                result.per_table_results.append(
                    TableResult(table=pending.table, status=STATUS_CANCELLED, error='Cancelled')
                )
            break

    except SourceUnavailableError as e:
        logger.error(f"Source unavailable: {e}")
        result.errors.append(f"Source unavailable: {e}")
    except WarehouseUnavailableError as e:
        logger.error(f"Warehouse unavailable: {e}")
        result.errors.append(f"Warehouse unavailable: {e}")
    except Exception as e:
        logger.error(f"Propagation failed: {e}", exc_info=True)
        result.errors.append(str(e))

    finally:
        result.status = STATUS_ERROR if result.errors else STATUS_SUCCESS
        result.end_time = datetime.now()
        result.duration_ms = (time.time() - start) * 1000

        logger.info("=" * 60)
        logger.info(
            f"PROPAGATION END: {result.status}, loaded={result.loaded_record_count}, "
            f"duration={result.duration_ms / 1000:.2f}s"
        )
        for message in result.errors:
            logger.info(f"  error: {message}")
        logger.info("=" * 60)

    return result


def run_etl(
    pg_conn_string: str = PG_CONN_STRING,
    mode=PropagationMode.INCREMENTAL,
    force_new: bool = False,
    cancel_event: Optional[threading.Event] = None
) -> Dict[str, Any]:
    """
    Run the full warehouse job: OLTP -> DWH (MinIO).

    Flow:
    1. Download DuckDB from MinIO (or create new)
    2. Backup to MinIO
    3. Create the schema when the warehouse is brand new
    4. Propagate dimensions & facts
    5. Validate referential integrity
    6. Export facts to Parquet and upload DuckDB back to MinIO
    7. Record sync history
    """
    from gallery_dw.monitoring.sync_history import SyncHistoryLogger
    from gallery_dw.quality.integrity import IntegrityValidator

    start_time = datetime.now()
    mode = PropagationMode.parse(mode)
    result = {
        'success': False,
        'mode': mode.value,
        'start_time': start_time.isoformat(),
        'stats': {}
    }
    propagation = None
    local_db_path = None

    try:
        logger.info("=" * 60)
        logger.info(f"ETL START: {start_time}")
        logger.info("=" * 60)

        local_db_path = download_duckdb(force_new=force_new)

        if not force_new:
            result['backup_object'] = backup_duckdb(local_db_path)

        source = PostgresSourceReader(pg_conn_string)

        with get_duckdb_connection(local_db_path) as conn:
            if is_new_warehouse(conn):
                logger.info("Creating new schema...")
                setup_schema(conn)

            capabilities = probe_schema(conn)
            propagation = run_propagation(conn, source, mode, capabilities, cancel_event)
            result['propagation'] = propagation.to_dict()

            integrity = IntegrityValidator(conn, source).validate()
            result['integrity'] = integrity.to_dict()

            if propagation.success and capabilities.has_table(FACT_TABLE):
                load_date = start_time.strftime('%Y-%m-%d')
                result['stats']['parquet_export'] = export_parquet(conn, load_date)

        upload_duckdb(local_db_path)

        result['success'] = propagation.success
        result['message'] = 'ETL completed successfully' if propagation.success else '; '.join(propagation.errors)

    except Exception as e:
        logger.error(f"ETL failed: {e}", exc_info=True)
        result['message'] = str(e)

    finally:
        if local_db_path and os.path.exists(local_db_path):
            try:
                os.remove(local_db_path)
            except OSError as e:
                logger.warning(f"Could not remove {local_db_path}: {e}")

        end_time = datetime.now()
        result['end_time'] = end_time.isoformat()
        result['duration_seconds'] = (end_time - start_time).total_seconds()

        SyncHistoryLogger(pg_conn_string).log_run(
            mode=mode.value,
            success=result['success'],
            propagation=propagation,
            duration_seconds=result['duration_seconds'],
            error_message=None if result['success'] else result.get('message'),
        )

        logger.info("=" * 60)
        logger.info(f"ETL END: Duration {result['duration_seconds']:.2f}s")
        logger.info(f"Status: {'SUCCESS' if result['success'] else 'FAILED'}")
        logger.info("=" * 60)

    return result


def main(argv=None):
    parser = argparse.ArgumentParser(description="Propagate the gallery OLTP database into the warehouse")
    parser.add_argument('--mode', choices=['full', 'incremental'], default='incremental')
    parser.add_argument('--force-new', action='store_true', help='start from an empty warehouse file')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    result = run_etl(mode=args.mode, force_new=args.force_new)
    return 0 if result['success'] else 1


if __name__ == "__main__":
    raise SystemExit(main())
