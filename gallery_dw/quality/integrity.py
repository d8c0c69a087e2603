"""
Referential integrity validation for the warehouse.

Every check is a single count query. A count of zero passes; anything else
becomes an issue whose severity depends on how many rows are affected. A
check that cannot run at all (missing table, unreadable source) is reported
as a CheckError issue instead of failing the validation run.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import duckdb

from gallery_dw.config import INTEGRITY_ERROR_THRESHOLD
from gallery_dw.errors import SourceUnavailableError
from gallery_dw.etl.warehouse.prober import ensure_connection
from gallery_dw.source import SourceReader

logger = logging.getLogger(__name__)

SEVERITY_WARNING = 'Warning'
SEVERITY_ERROR = 'Error'
SEVERITY_CRITICAL = 'Critical'

ISSUE_CHECK_ERROR = 'CheckError'


@dataclass(frozen=True)
class IntegrityCheck:
    """One named count query."""
    name: str
    table: str
    issue_type: str
    description: str
    sql: str
    source_table: Optional[str] = None  # OLTP table whose ids the query reads


@dataclass
class IntegrityIssue:
    table: str
    issue_type: str
    description: str
    affected_records: int
    severity: str
    check: str = ''


@dataclass
class IntegrityResult:
    """Validation summary."""
    checked_at: datetime
    total_checks: int = 0
    passed_checks: int = 0
    failed_checks: int = 0
    errored_checks: int = 0
    issues: List[IntegrityIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.failed_checks == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'total_checks': self.total_checks,
            'passed_checks': self.passed_checks,
            'failed_checks': self.failed_checks,
            'errored_checks': self.errored_checks,
            'issues': [asdict(i) for i in self.issues],
            'checked_at': self.checked_at.isoformat(),
        }


def _source_view(table: str) -> str:
    return f"src_{table}_ids"


def _orphan_check(dimension: str, nk: str, source_table: str) -> IntegrityCheck:
    return IntegrityCheck(
        name=f"orphaned_{source_table}",
        table=dimension,
        issue_type='OrphanedRecord',
        description=f"Current {dimension} rows whose natural key no longer exists in the OLTP {source_table} table",
        sql=f"""
            SELECT COUNT(*) FROM {dimension} d
            WHERE d.is_current = TRUE
              AND NOT EXISTS (SELECT 1 FROM {_source_view(source_table)} s WHERE TRY_CAST(s.id AS BIGINT) = d.{nk})
        """,
        source_table=source_table,
    )


def _reference_check(
    name: str,
    table: str,
    fk: str,
    target: str,
    target_key: str,
    description: str,
    required: bool = False,
    current_only: bool = True
) -> IntegrityCheck:
    missing = f"NOT EXISTS (SELECT 1 FROM {target} t WHERE t.{target_key} = r.{fk})"
    condition = f"(r.{fk} IS NULL OR {missing})" if required else f"(r.{fk} IS NOT NULL AND {missing})"
    where = f"r.is_current = TRUE AND {condition}" if current_only else condition
    return IntegrityCheck(
        name=name,
        table=table,
        issue_type='MissingReference',
        description=description,
        sql=f"SELECT COUNT(*) FROM {table} r WHERE {where}",
    )


def _duplicate_current_check(dimension: str, nk: str) -> IntegrityCheck:
    return IntegrityCheck(
        name=f"duplicate_current_{dimension}",
        table=dimension,
        issue_type='DuplicateCurrent',
        description=f"Natural keys with more than one current {dimension} row",
        sql=f"""
            SELECT COUNT(*) FROM (
                SELECT {nk} FROM {dimension} WHERE is_current = TRUE
                GROUP BY {nk} HAVING COUNT(*) > 1
            )
        """,
    )


SCD2_DIMENSIONS = [
    ('DimArtist', 'artist_nk', 'artist'),
    ('DimArtwork', 'artwork_nk', 'artwork'),
    ('DimExhibition', 'exhibition_nk', 'exhibition'),
    ('DimVisitor', 'visitor_nk', 'visitor'),
    ('DimStaff', 'staff_nk', 'staff'),
    ('DimInsurance', 'insurance_nk', 'insurance'),
]

CHECKS: List[IntegrityCheck] = (
    [_orphan_check(dim, nk, src) for dim, nk, src in SCD2_DIMENSIONS]
    + [
        _reference_check(
            'artwork_artist', 'DimArtwork', 'artist_key', 'DimArtist', 'artist_sk',
            'Current artworks referencing a missing artist', required=True),
        _reference_check(
            'artwork_collection', 'DimArtwork', 'collection_key', 'DimCollection', 'collection_key',
            'Current artworks referencing a missing collection'),
        _reference_check(
            'artwork_location', 'DimArtwork', 'location_key', 'DimLocation', 'location_key',
            'Current artworks referencing a missing location'),
        _reference_check(
            'exhibition_exhibitor', 'DimExhibition', 'exhibitor_key', 'DimExhibitor', 'exhibitor_key',
            'Current exhibitions referencing a missing exhibitor'),
        _reference_check(
            'insurance_artwork', 'DimInsurance', 'artwork_key', 'DimArtwork', 'artwork_sk',
            'Current insurance records referencing a missing artwork', required=True),
        IntegrityCheck(
            name='exhibition_dates',
            table='DimExhibition',
            issue_type='InvalidDateKey',
            description='Current exhibitions whose start or end date key is not in DimDate',
            sql="""
                SELECT COUNT(*) FROM DimExhibition e
                WHERE e.is_current = TRUE AND (
                    (e.start_date_key IS NOT NULL
                     AND NOT EXISTS (SELECT 1 FROM DimDate d WHERE d.date_key = e.start_date_key))
                    OR (e.end_date_key IS NOT NULL
                     AND NOT EXISTS (SELECT 1 FROM DimDate d WHERE d.date_key = e.end_date_key))
                )
            """,
        ),
        _reference_check(
            'fact_exhibition', 'FactExhibitionActivity', 'exhibition_key', 'DimExhibition', 'exhibition_sk',
            'Facts referencing a missing exhibition', required=True, current_only=False),
        _reference_check(
            'fact_artwork', 'FactExhibitionActivity', 'artwork_key', 'DimArtwork', 'artwork_sk',
            'Facts referencing a missing artwork', required=True, current_only=False),
        _reference_check(
            'fact_artist', 'FactExhibitionActivity', 'artist_key', 'DimArtist', 'artist_sk',
            'Facts referencing a missing artist', required=True, current_only=False),
        _reference_check(
            'fact_date', 'FactExhibitionActivity', 'date_key', 'DimDate', 'date_key',
            'Facts with a date key not in DimDate', required=True, current_only=False),
    ]
    + [_duplicate_current_check(dim, nk) for dim, nk, _ in SCD2_DIMENSIONS]
    + [
        IntegrityCheck(
            name='duplicate_facts',
            table='FactExhibitionActivity',
            issue_type='DuplicateFact',
            description='Artwork/exhibition pairings with more than one fact row',
            sql="""
                SELECT COUNT(*) FROM (
                    SELECT artwork_nk, exhibition_nk FROM FactExhibitionActivity
                    GROUP BY artwork_nk, exhibition_nk HAVING COUNT(*) > 1
                )
            """,
        ),
    ]
)


class IntegrityValidator:
    """Runs the integrity check battery against a warehouse connection."""

    def __init__(
        self,
        conn: duckdb.DuckDBPyConnection,
        source: Optional[SourceReader] = None,
        error_threshold: int = INTEGRITY_ERROR_THRESHOLD,
        checks: Optional[List[IntegrityCheck]] = None
    ):
        self.conn = conn
        self.source = source
        self.error_threshold = error_threshold
        self.checks = checks if checks is not None else CHECKS

    def severity(self, affected: int) -> str:
        return SEVERITY_ERROR if affected >= self.error_threshold else SEVERITY_WARNING

    def _register_source_ids(self) -> List[str]:
        """Expose OLTP natural keys as DuckDB views. Unreadable tables are left unregistered."""
        registered = []
        needed = sorted({c.source_table for c in self.checks if c.source_table})
        for table in needed:
            try:
                ids = self.source.read_ids(table)
            except SourceUnavailableError as e:
                logger.warning(f"Cannot read OLTP {table} ids, dependent checks will error: {e}")
                continue
            view = _source_view(table)
            self.conn.register(view, ids)
            registered.append(view)
        return registered

    def _run_check(self, check: IntegrityCheck, result: IntegrityResult):
        result.total_checks += 1
        try:
            affected = int(self.conn.execute(check.sql).fetchone()[0])
        except duckdb.Error as e:
            logger.warning(f"Integrity check {check.name} could not run: {e}")
            result.errored_checks += 1
            result.issues.append(IntegrityIssue(
                table=check.table,
                issue_type=ISSUE_CHECK_ERROR,
                description=f"{check.description}: check failed to run ({e})",
                affected_records=0,
                severity=SEVERITY_CRITICAL,
                check=check.name,
            ))
            return

        if affected == 0:
            result.passed_checks += 1
            return

        result.failed_checks += 1
        result.issues.append(IntegrityIssue(
            table=check.table,
            issue_type=check.issue_type,
            description=check.description,
            affected_records=affected,
            severity=self.severity(affected),
            check=check.name,
        ))

    def validate(self) -> IntegrityResult:
        """Run all checks. Raises WarehouseUnavailableError only if the connection is unusable."""
        ensure_connection(self.conn)
        result = IntegrityResult(checked_at=datetime.now())

        checks = self.checks
        if self.source is None:
            checks = [c for c in checks if not c.source_table]
            logger.info("No OLTP source given, skipping orphaned-record checks")

        registered = self._register_source_ids() if self.source is not None else []
        try:
            for check in checks:
                self._run_check(check, result)
        finally:
            for view in registered:
                self.conn.unregister(view)

        logger.info(
            f"Integrity: total={result.total_checks}, passed={result.passed_checks}, "
            f"failed={result.failed_checks}, errored={result.errored_checks}"
        )
        return result


def validate_integrity(
    conn: duckdb.DuckDBPyConnection,
    source: Optional[SourceReader] = None
) -> IntegrityResult:
    return IntegrityValidator(conn, source).validate()
