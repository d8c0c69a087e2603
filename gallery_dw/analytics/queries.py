"""
Read-only analytics over the star schema.

All queries read current dimension rows (is_current = TRUE) and apply time
bounds through DimDate via date_key. Missing tables give empty results and
missing measure columns are read as 0, so a partially provisioned warehouse
still answers.
"""

import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import duckdb
import pandas as pd

from gallery_dw.config import KPI_CACHE_TTL_SECONDS
from gallery_dw.etl.warehouse.dimensions.date import to_date_key
from gallery_dw.etl.warehouse.prober import SchemaCapabilities, probe_schema
from .cache import QueryCache

logger = logging.getLogger(__name__)

FACT = 'FactExhibitionActivity'

# Weighted by review_count so exhibitions with more reviews count more
WEIGHTED_RATING = """
    CASE WHEN COALESCE(SUM({reviews}), 0) > 0
         THEN SUM({rating} * {reviews}) / SUM({reviews})
         ELSE 0 END
"""

ARTIST_ORDERING = {
    'total_value': 'total_estimated_value DESC NULLS LAST',
    'exhibitions': 'exhibition_count DESC',
    'artworks': 'artwork_count DESC',
    'rating': 'avg_rating DESC',
    'reviews': 'review_count DESC',
    'name': 'artist_name ASC',
}

TREND_PERIODS = {
    'month': 'd.year_month',
    'quarter': "CAST(d.year AS VARCHAR) || '-' || d.quarter_name",
    'year': 'CAST(d.year AS VARCHAR)',
}


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame -> list of dicts with NaN/NaT turned into None."""
    if df.empty:
        return []
    return df.astype(object).where(pd.notna(df), None).to_dict('records')


class DwAnalytics:
    """Cached analytics queries over one warehouse connection."""

    def __init__(
        self,
        conn: duckdb.DuckDBPyConnection,
        cache: Optional[QueryCache] = None,
        capabilities: Optional[SchemaCapabilities] = None
    ):
        self.conn = conn
        self.cache = cache if cache is not None else QueryCache()
        self.capabilities = capabilities if capabilities is not None else probe_schema(conn)

    # -- helpers --------------------------------------------------------------

    def _has(self, *tables: str) -> bool:
        return all(self.capabilities.has_table(t) for t in tables)

    def _col(self, alias: str, table: str, column: str) -> str:
        """Qualified column, or 0 when the warehouse lacks it."""
        if self.capabilities.has_column(table, column):
            return f"{alias}.{column}"
        return "0"

    def _count_sum(self, column: str) -> str:
        """Summed fact counter, typed as an integer even when the column is absent."""
        return f"CAST(COALESCE(SUM({self._col('f', FACT, column)}), 0) AS BIGINT)"

    def _rating(self) -> str:
        return WEIGHTED_RATING.format(
            reviews=self._col('f', FACT, 'review_count'),
            rating=self._col('f', FACT, 'avg_rating'),
        )

    def _fetch(self, sql: str, params: Optional[list] = None) -> pd.DataFrame:
        cursor = self.conn.cursor()
        try:
            return cursor.execute(sql, params or []).fetchdf()
        finally:
            cursor.close()

    def _scalar(self, sql: str, params: Optional[list] = None) -> Any:
        cursor = self.conn.cursor()
        try:
            row = cursor.execute(sql, params or []).fetchone()
        finally:
            cursor.close()
        return row[0] if row and row[0] is not None else 0

    def _cached(self, name: str, loader: Callable[[], Any], ttl_seconds: Optional[float] = None, **params) -> Any:
        key = QueryCache.make_key(name, **params)
        return self.cache.get_or_load(key, loader, ttl_seconds)

    def _date_bounds(self, date_from: Optional[date], date_to: Optional[date], alias: str = 'd'):
        clauses, params = [], []
        if date_from is not None:
            clauses.append(f"{alias}.date_key >= ?")
            params.append(to_date_key(date_from))
        if date_to is not None:
            clauses.append(f"{alias}.date_key <= ?")
            params.append(to_date_key(date_to))
        return clauses, params

    def invalidate(self):
        """Drop every cached result, e.g. after a propagation run."""
        self.cache.clear()

    # -- queries --------------------------------------------------------------

    def exhibition_summary(
        self,
        year: Optional[int] = None,
        artist_key: Optional[int] = None,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        """Per-exhibition totals, newest first."""
        def load():
            if not self._has(FACT, 'DimExhibition', 'DimDate'):
                return []
            where, params = [], []
            if year is not None:
                where.append("d.year = ?")
                params.append(int(year))
            if artist_key is not None:
                where.append("f.artist_key = ?")
                params.append(int(artist_key))
            sql = f"""
                SELECT
                    e.exhibition_sk AS exhibition_key,
                    e.exhibition_nk,
                    e.title,
                    e.start_date,
                    e.end_date,
                    COUNT(DISTINCT f.artwork_key) AS artwork_count,
                    {self._count_sum('review_count')} AS review_count,
                    {self._rating()} AS avg_rating,
                    COALESCE(SUM({self._col('f', FACT, 'estimated_value')}), 0) AS total_estimated_value,
                    COALESCE(SUM({self._col('f', FACT, 'insured_amount')}), 0) AS total_insured_amount
                FROM {FACT} f
                JOIN DimExhibition e ON f.exhibition_key = e.exhibition_sk AND e.is_current = TRUE
                JOIN DimDate d ON f.date_key = d.date_key
                {'WHERE ' + ' AND '.join(where) if where else ''}
                GROUP BY e.exhibition_sk, e.exhibition_nk, e.title, e.start_date, e.end_date
                ORDER BY e.start_date DESC NULLS LAST, e.exhibition_nk
                LIMIT ?
            """
            return _records(self._fetch(sql, params + [int(limit)]))

        return self._cached('exhibition_summary', load, year=year, artist_key=artist_key, limit=limit)

    def artwork_inventory(
        self,
        collection_key: Optional[int] = None,
        exhibition_key: Optional[int] = None,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        """Current artworks with their labels and exhibition counts, most valuable first."""
        def load():
            if not self._has('DimArtwork'):
                return []
            select = [
                "a.artwork_sk AS artwork_key",
                "a.artwork_nk",
                "a.title",
                "a.medium",
                "a.year_created",
                "a.estimated_value",
            ]
            joins, where, params = [], ["a.is_current = TRUE"], []

            for table, alias, fk, key, name in [
                ('DimArtist', 'ar', 'artist_key', 'artist_sk', 'artist_name'),
                ('DimCollection', 'c', 'collection_key', 'collection_key', 'collection_name'),
                ('DimLocation', 'l', 'location_key', 'location_key', 'location_name'),
            ]:
                if self._has(table):
                    joins.append(f"LEFT JOIN {table} {alias} ON a.{fk} = {alias}.{key}")
                    select.append(f"{alias}.name AS {name}")
                else:
                    select.append(f"NULL AS {name}")

            if self._has(FACT):
                joins.append(f"""
                    LEFT JOIN (
                        SELECT artwork_key, COUNT(*) AS exhibition_count,
                               MAX({self._col('x', FACT, 'insured_amount')}) AS insured_amount
                        FROM {FACT} x GROUP BY artwork_key
                    ) fx ON fx.artwork_key = a.artwork_sk
                """)
                select += [
                    "COALESCE(fx.exhibition_count, 0) AS exhibition_count",
                    "COALESCE(fx.insured_amount, 0) AS insured_amount",
                ]
            else:
                select += ["0 AS exhibition_count", "0 AS insured_amount"]

            if collection_key is not None:
                where.append("a.collection_key = ?")
                params.append(int(collection_key))
            if exhibition_key is not None:
                if not self._has(FACT):
                    return []
                where.append(
                    f"EXISTS (SELECT 1 FROM {FACT} fe "
                    f"WHERE fe.artwork_key = a.artwork_sk AND fe.exhibition_key = ?)"
                )
                params.append(int(exhibition_key))

            sql = f"""
                SELECT {', '.join(select)}
                FROM DimArtwork a
                {' '.join(joins)}
                WHERE {' AND '.join(where)}
                ORDER BY a.estimated_value DESC NULLS LAST, a.artwork_nk
                LIMIT ?
            """
            return _records(self._fetch(sql, params + [int(limit)]))

        return self._cached(
            'artwork_inventory', load,
            collection_key=collection_key, exhibition_key=exhibition_key, limit=limit
        )

    def insurance_analysis(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Coverage by provider and by coverage type.

        The date range selects policies whose coverage period overlaps it,
        resolved through DimDate.
        """
        def load():
            empty = {'by_provider': [], 'by_coverage_type': [], 'total_coverage': 0, 'insured_artworks': 0}
            if not self._has('DimInsurance'):
                return empty

            has_policy = self._has('DimPolicy')
            provider = "COALESCE(p.provider, 'Unknown')" if has_policy else "'Unknown'"
            joins = ["LEFT JOIN DimPolicy p ON i.policy_key = p.policy_key"] if has_policy else []
            where, params = ["i.is_current = TRUE"], []

            if date_from is not None or date_to is not None:
                if not (has_policy and self._has('DimDate')):
                    return empty
                joins.append("JOIN DimDate ds ON p.start_date_key = ds.date_key")
                joins.append("LEFT JOIN DimDate de ON p.end_date_key = de.date_key")
                if date_to is not None:
                    where.append("ds.date_key <= ?")
                    params.append(to_date_key(date_to))
                if date_from is not None:
                    where.append("(de.date_key IS NULL OR de.date_key >= ?)")
                    params.append(to_date_key(date_from))

            base = f"FROM DimInsurance i {' '.join(joins)} WHERE {' AND '.join(where)}"
            aggregates = """
                COUNT(*) AS insurance_count,
                COUNT(DISTINCT i.artwork_key) AS artwork_count,
                COALESCE(SUM(i.coverage_amount), 0) AS total_coverage,
                COALESCE(AVG(i.coverage_amount), 0) AS avg_coverage
            """
            by_provider = self._fetch(f"""
                SELECT {provider} AS provider, {aggregates}
                {base}
                GROUP BY 1 ORDER BY total_coverage DESC, provider
            """, params)
            by_type = self._fetch(f"""
                SELECT COALESCE(i.coverage_type, 'Unknown') AS coverage_type, {aggregates}
                {base}
                GROUP BY 1 ORDER BY total_coverage DESC, coverage_type
            """, params)

            return {
                'by_provider': _records(by_provider),
                'by_coverage_type': _records(by_type),
                'total_coverage': float(by_provider['total_coverage'].sum()) if not by_provider.empty else 0,
                'insured_artworks': self._scalar(
                    f"SELECT COUNT(DISTINCT i.artwork_key) {base}", params
                ),
            }

        return self._cached('insurance_analysis', load, date_from=date_from, date_to=date_to)

    def artist_performance(self, order_by: str = 'total_value', limit: int = 50) -> List[Dict[str, Any]]:
        if order_by not in ARTIST_ORDERING:
            raise ValueError(f"order_by must be one of {sorted(ARTIST_ORDERING)}")

        def load():
            if not self._has(FACT, 'DimArtist'):
                return []
            sql = f"""
                SELECT
                    ar.artist_sk AS artist_key,
                    ar.artist_nk,
                    ar.name AS artist_name,
                    ar.nationality,
                    COUNT(DISTINCT f.artwork_key) AS artwork_count,
                    COUNT(DISTINCT f.exhibition_key) AS exhibition_count,
                    SUM({self._col('f', FACT, 'estimated_value')}) AS total_estimated_value,
                    {self._count_sum('review_count')} AS review_count,
                    {self._rating()} AS avg_rating
                FROM {FACT} f
                JOIN DimArtist ar ON f.artist_key = ar.artist_sk AND ar.is_current = TRUE
                GROUP BY ar.artist_sk, ar.artist_nk, ar.name, ar.nationality
                ORDER BY {ARTIST_ORDERING[order_by]}, ar.artist_nk
                LIMIT ?
            """
            return _records(self._fetch(sql, [int(limit)]))

        return self._cached('artist_performance', load, order_by=order_by, limit=limit)

    def activity_trends(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        group_by: str = 'month'
    ) -> List[Dict[str, Any]]:
        """Exhibition activity per calendar period of the exhibition start date."""
        if group_by not in TREND_PERIODS:
            raise ValueError(f"group_by must be one of {sorted(TREND_PERIODS)}")

        def load():
            if not self._has(FACT, 'DimDate'):
                return []
            where, params = self._date_bounds(date_from, date_to)
            period = TREND_PERIODS[group_by]
            sql = f"""
                SELECT
                    {period} AS period,
                    COUNT(DISTINCT f.exhibition_key) AS exhibition_count,
                    COUNT(*) AS artworks_shown,
                    {self._count_sum('review_count')} AS review_count,
                    {self._rating()} AS avg_rating,
                    {self._count_sum('loan_flag')} AS loaned_artworks,
                    {self._count_sum('restoration_count')} AS restorations
                FROM {FACT} f
                JOIN DimDate d ON f.date_key = d.date_key
                {'WHERE ' + ' AND '.join(where) if where else ''}
                GROUP BY 1
                ORDER BY 1
            """
            return _records(self._fetch(sql, params))

        return self._cached('activity_trends', load, date_from=date_from, date_to=date_to, group_by=group_by)

    def kpi_dashboard(self) -> Dict[str, Any]:
        """Headline counts and totals. Each figure is 0 when its table is missing."""
        def count_current(table: str) -> int:
            if not self._has(table):
                return 0
            return int(self._scalar(f"SELECT COUNT(*) FROM {table} WHERE is_current = TRUE"))

        def load():
            kpis = {
                'total_artworks': count_current('DimArtwork'),
                'total_artists': count_current('DimArtist'),
                'total_exhibitions': count_current('DimExhibition'),
                'total_visitors': count_current('DimVisitor'),
                'total_staff': count_current('DimStaff'),
                'total_collection_value': 0.0,
                'total_insured_value': 0.0,
                'avg_rating': 0.0,
                'loaned_artworks': 0,
                'restorations': 0,
            }
            if self._has('DimArtwork'):
                kpis['total_collection_value'] = float(self._scalar(
                    "SELECT SUM(estimated_value) FROM DimArtwork WHERE is_current = TRUE"))
            if self._has('DimInsurance'):
                kpis['total_insured_value'] = float(self._scalar(
                    "SELECT SUM(coverage_amount) FROM DimInsurance WHERE is_current = TRUE"))
            if self._has(FACT):
                kpis['avg_rating'] = float(self._scalar(f"SELECT {self._rating()} FROM {FACT} f"))
                kpis['loaned_artworks'] = int(self._scalar(
                    f"SELECT COUNT(DISTINCT artwork_key) FROM {FACT} f "
                    f"WHERE {self._col('f', FACT, 'loan_flag')} = 1"))
                kpis['restorations'] = int(self._scalar(f"""
                    SELECT SUM(restoration_count) FROM (
                        SELECT artwork_key, MAX({self._col('f', FACT, 'restoration_count')}) AS restoration_count
                        FROM {FACT} f GROUP BY artwork_key
                    )
                """))
            return kpis

        return self._cached('kpi_dashboard', load, ttl_seconds=KPI_CACHE_TTL_SECONDS)
