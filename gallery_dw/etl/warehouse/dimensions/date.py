"""
DimDate dimension processor.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Optional

import duckdb
import pandas as pd

from gallery_dw.config import DW_DATE_PROJECTION_DAYS
from .base import coerce

logger = logging.getLogger(__name__)

# Source columns that feed date keys anywhere in the warehouse
DATE_SOURCES = {
    'exhibition': ['start_date', 'end_date'],
    'collection': ['created_date'],
    'insurance_policy': ['start_date', 'end_date'],
    'staff': ['hire_date'],
    'loan': ['start_date', 'end_date'],
    'restoration': ['start_date', 'end_date'],
    'gallery_review': ['review_date'],
}

WEEKDAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']
MONTH_NAMES = [
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December',
]

DATE_COLUMNS = [
    'date_key', 'full_date', 'day_of_week', 'day_name', 'day_of_month', 'day_of_year',
    'week_of_year', 'month_number', 'month_name', 'quarter', 'quarter_name', 'year',
    'year_month', 'is_weekend',
]


def to_date_key(value: Any) -> Optional[int]:
    """YYYYMMDD integer for a date-like value, None for missing values."""
    day = coerce(value, 'date')
    if day is None:
        return None
    return day.year * 10000 + day.month * 100 + day.day


def _source_dates(frames: Dict[str, pd.DataFrame]) -> Iterable[date]:
    for table, columns in DATE_SOURCES.items():
        df = frames.get(table)
        if df is None or df.empty:
            continue
        for col in columns:
            if col in df.columns:
                dates = pd.to_datetime(df[col], errors='coerce').dropna()
                yield from dates.dt.date.tolist()


def _date_row(day: date) -> list:
    quarter = (day.month - 1) // 3 + 1
    day_of_week = day.isoweekday()
    return [
        to_date_key(day),
        day,
        day_of_week,
        WEEKDAY_NAMES[day_of_week - 1],
        day.day,
        day.timetuple().tm_yday,
        day.isocalendar()[1],
        day.month,
        MONTH_NAMES[day.month - 1],
        quarter,
        f'Q{quarter}',
        day.year,
        day.strftime('%Y-%m'),
        day_of_week >= 6,
    ]


def process_dim_date(
    conn: duckdb.DuckDBPyConnection,
    frames: Optional[Dict[str, pd.DataFrame]] = None,
    load_ts: Optional[datetime] = None,
    projection_days: int = DW_DATE_PROJECTION_DAYS
) -> Dict[str, int]:
    """
    Fill DimDate with a contiguous range of days.

    Range: earliest source date (or the load date) through the latest source
    date or load date + projection_days, whichever is later. Existing days
    are left alone.
    """
    stats = {'processed': 0, 'inserted': 0, 'unchanged': 0}
    load_date = (load_ts or datetime.now()).date()

    all_dates = list(_source_dates(frames or {}))
    all_dates.append(load_date)
    min_date = min(all_dates)
    max_date = max(max(all_dates), load_date + timedelta(days=projection_days))

    logger.debug(f"DimDate range: {min_date} to {max_date}")

    existing = {
        row[0] for row in conn.execute(
            "SELECT date_key FROM DimDate WHERE date_key BETWEEN ? AND ?",
            [to_date_key(min_date), to_date_key(max_date)]
        ).fetchall()
    }

    new_rows = []
    current = min_date
    while current <= max_date:
        stats['processed'] += 1
        if to_date_key(current) in existing:
            stats['unchanged'] += 1
        else:
            new_rows.append(_date_row(current))
        current += timedelta(days=1)

    if new_rows:
        new_dates = pd.DataFrame(new_rows, columns=DATE_COLUMNS)
        new_dates['full_date'] = pd.to_datetime(new_dates['full_date'])
        conn.register('new_dates', new_dates)
        try:
            conn.execute(f"""
                INSERT INTO DimDate ({', '.join(DATE_COLUMNS)})
                SELECT {', '.join('CAST(full_date AS DATE)' if c == 'full_date' else c for c in DATE_COLUMNS)}
                FROM new_dates
            """)
        finally:
            conn.unregister('new_dates')
        stats['inserted'] = len(new_rows)

    logger.info(f"DimDate: inserted={stats['inserted']}, unchanged={stats['unchanged']}")
    return stats
