"""
FactExhibitionActivity fact processor.

Grain: one artwork shown in one exhibition (OLTP artwork_exhibition row).
Facts are upserted on (artwork_nk, exhibition_nk) and updated in place;
pairings removed from the source are not deleted.
"""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import duckdb
import pandas as pd

from gallery_dw.errors import PropagationCancelled
from gallery_dw.source.reader import SOURCE_TABLES
from .. import statements
from ..dimensions.base import coerce, is_null
from ..dimensions.date import to_date_key

logger = logging.getLogger(__name__)

FACT_TABLE = 'FactExhibitionActivity'

# Compared on every run; a difference in any of them updates the fact row
FACT_COLUMNS: List[Tuple[str, str]] = [
    ('date_key', 'int'),
    ('artwork_key', 'int'),
    ('artist_key', 'int'),
    ('exhibition_key', 'int'),
    ('exhibitor_key', 'int'),
    ('collection_key', 'int'),
    ('location_key', 'int'),
    ('policy_key', 'int'),
    ('estimated_value', 'float'),
    ('insured_amount', 'float'),
    ('loan_flag', 'int'),
    ('restoration_count', 'int'),
    ('review_count', 'int'),
    ('avg_rating', 'float'),
]


def _frame(frames: Dict[str, pd.DataFrame], table: str) -> pd.DataFrame:
    df = frames.get(table)
    if df is None:
        return pd.DataFrame(columns=SOURCE_TABLES[table])
    return df


def _int_keyed(series: pd.Series) -> Dict[int, Any]:
    return {coerce(k, 'int'): v for k, v in series.items() if not is_null(k)}


def _by_id(df: pd.DataFrame, key: str) -> Dict[int, Dict[str, Any]]:
    return {
        coerce(row[key], 'int'): row
        for row in df.to_dict('records')
        if not is_null(row[key])
    }


def _aggregate_measures(frames: Dict[str, pd.DataFrame]) -> Dict[str, Dict]:
    """Per-artwork and per-(exhibition, artwork) measures from the activity tables."""
    insurance = _frame(frames, 'insurance').dropna(subset=['artwork_id'])
    loans = _frame(frames, 'loan').dropna(subset=['artwork_id'])
    restorations = _frame(frames, 'restoration').dropna(subset=['artwork_id'])
    reviews = _frame(frames, 'gallery_review').dropna(subset=['artwork_id', 'exhibition_id'])

    insured = _int_keyed(
        pd.to_numeric(insurance['insured_amount'], errors='coerce')
        .groupby(insurance['artwork_id']).sum()
    )
    first_policy = _int_keyed(
        insurance.dropna(subset=['policy_id'])
        .sort_values('insurance_id')
        .groupby('artwork_id')['policy_id'].first()
    )
    loaned = {coerce(a, 'int') for a in loans['artwork_id'].tolist()}
    restoration_counts = _int_keyed(restorations.groupby('artwork_id').size())

    review_stats = {}
    if not reviews.empty:
        ratings = pd.to_numeric(reviews['rating'], errors='coerce')
        grouped = ratings.groupby([reviews['exhibition_id'], reviews['artwork_id']])
        for (exhibition_id, artwork_id), group in grouped:
            mean = group.mean()
            review_stats[(coerce(exhibition_id, 'int'), coerce(artwork_id, 'int'))] = (
                len(group),
                0.0 if is_null(mean) else float(mean),
            )

    return {
        'insured': insured,
        'first_policy': first_policy,
        'loaned': loaned,
        'restorations': restoration_counts,
        'reviews': review_stats,
    }


def build_fact_rows(
    frames: Dict[str, pd.DataFrame],
    caches: Dict[str, Dict]
) -> Tuple[Dict[Tuple[int, int], Dict[str, Any]], int]:
    """
    Compute the fact row for every artwork/exhibition pairing.

    Returns ({(artwork_nk, exhibition_nk): values}, deferred_count). A pairing
    is deferred when its artwork, artist, exhibition, exhibitor or start date
    does not resolve to a warehouse row.
    """
    pairings = _frame(frames, 'artwork_exhibition').dropna(subset=['artwork_id', 'exhibition_id'])
    artworks = _by_id(_frame(frames, 'artwork'), 'artwork_id')
    exhibitions = _by_id(_frame(frames, 'exhibition'), 'exhibition_id')
    measures = _aggregate_measures(frames)
    date_keys = caches.get('date', set())

    rows = {}
    deferred = 0
    for pairing in pairings.to_dict('records'):
        artwork_nk = coerce(pairing['artwork_id'], 'int')
        exhibition_nk = coerce(pairing['exhibition_id'], 'int')
        if (artwork_nk, exhibition_nk) in rows:
            continue

        artwork = artworks.get(artwork_nk)
        exhibition = exhibitions.get(exhibition_nk)
        if artwork is None or exhibition is None:
            deferred += 1
            continue

        keys = {
            'date_key': to_date_key(exhibition.get('start_date')),
            'artwork_key': caches['artwork'].get(artwork_nk),
            'artist_key': caches['artist'].get(coerce(artwork.get('artist_id'), 'int')),
            'exhibition_key': caches['exhibition'].get(exhibition_nk),
            'exhibitor_key': caches['exhibitor'].get(coerce(exhibition.get('exhibitor_id'), 'int')),
        }
        if any(v is None for v in keys.values()) or keys['date_key'] not in date_keys:
            deferred += 1
            continue

        review_count, avg_rating = measures['reviews'].get((exhibition_nk, artwork_nk), (0, 0.0))
        insured = measures['insured'].get(artwork_nk, 0.0)
        policy_nk = coerce(measures['first_policy'].get(artwork_nk), 'int')

        values = {
            **keys,
            'collection_key': caches['collection'].get(coerce(artwork.get('collection_id'), 'int')),
            'location_key': caches['location'].get(coerce(artwork.get('location_id'), 'int')),
            'policy_key': caches['policy'].get(policy_nk),
            'estimated_value': artwork.get('estimated_value'),
            'insured_amount': 0.0 if is_null(insured) else insured,
            'loan_flag': 1 if artwork_nk in measures['loaned'] else 0,
            'restoration_count': measures['restorations'].get(artwork_nk, 0),
            'review_count': review_count,
            'avg_rating': avg_rating,
        }
        rows[(artwork_nk, exhibition_nk)] = {
            name: coerce(values[name], kind) for name, kind in FACT_COLUMNS
        }

    return rows, deferred


def _fetch_existing_facts(conn: duckdb.DuckDBPyConnection) -> Dict[Tuple[int, int], Tuple]:
    columns = ['artwork_nk', 'exhibition_nk', 'fact_key'] + [name for name, _ in FACT_COLUMNS]
    rows = statements.select(FACT_TABLE, columns).execute(conn).fetchall()
    return {(row[0], row[1]): row[2:] for row in rows}


def _has_changes(existing: Tuple, values: Dict[str, Any]) -> bool:
    for (name, kind), old in zip(FACT_COLUMNS, existing[1:]):
        if coerce(old, kind) != values[name]:
            return True
    return False


def process_facts(
    conn: duckdb.DuckDBPyConnection,
    frames: Dict[str, pd.DataFrame],
    caches: Dict[str, Dict],
    load_ts: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None
) -> Dict[str, int]:
    """
    Upsert FactExhibitionActivity.

    Existing pairings are updated in place only when a key or measure differs;
    new pairings get fact_key = max(fact_key) + 1.
    """
    stats = {'processed': 0, 'inserted': 0, 'updated': 0, 'unchanged': 0, 'deferred': 0}
    load_ts = load_ts or datetime.now()

    fact_rows, stats['deferred'] = build_fact_rows(frames, caches)
    stats['processed'] = len(fact_rows) + stats['deferred']
    if stats['deferred']:
        logger.warning(f"{FACT_TABLE}: deferred {stats['deferred']} pairings with unresolved dimensions")

    existing_map = _fetch_existing_facts(conn)
    next_key = conn.execute(f"SELECT COALESCE(MAX(fact_key), 0) FROM {FACT_TABLE}").fetchone()[0] + 1

    for (artwork_nk, exhibition_nk), values in fact_rows.items():
        if cancel_event is not None and cancel_event.is_set():
            raise PropagationCancelled(FACT_TABLE)

        existing = existing_map.get((artwork_nk, exhibition_nk))
        if existing is None:
            statements.insert(FACT_TABLE, {
                'fact_key': next_key,
                'artwork_nk': artwork_nk,
                'exhibition_nk': exhibition_nk,
                **values,
                'etl_load_ts': load_ts,
            }).execute(conn)
            next_key += 1
            stats['inserted'] += 1
        elif _has_changes(existing, values):
            statements.update(
                FACT_TABLE,
                {**values, 'etl_load_ts': load_ts},
                {'fact_key': existing[0]}
            ).execute(conn)
            stats['updated'] += 1
        else:
            stats['unchanged'] += 1

    logger.info(
        f"Facts: inserted={stats['inserted']}, updated={stats['updated']}, "
        f"unchanged={stats['unchanged']}, deferred={stats['deferred']}"
    )
    return stats
