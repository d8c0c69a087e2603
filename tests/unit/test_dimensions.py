"""Unit tests for dimension processing."""
import threading
from datetime import date, datetime

import pandas as pd
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from gallery_dw.errors import PropagationCancelled
from gallery_dw.etl.warehouse.dimensions import (
    coerce,
    label,
    to_date_key,
    process_dim_artist,
    process_dim_artwork,
    process_dim_collection,
    process_dim_date,
    process_dim_exhibition,
    process_dim_exhibitor,
    process_dim_location,
    process_dim_visitor,
)
from gallery_dw.etl.warehouse.dimensions.artist import ARTIST
from gallery_dw.etl.warehouse.dimensions.base import upsert_dimension
from gallery_dw.etl.warehouse.dimensions.visitor import full_name

from tests.conftest import LOAD_TS, NEXT_LOAD_TS, count


class TestCoerce:
    """Tests for value coercion used in change detection."""

    def test_nulls(self):
        """NaN, NaT and None all become None."""
        assert coerce(None, 'str') is None
        assert coerce(float('nan'), 'int') is None
        assert coerce(pd.NaT, 'date') is None

    def test_numbers(self):
        """Float-typed ints from pandas compare equal to ints."""
        assert coerce(1906.0, 'int') == 1906
        assert coerce('42', 'int') == 42
        assert coerce(0.1 + 0.2, 'float') == coerce(0.3, 'float')

    def test_dates(self):
        """Timestamps and datetimes become plain dates."""
        assert coerce(pd.Timestamp('2024-03-01'), 'date') == date(2024, 3, 1)
        assert coerce(datetime(2024, 3, 1, 10, 30), 'date') == date(2024, 3, 1)
        assert coerce('2024-03-01', 'date') == date(2024, 3, 1)

    def test_unknown_kind(self):
        """Should reject an unknown column kind."""
        with pytest.raises(ValueError):
            coerce(1, 'money')


class TestLabels:
    """Tests for descriptive label defaults."""

    def test_label_defaults(self):
        """Missing or blank text becomes 'Unknown'."""
        assert label(None) == 'Unknown'
        assert label('  ') == 'Unknown'
        assert label(float('nan')) == 'Unknown'
        assert label('Monet') == 'Monet'

    def test_full_name(self):
        """Visitor names join first and last, skipping missing parts."""
        assert full_name('Ana', 'Lopez') == 'Ana Lopez'
        assert full_name('Ana', None) == 'Ana'
        assert full_name(None, float('nan')) == 'Unknown'


class TestDateKey:
    """Tests for to_date_key."""

    def test_encoding(self):
        """YYYYMMDD integer."""
        assert to_date_key(date(2024, 3, 1)) == 20240301
        assert to_date_key(pd.Timestamp('1999-12-31')) == 19991231

    def test_missing(self):
        assert to_date_key(None) is None
        assert to_date_key(pd.NaT) is None


class TestDimDate:
    """Tests for DimDate generation."""

    def test_contiguous_range(self, dw_conn, source):
        """Every day between the earliest and latest date exists, with no gaps."""
        frames = source.read_all()
        stats = process_dim_date(dw_conn, frames, LOAD_TS, projection_days=10)

        first, last, rows = dw_conn.execute(
            "SELECT MIN(full_date), MAX(full_date), COUNT(*) FROM DimDate"
        ).fetchone()
        assert first == date(2020, 1, 15)
        # latest source date (policy end) is past the projection window
        assert last == date(2024, 12, 31)
        assert rows == (last - first).days + 1
        assert stats['inserted'] == rows

    def test_rerun_inserts_nothing(self, dw_conn, source):
        """Existing days are kept."""
        frames = source.read_all()
        process_dim_date(dw_conn, frames, LOAD_TS)
        stats = process_dim_date(dw_conn, frames, LOAD_TS)
        assert stats['inserted'] == 0

    def test_calendar_attributes(self, dw_conn):
        """Calendar columns derive from the day."""
        process_dim_date(dw_conn, {}, datetime(2024, 3, 2), projection_days=0)
        row = dw_conn.execute("""
            SELECT day_name, quarter, quarter_name, year_month, is_weekend, month_name
            FROM DimDate WHERE date_key = 20240302
        """).fetchone()
        assert row == ('Saturday', 1, 'Q1', '2024-03', True, 'March')


class TestScd2Dimension:
    """Tests for SCD Type 2 behaviour on DimArtist."""

    def test_initial_insert(self, dw_conn, source):
        """New natural keys get one current row each."""
        stats = process_dim_artist(dw_conn, source.read_table('artist'), LOAD_TS)
        assert stats['inserted'] == 3
        assert count(dw_conn, 'DimArtist', 'WHERE is_current') == 3

    def test_unchanged_rerun_writes_nothing(self, dw_conn, source):
        """Same source twice: no new rows, no updates."""
        artists = source.read_table('artist')
        process_dim_artist(dw_conn, artists, LOAD_TS)
        stats = process_dim_artist(dw_conn, artists, NEXT_LOAD_TS)

        assert stats == {'processed': 3, 'inserted': 0, 'updated': 0, 'unchanged': 3, 'deferred': 0}
        assert count(dw_conn, 'DimArtist') == 3

    def test_change_creates_new_version(self, dw_conn, source):
        """A changed attribute closes the current row and opens a new one at the load timestamp."""
        artists = source.read_table('artist')
        process_dim_artist(dw_conn, artists, LOAD_TS)

        changed = artists.copy()
        changed.loc[changed['artist_id'] == 1, 'nationality'] = 'French-Impressionist'
        stats = process_dim_artist(dw_conn, changed, NEXT_LOAD_TS)

        assert stats['updated'] == 1
        versions = dw_conn.execute("""
            SELECT nationality, effective_start, effective_end, is_current
            FROM DimArtist WHERE artist_nk = 1 ORDER BY effective_start
        """).fetchall()
        assert len(versions) == 2
        old, new = versions
        assert old == ('French', LOAD_TS, NEXT_LOAD_TS, False)
        assert new == ('French-Impressionist', NEXT_LOAD_TS, None, True)
        assert old[2] == new[1]

    def test_new_version_gets_new_surrogate(self, dw_conn, source):
        """The surrogate key of the new version differs from the old one."""
        artists = source.read_table('artist')
        process_dim_artist(dw_conn, artists, LOAD_TS)
        changed = artists.copy()
        changed.loc[changed['artist_id'] == 2, 'name'] = 'Magdalena Frida Kahlo'
        process_dim_artist(dw_conn, changed, NEXT_LOAD_TS)

        keys = [r[0] for r in dw_conn.execute(
            "SELECT artist_sk FROM DimArtist WHERE artist_nk = 2"
        ).fetchall()]
        assert len(set(keys)) == 2

    def test_nulls_propagate(self, dw_conn, source):
        """A NULL source value stays NULL, not an empty string."""
        process_dim_artist(dw_conn, source.read_table('artist'), LOAD_TS)
        death_year = dw_conn.execute(
            "SELECT death_year FROM DimArtist WHERE artist_nk = 3"
        ).fetchone()[0]
        assert death_year is None

    def test_cancel_event_stops_stage(self, dw_conn):
        """A set cancel event raises before the next record is written."""
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(PropagationCancelled):
            upsert_dimension(dw_conn, ARTIST, [{'artist_nk': 1, 'name': 'Monet'}], LOAD_TS, cancel)
        assert count(dw_conn, 'DimArtist') == 0


class TestType1Dimension:
    """Tests for Type 1 reference dimensions."""

    def test_surrogate_equals_natural_key(self, dw_conn, source):
        process_dim_location(dw_conn, source.read_table('location'), LOAD_TS)
        rows = dw_conn.execute(
            "SELECT location_key, location_nk, is_current FROM DimLocation ORDER BY 1"
        ).fetchall()
        assert rows == [(1, 1, True), (2, 2, True)]

    def test_change_overwrites_in_place(self, dw_conn, source):
        """A change updates the existing row without adding history."""
        locations = source.read_table('location')
        process_dim_location(dw_conn, locations, LOAD_TS)

        changed = locations.copy()
        changed.loc[changed['location_id'] == 1, 'name'] = 'West Wing'
        stats = process_dim_location(dw_conn, changed, NEXT_LOAD_TS)

        assert stats['updated'] == 1
        assert count(dw_conn, 'DimLocation') == 2
        name, updated_at = dw_conn.execute(
            "SELECT name, updated_at FROM DimLocation WHERE location_key = 1"
        ).fetchone()
        assert name == 'West Wing'
        assert updated_at == NEXT_LOAD_TS

    def test_collection_date_key(self, dw_conn, source):
        process_dim_collection(dw_conn, source.read_table('collection'), LOAD_TS)
        key = dw_conn.execute(
            "SELECT created_date_key FROM DimCollection WHERE collection_nk = 1"
        ).fetchone()[0]
        assert key == 20200115


class TestDependencyOrdering:
    """Tests for deferral of rows with unresolved mandatory references."""

    def test_artwork_deferred_without_artist(self, dw_conn, source):
        """Artworks are not written while their artists are missing."""
        stats = process_dim_artwork(dw_conn, source.read_table('artwork'), LOAD_TS)
        assert stats['deferred'] == 3
        assert count(dw_conn, 'DimArtwork') == 0

    def test_artwork_loaded_after_artist(self, dw_conn, source):
        """Optional references resolve to NULL when their dimension is empty."""
        process_dim_artist(dw_conn, source.read_table('artist'), LOAD_TS)
        stats = process_dim_artwork(dw_conn, source.read_table('artwork'), LOAD_TS)

        assert stats['inserted'] == 3
        row = dw_conn.execute("""
            SELECT a.collection_key, a.location_key, ar.artist_nk
            FROM DimArtwork a JOIN DimArtist ar ON a.artist_key = ar.artist_sk
            WHERE a.artwork_nk = 1
        """).fetchone()
        assert row == (None, None, 1)

    def test_exhibition_deferred_without_exhibitor(self, dw_conn, source):
        """An exhibition naming an unloaded exhibitor is deferred."""
        stats = process_dim_exhibition(dw_conn, source.read_table('exhibition'), LOAD_TS)
        assert stats['deferred'] == 2

        process_dim_exhibitor(dw_conn, source.read_table('exhibitor'), LOAD_TS)
        stats = process_dim_exhibition(dw_conn, source.read_table('exhibition'), LOAD_TS)
        assert stats['inserted'] == 2

    def test_exhibition_derived_columns(self, dw_conn, source):
        process_dim_exhibitor(dw_conn, source.read_table('exhibitor'), LOAD_TS)
        process_dim_exhibition(dw_conn, source.read_table('exhibition'), LOAD_TS)
        row = dw_conn.execute("""
            SELECT start_date_key, end_date_key, duration_days, description
            FROM DimExhibition WHERE exhibition_nk = 2
        """).fetchone()
        assert row == (20240715, 20241015, 92, None)


class TestVisitorDimension:
    """Tests for DimVisitor mapping."""

    def test_visitor_columns(self, dw_conn, source):
        process_dim_visitor(dw_conn, source.read_table('visitor'), LOAD_TS)
        rows = dw_conn.execute(
            "SELECT visitor_nk, full_name, email, membership_type FROM DimVisitor ORDER BY visitor_nk"
        ).fetchall()
        assert rows == [
            (1, 'Ana Lopez', 'ana@example.com', 'Gold'),
            (2, 'Unknown', 'guest@example.com', None),
        ]
