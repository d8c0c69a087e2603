"""Unit tests for schema capability probing."""
import pytest
import sys
import os

import duckdb

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from gallery_dw.errors import WarehouseUnavailableError
from gallery_dw.etl.warehouse.prober import ensure_connection, probe_schema, table_exists
from gallery_dw.etl.warehouse.schema import WAREHOUSE_TABLES, is_new_warehouse, setup_schema


class CatalogUnavailable:
    """Connection wrapper whose catalog queries fail."""

    def __init__(self, conn):
        self.conn = conn
        self.queries = []

    def execute(self, sql, params=None):
        self.queries.append(sql)
        if 'information_schema' in sql:
            raise duckdb.CatalogException("information_schema is not available")
        return self.conn.execute(sql) if params is None else self.conn.execute(sql, params)


class TestTableExists:
    """Tests for table_exists."""

    def setup_method(self):
        self.conn = duckdb.connect(':memory:')
        setup_schema(self.conn, ['DimArtist'])

    def teardown_method(self):
        self.conn.close()

    def test_existing_table(self):
        """Should find a created table."""
        assert table_exists(self.conn, 'DimArtist')

    def test_case_insensitive(self):
        """Should match regardless of case."""
        assert table_exists(self.conn, 'dimartist')

    def test_missing_table(self):
        """Should report an absent table without raising."""
        assert not table_exists(self.conn, 'DimLocation')

    def test_catalog_unavailable_falls_back(self):
        """Should probe the table directly when information_schema cannot be read."""
        conn = CatalogUnavailable(self.conn)

        assert table_exists(conn, 'DimArtist')
        assert not table_exists(conn, 'DimLocation')
        assert any('LIMIT 0' in sql for sql in conn.queries)


class TestProbeSchema:
    """Tests for probe_schema."""

    def test_partial_schema(self):
        """Should map every warehouse table to present/missing."""
        conn = duckdb.connect(':memory:')
        setup_schema(conn, [t for t in WAREHOUSE_TABLES if t != 'DimLocation'])

        caps = probe_schema(conn)

        assert set(caps.tables) == set(WAREHOUSE_TABLES)
        assert caps.missing_tables == ['DimLocation']
        assert caps.has_table('DimArtist')
        assert not caps.has_table('DimLocation')
        conn.close()

    def test_columns_resolved(self):
        """Should expose column names of present tables."""
        conn = duckdb.connect(':memory:')
        setup_schema(conn, ['FactExhibitionActivity'])

        caps = probe_schema(conn, ['FactExhibitionActivity'])

        assert caps.has_column('FactExhibitionActivity', 'insured_amount')
        assert caps.has_column('FactExhibitionActivity', 'INSURED_AMOUNT')
        assert not caps.has_column('FactExhibitionActivity', 'visitor_count')
        conn.close()

    def test_new_warehouse_detection(self):
        """Should detect an empty database."""
        conn = duckdb.connect(':memory:')
        assert is_new_warehouse(conn)
        setup_schema(conn, ['DimDate'])
        assert not is_new_warehouse(conn)
        conn.close()


class TestEnsureConnection:
    """Tests for ensure_connection."""

    def test_open_connection(self):
        """Should pass on a usable connection."""
        conn = duckdb.connect(':memory:')
        ensure_connection(conn)
        conn.close()

    def test_closed_connection(self):
        """Should raise WarehouseUnavailableError on a closed connection."""
        conn = duckdb.connect(':memory:')
        conn.close()
        with pytest.raises(WarehouseUnavailableError):
            ensure_connection(conn)
