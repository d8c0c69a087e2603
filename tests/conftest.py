"""Shared fixtures: an in-memory OLTP snapshot and an in-memory warehouse."""
import os
import sys
from datetime import date, datetime

import duckdb
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from gallery_dw.etl.warehouse.schema import setup_schema
from gallery_dw.source import DuckDBSourceReader

LOAD_TS = datetime(2024, 11, 1, 12, 0, 0)
NEXT_LOAD_TS = datetime(2024, 11, 2, 12, 0, 0)

OLTP_DDL = [
    "CREATE TABLE artist (artist_id INTEGER, name VARCHAR, nationality VARCHAR, birth_year INTEGER, death_year INTEGER)",
    "CREATE TABLE collection (collection_id INTEGER, name VARCHAR, description VARCHAR, created_date DATE)",
    "CREATE TABLE location (location_id INTEGER, name VARCHAR, gallery_room VARCHAR, type VARCHAR, capacity INTEGER)",
    "CREATE TABLE exhibitor (exhibitor_id INTEGER, name VARCHAR, address VARCHAR, city VARCHAR, contact_info VARCHAR)",
    "CREATE TABLE insurance_policy (policy_id INTEGER, provider VARCHAR, start_date DATE, end_date DATE, total_coverage_amount DOUBLE)",
    "CREATE TABLE artwork (artwork_id INTEGER, title VARCHAR, artist_id INTEGER, year_created INTEGER, medium VARCHAR, collection_id INTEGER, location_id INTEGER, estimated_value DOUBLE)",
    "CREATE TABLE exhibition (exhibition_id INTEGER, title VARCHAR, description VARCHAR, start_date DATE, end_date DATE, exhibitor_id INTEGER)",
    "CREATE TABLE artwork_exhibition (artwork_id INTEGER, exhibition_id INTEGER)",
    "CREATE TABLE insurance (insurance_id INTEGER, artwork_id INTEGER, policy_id INTEGER, insured_amount DOUBLE, coverage_type VARCHAR, status VARCHAR)",
    "CREATE TABLE loan (loan_id INTEGER, artwork_id INTEGER, exhibitor_id INTEGER, start_date DATE, end_date DATE)",
    "CREATE TABLE restoration (restoration_id INTEGER, artwork_id INTEGER, staff_id INTEGER, start_date DATE, end_date DATE)",
    "CREATE TABLE gallery_review (review_id INTEGER, visitor_id INTEGER, artwork_id INTEGER, exhibition_id INTEGER, rating INTEGER, review_date DATE)",
    "CREATE TABLE visitor (visitor_id INTEGER, first_name VARCHAR, last_name VARCHAR, email VARCHAR, membership_type VARCHAR)",
    "CREATE TABLE staff (staff_id INTEGER, name VARCHAR, role VARCHAR, hire_date DATE)",
]

OLTP_ROWS = {
    'artist': [
        (1, 'Claude Monet', 'French', 1840, 1926),
        (2, 'Frida Kahlo', 'Mexican', 1907, 1954),
        (3, 'Yayoi Kusama', 'Japanese', 1929, None),
    ],
    'collection': [
        (1, 'Impressionism', '19th century French works', date(2020, 1, 15)),
        (2, 'Modern', '20th century works', date(2021, 6, 1)),
    ],
    'location': [
        (1, 'East Wing', 'E1', 'Gallery', 120),
        (2, 'Vault', 'B2', 'Storage', None),
    ],
    'exhibitor': [
        (1, 'City Museum', '1 Main St', 'Paris', 'info@citymuseum.org'),
        (2, 'Private Lender', None, 'Mexico City', None),
    ],
    'insurance_policy': [
        (1, 'AXA Art', date(2024, 1, 1), date(2024, 12, 31), 1000000.0),
        (2, 'Lloyds', date(2024, 3, 1), None, 500000.0),
    ],
    'artwork': [
        (1, 'Water Lilies', 1, 1906, 'Oil on canvas', 1, 1, 2500000.0),
        (2, 'The Two Fridas', 2, 1939, 'Oil on canvas', 2, 1, 1800000.0),
        (3, 'Infinity Net', 3, 1959, 'Oil on canvas', None, 2, None),
    ],
    'exhibition': [
        (1, 'Light and Water', 'Impressionist landscapes', date(2024, 3, 1), date(2024, 6, 30), 1),
        (2, 'Self Portraits', None, date(2024, 7, 15), date(2024, 10, 15), 2),
    ],
    'artwork_exhibition': [
        (1, 1),
        (2, 2),
        (3, 2),
    ],
    'insurance': [
        (1, 1, 1, 50000.0, 'All risk', 'Active'),
        (2, 1, 2, 30000.0, 'Transit', 'Active'),
        (3, 2, 1, 120000.0, 'All risk', 'Active'),
    ],
    'loan': [
        (1, 2, 2, date(2024, 7, 1), date(2024, 10, 31)),
    ],
    'restoration': [
        (1, 1, 1, date(2023, 5, 1), date(2023, 6, 1)),
        (2, 1, 2, date(2024, 1, 10), None),
    ],
    'gallery_review': [
        (1, 1, 1, 1, 5, date(2024, 3, 10)),
        (2, 2, 1, 1, 4, date(2024, 4, 2)),
        (3, 1, 2, 2, 3, date(2024, 8, 1)),
    ],
    'visitor': [
        (1, 'Ana', 'Lopez', 'ana@example.com', 'Gold'),
        (2, None, None, 'guest@example.com', None),
    ],
    'staff': [
        (1, 'Jean Dupont', 'Conservator', date(2021, 9, 1)),
        (2, 'Maria Silva', 'Curator', date(2022, 2, 11)),
    ],
}


def build_oltp(conn):
    for ddl in OLTP_DDL:
        conn.execute(ddl)
    for table, rows in OLTP_ROWS.items():
        placeholders = ', '.join(['?'] * len(rows[0]))
        for row in rows:
            conn.execute(f"INSERT INTO {table} VALUES ({placeholders})", list(row))
    return conn


def count(conn, table, where=''):
    return conn.execute(f"SELECT COUNT(*) FROM {table} {where}").fetchone()[0]


@pytest.fixture
def oltp_conn():
    conn = build_oltp(duckdb.connect(':memory:'))
    yield conn
    conn.close()


@pytest.fixture
def source(oltp_conn):
    return DuckDBSourceReader(oltp_conn)


@pytest.fixture
def dw_conn():
    conn = duckdb.connect(':memory:')
    setup_schema(conn)
    yield conn
    conn.close()
