"""
Fact processing modules for DWH ETL.
"""

from .exhibition_activity import process_facts, build_fact_rows, FACT_TABLE

__all__ = [
    'process_facts',
    'build_fact_rows',
    'FACT_TABLE',
]
