"""Read-only access to the gallery OLTP database."""

from .reader import (
    SOURCE_TABLES,
    SOURCE_KEYS,
    SourceReader,
    PostgresSourceReader,
    DuckDBSourceReader,
)

__all__ = [
    'SOURCE_TABLES',
    'SOURCE_KEYS',
    'SourceReader',
    'PostgresSourceReader',
    'DuckDBSourceReader',
]
