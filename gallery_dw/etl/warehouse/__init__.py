"""
DWH ETL Module.

Handles propagation from the gallery OLTP database to the DuckDB star schema.
The warehouse file is stored on MinIO (S3-compatible object storage).

Structure:
├── pipeline.py          - Propagation orchestrator and run_etl job
├── prober.py            - Schema capability probing
├── schema.py            - Star schema DDL
├── statements.py        - Parameterized statement builder
├── cache.py             - Dimension key caches
├── results.py           - Run/stage result types
├── dimensions/          - Dimension processors
│   ├── base.py          - Generic Type 1 / SCD2 upsert engine
│   ├── date.py          - DimDate
│   ├── artist.py        - DimArtist (SCD2)
│   ├── artwork.py       - DimArtwork (SCD2)
│   ├── exhibition.py    - DimExhibition (SCD2)
│   ├── visitor.py       - DimVisitor (SCD2)
│   ├── staff.py         - DimStaff (SCD2)
│   ├── insurance.py     - DimInsurance (SCD2)
│   └── reference.py     - DimCollection, DimLocation, DimExhibitor, DimPolicy
└── facts/
    └── exhibition_activity.py - FactExhibitionActivity

Storage: gallery_dw/storage/minio.py
"""

from .pipeline import run_propagation, run_etl, STAGES
from .prober import SchemaCapabilities, probe_schema, table_exists
from .results import PropagationMode, PropagationResult, TableResult
from .schema import setup_schema, WAREHOUSE_TABLES
from .cache import init_dimension_caches

__all__ = [
    'run_propagation',
    'run_etl',
    'STAGES',
    'SchemaCapabilities',
    'probe_schema',
    'table_exists',
    'PropagationMode',
    'PropagationResult',
    'TableResult',
    'setup_schema',
    'WAREHOUSE_TABLES',
    'init_dimension_caches',
]
