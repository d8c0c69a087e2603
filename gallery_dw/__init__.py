"""Art gallery data warehouse: OLTP to star schema propagation, integrity checks and analytics."""

__version__ = "0.1.0"
