"""Warehouse ETL exceptions."""


class SourceUnavailableError(Exception):
    """Raised when the OLTP source cannot be read."""
    pass


class WarehouseUnavailableError(Exception):
    """Raised when the warehouse connection cannot be used at all."""
    pass


class PropagationCancelled(Exception):
    """Raised inside a stage when the run's cancel event is set."""
    pass
