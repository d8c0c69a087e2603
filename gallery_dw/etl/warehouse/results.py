"""Propagation result types."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

STATUS_SUCCESS = 'Success'
STATUS_ERROR = 'Error'
STATUS_SKIPPED = 'Skipped'
STATUS_CANCELLED = 'Cancelled'


class PropagationMode(str, Enum):
    FULL = 'Full'
    INCREMENTAL = 'Incremental'

    @classmethod
    def parse(cls, value) -> 'PropagationMode':
        if isinstance(value, cls):
            return value
        for mode in cls:
            if str(value).lower() == mode.value.lower():
                return mode
        raise ValueError(f"Unknown propagation mode: {value}")


@dataclass
class TableResult:
    """Outcome of one propagation stage."""
    table: str
    status: str = STATUS_SUCCESS
    records_processed: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    deferred: int = 0
    duration_ms: float = 0.0
    error: Optional[str] = None

    @property
    def loaded(self) -> int:
        return self.inserted + self.updated

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PropagationResult:
    """Outcome of a whole propagation run."""
    mode: str
    start_time: datetime
    status: str = STATUS_SUCCESS
    end_time: Optional[datetime] = None
    duration_ms: float = 0.0
    per_table_results: List[TableResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == STATUS_SUCCESS

    @property
    def loaded_record_count(self) -> int:
        return sum(t.loaded for t in self.per_table_results)

    def table(self, name: str) -> Optional[TableResult]:
        for table_result in self.per_table_results:
            if table_result.table == name:
                return table_result
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'mode': self.mode,
            'loaded_record_count': self.loaded_record_count,
            'duration_ms': self.duration_ms,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'per_table_results': [t.to_dict() for t in self.per_table_results],
            'errors': list(self.errors),
            'warnings': list(self.warnings),
        }
