"""Warehouse data quality checks."""

from .integrity import (
    IntegrityValidator,
    IntegrityResult,
    IntegrityIssue,
    IntegrityCheck,
    validate_integrity,
)

__all__ = [
    'IntegrityValidator',
    'IntegrityResult',
    'IntegrityIssue',
    'IntegrityCheck',
    'validate_integrity',
]
