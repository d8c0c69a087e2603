"""Run history for the warehouse job."""

from .sync_history import SyncHistoryLogger, SyncRecord

__all__ = ['SyncHistoryLogger', 'SyncRecord']
