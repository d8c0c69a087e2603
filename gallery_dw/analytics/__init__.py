"""Read-only analytics over the warehouse star schema."""

from .cache import QueryCache
from .queries import DwAnalytics

__all__ = ['QueryCache', 'DwAnalytics']
