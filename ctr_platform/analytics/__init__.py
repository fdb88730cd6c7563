from .analytics import StatAggregator, StatEntry, compute_ctr
from .base import BaseAggregator

__all__ = ["BaseAggregator", "StatAggregator", "StatEntry", "compute_ctr"]
