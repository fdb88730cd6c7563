"""
Abstract Base Class for report aggregators.

Responsibilities:
    - Define the reporting contract the gateway depends on
    - Support substitution (e.g., a cached or pre-aggregated implementation)
"""

from abc import ABC, abstractmethod

__all__ = ["BaseAggregator"]


class BaseAggregator(ABC):
    """Abstract base for pluggable report aggregators."""

    @abstractmethod
    def report(self, referer: str) -> list:  # pragma: no cover
        """
        Build the per-URL report for one referer.

        Args:
            referer (str): Publisher/placement identifier.

        Returns:
            List[StatEntry]: One entry per URL, in key order.
        """
        raise NotImplementedError
