"""
Stat aggregation for CTR Platform.

Responsibilities:
    - Join the "view" and "click" namespaces of one referer
    - Compute the per-URL CTR field
    - Tolerate per-entry read failures (partial report over no report)

Report rules:
    - The key universe is the referer's view namespace. A URL with clicks but no
      recorded views does not appear.
    - ctr = views / clicks when clicks > 0, else 0.0. This is views per click, the
      contract of the reporting API consumers; do not invert it here.
    - Entries keep the byte-wise order of the view keys.

No caching: every report re-reads the store.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List

from ..errors import StoreReadError
from ..storage.base import BaseCounterStore, namespace_for
from .base import BaseAggregator

log = logging.getLogger("ctr.analytics")


@dataclass(frozen=True)
class StatEntry:
    url: str
    views: int
    clicks: int
    ctr: float

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def compute_ctr(views: int, clicks: int) -> float:
    """Return views / clicks, or 0.0 when there are no clicks."""
    if clicks > 0:
        return views / clicks
    return 0.0


class StatAggregator(BaseAggregator):
    def __init__(self, store: BaseCounterStore):
        """
        Args:
            store (BaseCounterStore): Counter store to read from. The aggregator
                holds no state of its own.
        """
        self.store = store

    def report(self, referer: str) -> List[StatEntry]:
        """
        Build the report for a referer.

        Raises:
            StoreReadError: If the view key listing itself fails. Failures on
                individual entries are logged and the entry is skipped (views)
                or counted as zero (clicks).

        Example:
            [
                StatEntry(url="url1", views=2, clicks=1, ctr=2.0),
                StatEntry(url="url2", views=2, clicks=0, ctr=0.0),
            ]
        """
        view_ns = namespace_for("view", referer)
        click_ns = namespace_for("click", referer)

        entries: List[StatEntry] = []
        for key in self.store.list_keys(view_ns):
            try:
                views = self.store.get(view_ns, key)
            except StoreReadError as exc:
                log.warning("Skipping %r in report for %r: %s", key, referer, exc)
                continue
            if views is None:
                continue

            try:
                clicks = self.store.get(click_ns, key) or 0
            except StoreReadError as exc:
                log.warning("Click count for %r unavailable (%s); using 0", key, exc)
                clicks = 0

            entries.append(StatEntry(
                url=key.decode("utf-8", errors="replace"),
                views=views,
                clicks=clicks,
                ctr=compute_ctr(views, clicks),
            ))
        return entries
