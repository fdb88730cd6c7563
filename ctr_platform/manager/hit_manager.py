"""
HitManager module for CTR Platform.

Responsibilities:
    - Validate hit registrations (referer, URL list, metric)
    - Fan a registration out into one counter increment per URL
    - Report per-URL outcomes so the gateway can surface partial failure

Design notes:
    - Each increment is its own unit of durability. There is no multi-key
      transaction: if a later URL fails, earlier ones stay counted.
    - A write failure on one URL does not stop the remaining URLs. A closed
      store counts as a write failure for every URL.
    - The store is injected; the manager owns no state.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Sequence

from ..errors import StoreError, ValidationError
from ..storage.base import METRICS, BaseCounterStore, namespace_for

log = logging.getLogger("ctr.manager")

RefererPattern = re.compile(r"^[0-9A-Za-z]+$")
MAX_REFERER_LENGTH = 250


@dataclass
class RegistrationResult:
    """Outcome of one registration request."""

    referer: str
    metric: str
    counted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def validate_referer(referer: str) -> str:
    """
    Validate referer characters and length (1..250, ASCII alphanumeric).

    Raises:
        ValidationError: If the referer is missing, too long or not alphanumeric.
    """
    if not isinstance(referer, str) or not referer:
        raise ValidationError("Referer is required")
    if len(referer) > MAX_REFERER_LENGTH:
        raise ValidationError("Referer too long")
    if not RefererPattern.match(referer):
        raise ValidationError("Referer must contain only 0-9a-zA-Z")
    return referer


class HitManager:
    def __init__(self, store: BaseCounterStore):
        """
        Args:
            store (BaseCounterStore): Counter store receiving the increments.
        """
        self.store = store

    def _validate_urls(self, urls: Sequence[str]) -> None:
        if not urls:
            raise ValidationError("Empty urls")
        if isinstance(urls, (str, bytes)) or not all(isinstance(u, str) for u in urls):
            raise ValidationError("Urls must be a list of strings")

    def register(self, metric: str, referer: str, urls: Sequence[str]) -> RegistrationResult:
        """
        Count one hit of `metric` for every URL in `urls`.

        Rules:
            - metric must be "view" or "click".
            - referer must pass `validate_referer`.
            - urls must be a non-empty list of strings; duplicates count twice.

        Returns:
            RegistrationResult: URLs counted and URLs whose increment failed, in
            request order.

        Raises:
            ValidationError: On invalid input. Nothing is counted in that case.
        """
        if metric not in METRICS:
            raise ValidationError(f"Unknown metric: {metric!r}")
        validate_referer(referer)
        self._validate_urls(urls)

        namespace = namespace_for(metric, referer)
        result = RegistrationResult(referer=referer, metric=metric)
        for url in urls:
            try:
                self.store.increment(namespace, url)
            except StoreError as exc:
                # StoreWriteError, or StoreClosedError after shutdown began
                log.warning("Failed to count %s for %r under %r: %s", metric, url, referer, exc)
                result.failed.append(url)
            else:
                result.counted.append(url)
        return result

    def register_view(self, referer: str, urls: Sequence[str]) -> RegistrationResult:
        return self.register("view", referer, urls)

    def register_click(self, referer: str, urls: Sequence[str]) -> RegistrationResult:
        return self.register("click", referer, urls)
