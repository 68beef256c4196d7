from __future__ import annotations

from typing import Any, Callable

from marketplace.services.listing_query import ListingPage
from marketplace.utils.cache_layer import (
    build_cache_key,
    get_cache_backend,
    listings_cache_ttl_seconds,
)
from marketplace.utils.observability import note_request


LISTINGS_TAG = "listings"


def _storable(payload: dict) -> bool:
    # Degraded pages would pin a transient failure for the whole TTL.
    return isinstance(payload, dict) and payload.get("error") is None


class ListingCache:
    """Memoizes listing pages by their full parameter set, grouped under one tag."""

    def __init__(self, backend=None, ttl_seconds: int | None = None, tag: str = LISTINGS_TAG):
        self._backend = backend
        self.ttl_seconds = ttl_seconds
        self.tag = tag

    @property
    def backend(self):
        return self._backend if self._backend is not None else get_cache_backend()

    def key_for(self, params: dict[str, Any]) -> str:
        return build_cache_key(self.tag, params)

    def get_or_compute(self, params: dict[str, Any], compute: Callable[[], ListingPage]) -> ListingPage:
        computed = False

        def produce() -> dict:
            nonlocal computed
            computed = True
            return compute().to_dict()

        payload = self.backend.get_or_set(
            self.key_for(params),
            produce,
            ttl_seconds=self.ttl_seconds or listings_cache_ttl_seconds(),
            tags=(self.tag,),
            should_store=_storable,
        )
        note_request(listings_cache="miss" if computed else "hit")
        return ListingPage.from_dict(payload)

    def invalidate(self) -> int:
        return self.backend.invalidate_tag(self.tag)
