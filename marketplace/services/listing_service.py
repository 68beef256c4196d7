from __future__ import annotations

import logging
import os

from sqlalchemy.exc import SQLAlchemyError

from marketplace.services.category_resolver import resolve_category_ids
from marketplace.services.listing_cache import ListingCache
from marketplace.services.listing_filter import build_listing_filter
from marketplace.services.listing_query import QUERY_FAILED, ListingPage, execute_listing_query
from marketplace.utils.observability import capture_exception, get_request_id


logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10


class InvalidListingQuery(ValueError):
    pass


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except Exception:
            value = int(default)
    return max(minimum, min(value, maximum))


def max_page_size() -> int:
    return _env_int("LISTINGS_MAX_PAGE_SIZE", 100, minimum=1, maximum=1000)


def max_page() -> int:
    return _env_int("LISTINGS_MAX_PAGE", 1000, minimum=1, maximum=1000000)


def _query_params(
    main_category: str,
    sub_category: str | None,
    sub_sub_category: str | None,
    page: int,
    page_size: int,
    location: str | None,
    date_posted: str | None,
    min_price,
    max_price,
) -> dict:
    return {
        "main_category": main_category,
        "sub_category": sub_category,
        "sub_sub_category": sub_sub_category,
        "page": page,
        "page_size": page_size,
        "location": location,
        "date_posted": date_posted,
        "min_price": min_price,
        "max_price": max_price,
    }


def fetch_listings(
    main_category: str,
    sub_category: str | None = None,
    sub_sub_category: str | None = None,
    *,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    location: str | None = None,
    date_posted: str | None = None,
    min_price=None,
    max_price=None,
) -> ListingPage:
    """Uncached pipeline: resolve the category path, build the filter, run the page query."""
    try:
        category_ids = resolve_category_ids(main_category, sub_category, sub_sub_category)
    except SQLAlchemyError as exc:
        logger.exception(
            "listings_category_lookup_failed main_category=%s request_id=%s",
            main_category,
            get_request_id(),
        )
        capture_exception(exc)
        return ListingPage(page=page, page_size=page_size, error=QUERY_FAILED)
    listing_filter = build_listing_filter(
        category_ids,
        location=location,
        date_posted=date_posted,
        min_price=min_price,
        max_price=max_price,
    )
    return execute_listing_query(listing_filter, page=page, page_size=page_size)


def get_listings(
    main_category: str,
    sub_category: str | None = None,
    sub_sub_category: str | None = None,
    *,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    location: str | None = None,
    date_posted: str | None = None,
    min_price=None,
    max_price=None,
    cache: ListingCache | None = None,
) -> ListingPage:
    try:
        page = int(page)
        page_size = int(page_size)
    except (TypeError, ValueError):
        raise InvalidListingQuery("page and page_size must be integers")
    if page < 1:
        raise InvalidListingQuery("page must be >= 1")
    if page_size < 1:
        raise InvalidListingQuery("page_size must be >= 1")
    if page > max_page():
        raise InvalidListingQuery(f"page must be <= {max_page()}")
    page_size = min(page_size, max_page_size())

    params = _query_params(
        main_category,
        sub_category,
        sub_sub_category,
        page,
        page_size,
        location,
        date_posted,
        min_price,
        max_price,
    )
    listing_cache = cache or ListingCache()
    result = listing_cache.get_or_compute(
        params,
        lambda: fetch_listings(
            main_category,
            sub_category,
            sub_sub_category,
            page=page,
            page_size=page_size,
            location=location,
            date_posted=date_posted,
            min_price=min_price,
            max_price=max_price,
        ),
    )
    if result.degraded:
        logger.warning("listings_page_degraded main_category=%s page=%s error=%s", main_category, page, result.error)
    return result


def invalidate_listings_cache(cache: ListingCache | None = None) -> int:
    removed = (cache or ListingCache()).invalidate()
    logger.info("listings_cache_invalidated removed=%s", removed)
    return removed
