from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable

from sqlalchemy import and_, false, func

from marketplace.models import Listing


DATE_POSTED_WINDOWS: dict[str, timedelta] = {
    "24h": timedelta(days=1),
    "7d": timedelta(days=7),
    "14d": timedelta(days=14),
    "30d": timedelta(days=30),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_decimal(raw) -> Decimal | None:
    if raw is None or raw == "":
        return None
    try:
        return Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None


def posted_after(date_posted: str | None, *, now: datetime | None = None) -> datetime | None:
    window = DATE_POSTED_WINDOWS.get((date_posted or "").strip().lower())
    if window is None:
        return None
    return (now or _utcnow()) - window


@dataclass(frozen=True)
class ListingFilter:
    category_ids: frozenset[int]
    location: str | None = None
    posted_after: datetime | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None

    @property
    def matches_nothing(self) -> bool:
        return not self.category_ids

    def to_clause(self):
        if self.matches_nothing:
            return false()
        clauses = [Listing.category_id.in_(sorted(self.category_ids))]
        if self.location:
            clauses.append(func.lower(Listing.location) == self.location.lower())
        if self.posted_after is not None:
            clauses.append(Listing.created_at >= self.posted_after)
        # NULL prices never satisfy a comparison, so any bound drops them.
        if self.min_price is not None:
            clauses.append(Listing.price >= self.min_price)
        if self.max_price is not None:
            clauses.append(Listing.price <= self.max_price)
        return and_(*clauses)


def build_listing_filter(
    category_ids: Iterable[int],
    *,
    location: str | None = None,
    date_posted: str | None = None,
    min_price=None,
    max_price=None,
    now: datetime | None = None,
) -> ListingFilter:
    return ListingFilter(
        category_ids=frozenset(int(cid) for cid in category_ids),
        location=(location or "").strip() or None,
        posted_after=posted_after(date_posted, now=now),
        min_price=_to_decimal(min_price),
        max_price=_to_decimal(max_price),
    )
