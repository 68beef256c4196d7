from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload, selectinload

from marketplace.extensions import db
from marketplace.models import Category, Listing
from marketplace.services.listing_filter import ListingFilter
from marketplace.utils.observability import capture_exception, get_request_id


logger = logging.getLogger(__name__)

QUERY_FAILED = "LISTINGS_QUERY_FAILED"

_FALLBACK_IMAGE_URL = (
    "https://images.unsplash.com/photo-1454165804606-c3d57bc86b40?ixlib=rb-4.0.3"
    "&ixid=M3wxMjA3fDB8MHxwaG90by1wYWdlfHx8fGVufDB8fHx8fA%3D%3D&auto=format&fit=crop&w=2070&q=80"
)
DEFAULT_IMAGE_URL = (os.getenv("DEFAULT_IMAGE_URL") or "").strip() or _FALLBACK_IMAGE_URL


def default_image() -> dict:
    return {"id": -1, "listing_id": -1, "url": DEFAULT_IMAGE_URL, "created_at": None}


@dataclass
class ListingPage:
    listings: list[dict] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 10
    error: str | None = None

    @property
    def degraded(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "listings": list(self.listings),
            "total_count": int(self.total_count),
            "page": int(self.page),
            "page_size": int(self.page_size),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "ListingPage":
        return cls(
            listings=list(payload.get("listings") or []),
            total_count=int(payload.get("total_count") or 0),
            page=int(payload.get("page") or 1),
            page_size=int(payload.get("page_size") or 10),
            error=payload.get("error"),
        )


def format_price(value) -> str:
    if value is None:
        return "0.00"
    return f"{Decimal(str(value)):.2f}"


def serialize_listing(row: Listing) -> dict[str, Any]:
    images = [img.to_dict() for img in (row.images or [])]
    reviews = [rev.to_summary() for rev in (row.reviews or [])]
    ratings = [r["rating"] for r in reviews if r.get("rating")]
    return {
        "id": int(row.id),
        "title": row.title or "",
        "description": row.description or "",
        "price": format_price(row.price),
        "location": row.location or "",
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "category_id": int(row.category_id) if row.category_id is not None else None,
        "category": row.category.to_dict_with_parents() if row.category is not None else None,
        "user": row.user.to_summary() if row.user is not None else None,
        "images": images or [default_image()],
        "reviews": reviews,
        "review_count": len(reviews),
        "average_rating": round(sum(ratings) / len(ratings), 2) if ratings else None,
    }


@contextmanager
def _read_snapshot():
    """Count and page fetch share one transaction without touching the caller's pending work."""
    session = db.session()
    if session.in_transaction():
        # Reads join the caller's transaction; an error only unwinds the savepoint.
        with session.begin_nested():
            yield session
        return
    dialect = (session.get_bind().dialect.name or "").lower()
    with session.begin():
        if dialect == "postgresql":
            session.connection(execution_options={"isolation_level": "REPEATABLE READ"})
        yield session


def execute_listing_query(listing_filter: ListingFilter, *, page: int, page_size: int) -> ListingPage:
    if listing_filter.matches_nothing:
        return ListingPage(page=page, page_size=page_size)

    clause = listing_filter.to_clause()
    offset = (int(page) - 1) * int(page_size)
    try:
        with _read_snapshot() as session:
            total = session.query(func.count(Listing.id)).filter(clause).scalar() or 0
            rows = (
                session.query(Listing)
                .filter(clause)
                .options(
                    joinedload(Listing.category).joinedload(Category.parent).joinedload(Category.parent),
                    joinedload(Listing.user),
                    selectinload(Listing.images),
                    selectinload(Listing.reviews),
                )
                .order_by(Listing.created_at.desc(), Listing.id.desc())
                .offset(offset)
                .limit(int(page_size))
                .all()
            )
            items = [serialize_listing(row) for row in rows]
        return ListingPage(listings=items, total_count=int(total), page=page, page_size=page_size)
    except SQLAlchemyError as exc:
        logger.exception(
            "listings_query_failed page=%s page_size=%s categories=%s request_id=%s",
            page,
            page_size,
            len(listing_filter.category_ids),
            get_request_id(),
        )
        capture_exception(exc)
        return ListingPage(page=page, page_size=page_size, error=QUERY_FAILED)
