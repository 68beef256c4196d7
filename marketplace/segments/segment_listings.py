from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from marketplace.extensions import db
from marketplace.models import Listing
from marketplace.services.category_resolver import CategoryNotFound
from marketplace.services.listing_service import (
    DEFAULT_PAGE_SIZE,
    InvalidListingQuery,
    get_listings,
    max_page,
    max_page_size,
)
from marketplace.utils.observability import get_request_id, note_request


listings_bp = Blueprint("listings_bp", __name__, url_prefix="/api")


def _to_int(raw, default: int) -> int:
    if raw in (None, ""):
        return default
    try:
        return int(str(raw).strip())
    except Exception:
        return default


def _to_float(raw):
    if raw in (None, ""):
        return None
    try:
        return float(str(raw).strip())
    except Exception:
        return None


def _text(name: str) -> str | None:
    return (request.args.get(name) or "").strip() or None


def _listing_args() -> dict:
    page = _to_int(request.args.get("page"), 1)
    page_size = _to_int(request.args.get("pageSize"), DEFAULT_PAGE_SIZE)
    return {
        "main_category": (request.args.get("mainCategory") or "").strip(),
        "sub_category": _text("subCategory"),
        "sub_sub_category": _text("subSubCategory"),
        "page": max(1, min(page, max_page())),
        "page_size": max(1, min(page_size, max_page_size())),
        "location": _text("location"),
        "date_posted": _text("datePosted"),
        "min_price": _to_float(request.args.get("minPrice")),
        "max_price": _to_float(request.args.get("maxPrice")),
    }


def _error(code: str, message: str, status: int):
    payload = {"ok": False, "error": code, "message": message, "status": status}
    rid = get_request_id()
    if rid:
        payload["trace_id"] = rid
    return jsonify(payload), status


@listings_bp.get("/listings")
def list_listings():
    args = _listing_args()
    if not args["main_category"]:
        return _error("MAIN_CATEGORY_REQUIRED", "mainCategory is required", 400)
    try:
        result = get_listings(**args)
    except CategoryNotFound as exc:
        return _error("CATEGORY_NOT_FOUND", str(exc), 404)
    except InvalidListingQuery as exc:
        return _error("INVALID_QUERY", str(exc), 400)
    note_request(
        listings_total=int(result.total_count),
        listings_returned=len(result.listings),
        listings_degraded=bool(result.degraded),
    )
    return jsonify(
        {
            "ok": True,
            "listings": result.listings,
            "total_count": int(result.total_count),
            "page": int(result.page),
            "page_size": int(result.page_size),
            "degraded": bool(result.degraded),
        }
    ), 200


@listings_bp.get("/listings/locations")
def listing_locations():
    try:
        rows = (
            db.session.query(Listing.location)
            .filter(Listing.location.isnot(None), Listing.location != "")
            .distinct()
            .order_by(Listing.location.asc())
            .all()
        )
        return jsonify({"ok": True, "items": [row[0] for row in rows]}), 200
    except SQLAlchemyError:
        try:
            db.session.rollback()
        except Exception:
            pass
        current_app.logger.exception("listing_locations_failed")
        return jsonify({"ok": True, "items": []}), 200
