from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from marketplace.extensions import db
from marketplace.services.category_navigation import (
    IncompleteCategoryPath,
    category_menu,
    category_path,
    category_tree,
    child_categories,
    main_categories,
)
from marketplace.services.category_resolver import CategoryNotFound


categories_bp = Blueprint("categories_bp", __name__, url_prefix="/api/categories")

_CACHE_CONTROL = "public, max-age=300, stale-while-revalidate=600"


def _cached(payload: dict, status: int = 200):
    resp = jsonify(payload)
    resp.status_code = status
    resp.headers["Cache-Control"] = _CACHE_CONTROL
    return resp


def _read_failed(code: str):
    try:
        db.session.rollback()
    except Exception:
        pass
    current_app.logger.exception("categories_read_failed code=%s", code)
    return jsonify({"ok": False, "error": code, "items": []}), 500


@categories_bp.get("")
def list_categories():
    kind = (request.args.get("type") or "").strip().lower()
    parent_raw = (request.args.get("parentId") or "").strip()
    try:
        if kind == "all":
            return _cached({"ok": True, "items": category_tree()})
        if parent_raw:
            try:
                parent_id = int(parent_raw)
            except ValueError:
                return jsonify({"ok": False, "error": "INVALID_PARENT_ID", "items": []}), 400
            return _cached({"ok": True, "items": child_categories(parent_id)})
        return _cached({"ok": True, "items": main_categories()})
    except Exception:
        return _read_failed("CATEGORIES_READ_FAILED")


@categories_bp.get("/menu")
def categories_menu():
    main = (request.args.get("mainCategory") or "").strip()
    try:
        return _cached({"ok": True, "main_category": main, "items": category_menu(main)})
    except Exception:
        return _read_failed("CATEGORY_MENU_READ_FAILED")


@categories_bp.get("/<int:category_id>/path")
def categories_path(category_id: int):
    try:
        segments = category_path(category_id)
    except CategoryNotFound:
        return jsonify({"ok": False, "error": "CATEGORY_NOT_FOUND", "message": "Category not found"}), 404
    except IncompleteCategoryPath as exc:
        return jsonify({"ok": False, "error": "INCOMPLETE_CATEGORY_PATH", "message": str(exc)}), 422
    return _cached({"ok": True, "path": segments, "url": "/" + "/".join(segments)})
