from __future__ import annotations

import re

from sqlalchemy import func
from sqlalchemy.orm import selectinload

from marketplace.extensions import db
from marketplace.models import Category
from marketplace.services.category_resolver import CategoryNotFound


class IncompleteCategoryPath(ValueError):
    """A category that does not sit three levels deep has no full browse path."""


def slugify_category(name: str) -> str:
    value = (name or "").lower().replace("&", "and")
    value = re.sub(r"[^a-z0-9]", "-", value)
    value = re.sub(r"-+", "-", value)
    return value.strip("-")


def decode_category_slug(slug: str) -> str:
    words = [("&" if word == "and" else word) for word in (slug or "").split("-")]
    return " ".join(word[:1].upper() + word[1:] for word in words)


def category_url(main_category: str, sub_category: str | None = None, sub_sub_category: str | None = None) -> str:
    segments = [slugify_category(s) for s in (main_category, sub_category, sub_sub_category) if s]
    return "/categories/" + "/".join(segments)


def _node(row: Category, children: list[dict] | None = None) -> dict:
    payload = {
        "id": int(row.id),
        "name": row.name or "",
        "description": row.description,
        "parent_id": int(row.parent_id) if row.parent_id is not None else None,
    }
    if children is not None:
        payload["children"] = children
    return payload


def main_categories() -> list[dict]:
    rows = Category.query.filter(Category.parent_id.is_(None)).order_by(Category.id.asc()).all()
    return [_node(row) for row in rows]


def child_categories(parent_id: int) -> list[dict]:
    rows = Category.query.filter(Category.parent_id == int(parent_id)).order_by(Category.id.asc()).all()
    return [_node(row) for row in rows]


def category_tree() -> list[dict]:
    roots = (
        Category.query.filter(Category.parent_id.is_(None))
        .options(selectinload(Category.children).selectinload(Category.children))
        .order_by(Category.id.asc())
        .all()
    )
    return [
        _node(root, [_node(sub, [_node(leaf) for leaf in sub.children]) for sub in root.children])
        for root in roots
    ]


def _description_items(description: str | None) -> list[str]:
    return [item.strip() for item in (description or "").split(",") if item.strip()]


def category_menu(main_category: str) -> list[dict]:
    """Header menu for a main category: its subcategories and the items named in their descriptions."""
    wanted = (main_category or "").strip().lower()
    if not wanted:
        return []
    main = (
        Category.query.filter(Category.parent_id.is_(None), func.lower(Category.name) == wanted)
        .options(selectinload(Category.children))
        .order_by(Category.id.asc())
        .first()
    )
    if main is None:
        return []
    sections = []
    for sub in main.children:
        href = category_url(main.name, sub.name)
        sections.append(
            {
                "title": sub.name,
                "href": href,
                "items": [
                    {"name": item, "href": category_url(main.name, sub.name, item)}
                    for item in _description_items(sub.description)
                ],
            }
        )
    return sections


def category_path(category_id: int) -> list[str]:
    category = db.session.get(Category, int(category_id))
    if category is None:
        raise CategoryNotFound(str(category_id))
    sub = category.parent
    main = sub.parent if sub is not None else None
    if sub is None or main is None or main.parent_id is not None:
        raise IncompleteCategoryPath(f"Incomplete category hierarchy for category {category_id}")
    return [slugify_category(main.name), slugify_category(sub.name), slugify_category(category.name)]
