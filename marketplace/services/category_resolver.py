"""Category path resolution.

A browse URL names up to three category levels (main, sub, sub-sub). This
module turns those names into the set of category ids whose listings
belong on the page. One flat query loads the relevant slice of the tree;
the walk itself happens on an in-memory ``CategoryTree`` so it can be
exercised without a database.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import func, or_
from sqlalchemy.orm import aliased

from marketplace.extensions import db
from marketplace.models import Category


class CategoryNotFound(LookupError):
    """The main category of a browse path does not exist."""

    def __init__(self, name: str):
        super().__init__(f"Category not found: {name!r}")
        self.name = name


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


@dataclass(frozen=True)
class CategoryNode:
    id: int
    name: str
    parent_id: int | None = None
    description: str | None = None


@dataclass
class CategoryTree:
    nodes: dict[int, CategoryNode] = field(default_factory=dict)
    children_by_parent: dict[int, list[int]] = field(default_factory=dict)

    @classmethod
    def from_nodes(cls, nodes: Iterable[CategoryNode]) -> "CategoryTree":
        tree = cls()
        for node in nodes:
            if node.id in tree.nodes:
                continue
            tree.nodes[node.id] = node
            if node.parent_id is not None:
                tree.children_by_parent.setdefault(node.parent_id, []).append(node.id)
        for ids in tree.children_by_parent.values():
            ids.sort()
        return tree

    def roots_named(self, name: str) -> list[CategoryNode]:
        wanted = _norm(name)
        return sorted(
            (n for n in self.nodes.values() if n.parent_id is None and _norm(n.name) == wanted),
            key=lambda n: n.id,
        )

    def children(self, node_id: int) -> list[CategoryNode]:
        return [self.nodes[cid] for cid in self.children_by_parent.get(node_id, [])]

    def child_named(self, node_id: int, name: str) -> CategoryNode | None:
        wanted = _norm(name)
        for child in self.children(node_id):
            if _norm(child.name) == wanted:
                return child
        return None


def load_category_slice(main_category: str) -> CategoryTree:
    """Categories named ``main_category`` plus everything up to two levels below them."""
    wanted = _norm(main_category)
    parent = aliased(Category)
    grandparent = aliased(Category)
    rows = (
        db.session.query(Category.id, Category.name, Category.parent_id, Category.description)
        .outerjoin(parent, Category.parent_id == parent.id)
        .outerjoin(grandparent, parent.parent_id == grandparent.id)
        .filter(
            or_(
                func.lower(Category.name) == wanted,
                func.lower(parent.name) == wanted,
                func.lower(grandparent.name) == wanted,
            )
        )
        .all()
    )
    return CategoryTree.from_nodes(
        CategoryNode(
            id=int(cid),
            name=name or "",
            parent_id=int(pid) if pid is not None else None,
            description=description,
        )
        for cid, name, pid, description in rows
    )


def resolve_in_tree(
    tree: CategoryTree,
    main_category: str,
    sub_category: str | None = None,
    sub_sub_category: str | None = None,
) -> set[int]:
    roots = tree.roots_named(main_category) if _norm(main_category) else []
    if not roots:
        raise CategoryNotFound(main_category)
    main = roots[0]

    if not _norm(sub_category):
        ids = {main.id}
        for child in tree.children(main.id):
            ids.add(child.id)
            ids.update(grandchild.id for grandchild in tree.children(child.id))
        return ids

    sub = tree.child_named(main.id, sub_category or "")
    if sub is None:
        return set()

    if not _norm(sub_sub_category):
        return {sub.id, *(child.id for child in tree.children(sub.id))}

    leaf = tree.child_named(sub.id, sub_sub_category or "")
    if leaf is not None:
        return {leaf.id}

    # Legacy data lists sub-subcategories in the subcategory description instead of as rows.
    if _norm(sub_sub_category) in _norm(sub.description):
        return {sub.id}
    return set()


def resolve_category_ids(
    main_category: str,
    sub_category: str | None = None,
    sub_sub_category: str | None = None,
) -> set[int]:
    tree = load_category_slice(main_category)
    return resolve_in_tree(tree, main_category, sub_category, sub_sub_category)
