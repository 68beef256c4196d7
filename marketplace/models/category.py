from datetime import datetime

from marketplace.extensions import db


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("parent_id", "name", name="uq_categories_parent_name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, index=True)
    # Free text. Seeded subcategories keep their sub-subcategory names here, comma separated.
    description = db.Column(db.Text, nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    parent = db.relationship("Category", remote_side=[id], back_populates="children")
    children = db.relationship("Category", back_populates="parent", order_by="Category.id")

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "name": self.name or "",
            "description": self.description,
            "parent_id": int(self.parent_id) if self.parent_id is not None else None,
        }

    def to_dict_with_parents(self, depth: int = 2) -> dict:
        payload = self.to_dict()
        parent = self.parent if depth > 0 else None
        payload["parent"] = parent.to_dict_with_parents(depth - 1) if parent is not None else None
        return payload
