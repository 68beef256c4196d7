from datetime import datetime

from marketplace.extensions import db


class Listing(db.Model):
    __tablename__ = "listings"

    id = db.Column(db.Integer, primary_key=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Null means "price on request"; displayed as 0.00.
    price = db.Column(db.Numeric(12, 2), nullable=True)
    location = db.Column(db.String(120), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = db.relationship("Category")
    user = db.relationship("User")
    images = db.relationship(
        "Image",
        back_populates="listing",
        order_by="(Image.created_at.asc(), Image.id.asc())",
        cascade="all, delete-orphan",
    )
    reviews = db.relationship(
        "Review",
        back_populates="listing",
        order_by="Review.created_at.desc()",
        cascade="all, delete-orphan",
    )
