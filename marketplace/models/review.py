from datetime import datetime

from marketplace.extensions import db


class Review(db.Model):
    __tablename__ = "reviews"
    __table_args__ = (
        db.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
    )

    id = db.Column(db.Integer, primary_key=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    listing = db.relationship("Listing", back_populates="reviews")

    def to_summary(self) -> dict:
        return {
            "id": int(self.id),
            "user_id": int(self.user_id) if self.user_id is not None else None,
            "rating": int(self.rating or 0),
            "comment": self.comment or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
