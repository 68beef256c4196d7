from datetime import datetime

from marketplace.extensions import db


class Image(db.Model):
    __tablename__ = "images"

    id = db.Column(db.Integer, primary_key=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)
    url = db.Column(db.String(1024), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    listing = db.relationship("Listing", back_populates="images")

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "listing_id": int(self.listing_id),
            "url": self.url or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
