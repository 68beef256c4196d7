from datetime import datetime

from marketplace.extensions import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False, default="")
    username = db.Column(db.String(80), unique=True, index=True, nullable=True)
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    image_url = db.Column(db.String(1024), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_summary(self) -> dict:
        # Public owner card; email stays private.
        return {
            "id": int(self.id),
            "name": self.name or "",
            "username": (getattr(self, "username", None) or ""),
            "image_url": (getattr(self, "image_url", None) or ""),
        }
