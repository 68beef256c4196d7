from marketplace.models.user import User
from marketplace.models.category import Category
from marketplace.models.listing import Listing
from marketplace.models.image import Image
from marketplace.models.review import Review


__all__ = [
    "User",
    "Category",
    "Listing",
    "Image",
    "Review",
]
