from wishlist.models.user import User
from wishlist.models.wish_item import WishItemRecord
from wishlist.models.collection import CollectionRecord

__all__ = [
    "User",
    "WishItemRecord",
    "CollectionRecord",
]
