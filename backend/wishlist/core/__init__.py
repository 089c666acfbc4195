"""
In-memory wishlist core: catalog, indexes, search, filtering, reservations
and bulk operations.
"""
from wishlist.core.types import (
    ALL_COLLECTION_ID,
    BulkOperationKind,
    Collection,
    ReservationRecord,
    ReservationState,
    Role,
    StatusFacet,
    Viewer,
    WishItem,
)
from wishlist.core.errors import (
    AlreadyClaimed,
    Forbidden,
    InvalidClaim,
    NotFound,
    PartialFailure,
    StaleIndexWarning,
    ValidationError,
    WishlistError,
)
from wishlist.core.catalog import CatalogStore, CatalogRegistry

__all__ = [
    "ALL_COLLECTION_ID",
    "BulkOperationKind",
    "Collection",
    "ReservationRecord",
    "ReservationState",
    "Role",
    "StatusFacet",
    "Viewer",
    "WishItem",
    "AlreadyClaimed",
    "Forbidden",
    "InvalidClaim",
    "NotFound",
    "PartialFailure",
    "StaleIndexWarning",
    "ValidationError",
    "WishlistError",
    "CatalogStore",
    "CatalogRegistry",
]
