"""
Error taxonomy shared by the core, the services and the API layer
"""
from typing import Any, Optional


class WishlistError(Exception):
    """Base class for all typed wishlist errors"""

    code = "WishlistError"

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_dict(self) -> dict:
        payload = {"code": self.code, "detail": self.detail}
        if self.context:
            payload.update(self.context)
        return payload


class NotFound(WishlistError):
    """Unknown item or collection id"""
    code = "NotFound"


class InvalidClaim(WishlistError):
    """Claim on a private item, or an owner claiming their own item"""
    code = "InvalidClaim"


class AlreadyClaimed(WishlistError):
    """The item already has an active claim (lost a claim race)"""
    code = "AlreadyClaimed"


class Forbidden(WishlistError):
    """The acting role lacks permission for the operation"""
    code = "Forbidden"


class ValidationError(WishlistError):
    """Malformed fields, e.g. a desire score out of range"""
    code = "ValidationError"


class PartialFailure(WishlistError):
    """A bulk operation finished with mixed outcomes.

    Not a hard failure: the report lists which items succeeded and why the
    others failed.
    """
    code = "PartialFailure"

    def __init__(self, report: Any, detail: Optional[str] = None):
        failed = len(getattr(report, "failed", []) or [])
        super().__init__(detail or f"{failed} item(s) failed")
        self.report = report

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["report"] = self.report.to_dict()
        return payload


class StaleIndexWarning(UserWarning):
    """Derived index state could not be rebuilt; reads may be stale"""
