"""Exception types raised by the coupon and subscription services.

Domain rule outcomes (inactive coupon, exhausted limits, ineligible plan) are
not exceptions: they come back as ``CouponValidationResult(is_valid=False)``.
"""

from typing import Any


class CouponValidationError(ValueError):
    """Coupon input was rejected before anything was persisted."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Validation failed: {', '.join(errors)}")


class DuplicateCouponError(CouponValidationError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(["A coupon with this code already exists"])


class NotFoundError(LookupError):
    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class NoActiveTrialError(ValueError):
    def __init__(self) -> None:
        super().__init__("No active trial subscription found")


class ConcurrencyConflictError(RuntimeError):
    """A concurrent writer won the race; the caller should retry."""


class SubscriptionUpdateError(RuntimeError):
    """The lifecycle step failed after usage was recorded.

    The usage row is kept; retry the subscription change for ``usage``
    without recording usage again.
    """

    def __init__(self, message: str, usage: Any):
        self.usage = usage
        super().__init__(message)
