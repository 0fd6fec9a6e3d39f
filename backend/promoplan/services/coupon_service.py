"""Coupon management, validation and usage recording."""

import logging
import secrets
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from promoplan.core.config import settings
from promoplan.core.exceptions import (
    ConcurrencyConflictError,
    CouponValidationError,
    DuplicateCouponError,
    NotFoundError,
)
from promoplan.models.coupon import Coupon, CouponStatus, CouponType
from promoplan.models.coupon_usage import CouponUsage
from promoplan.models.shared import ensure_utc, utc_now
from promoplan.repositories.coupon_repository import CouponRepository
from promoplan.repositories.coupon_usage_repository import CouponUsageRepository
from promoplan.schemas.coupon import (
    CouponCreate,
    CouponStats,
    CouponUpdate,
    normalize_code,
    value_bounds_error,
)
from promoplan.services.coupon_validator import CouponValidationResult, validate_coupon
from promoplan.services.stats import coupon_stats

logger = logging.getLogger(__name__)

LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
DIGITS = "0123456789"
# Without 0/O and 1/I, which are easy to misread.
UNAMBIGUOUS_LETTERS = "ABCDEFGHJKLMNPQRSTUVWXYZ"
UNAMBIGUOUS_DIGITS = "23456789"


class CouponService:
    """Service for coupon CRUD, validation and redemption bookkeeping."""

    def __init__(self, db: Session):
        self.db = db
        self.coupon_repo = CouponRepository(db)
        self.usage_repo = CouponUsageRepository(db)

    # Validation and usage

    def validate(
        self,
        code: str,
        user_id: str,
        user_role: str,
        plan_type: str,
        amount: Decimal,
        now: datetime | None = None,
    ) -> CouponValidationResult:
        """Check whether ``code`` can be redeemed by this user for this purchase.

        Rule violations come back as ``is_valid=False`` with an ``error``
        message; nothing is written.
        """
        coupon = self.coupon_repo.get_by_code(normalize_code(code))
        user_usage_count = (
            self.usage_repo.count_by_coupon_and_user(coupon.id, user_id)  # type: ignore[arg-type]
            if coupon is not None and coupon.user_usage_limit is not None
            else 0
        )
        return validate_coupon(
            coupon,
            user_role=user_role,
            plan_type=str(getattr(plan_type, "value", plan_type)),
            amount=amount,
            user_usage_count=user_usage_count,
            now=now or utc_now(),
        )

    def record_usage(
        self,
        coupon: Coupon,
        user_id: str,
        user_email: str,
        discount_amount: Decimal,
        original_amount: Decimal,
        final_amount: Decimal,
        plan_type: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> CouponUsage:
        """Append a ledger row and bump ``used_count`` in one transaction.

        Call only after a passing ``validate`` for the same inputs. The counter
        increment is a compare-and-swap against ``usage_limit``; if a concurrent
        redemption consumed the last use, nothing is written and
        ``ConcurrencyConflictError`` is raised.
        """
        coupon_id = UUID(str(coupon.id))
        coupon_code = str(coupon.code)
        if not self.coupon_repo.try_increment_used_count(coupon_id):
            self.db.rollback()
            logger.warning("Usage limit race lost for coupon %s by user %s", coupon_code, user_id)
            raise ConcurrencyConflictError(f"Coupon {coupon_code} usage limit was reached")

        usage = self.usage_repo.add(
            coupon_id=coupon_id,
            coupon_code=coupon_code,
            user_id=user_id,
            user_email=user_email,
            discount_amount=discount_amount,
            original_amount=original_amount,
            final_amount=final_amount,
            plan_type=str(getattr(plan_type, "value", plan_type)),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.commit()
        self.db.refresh(usage)
        logger.info(
            "Recorded usage of coupon %s by user %s (discount %s)",
            coupon_code,
            user_id,
            discount_amount,
        )
        return usage

    def get_usage_history(
        self, coupon_id: UUID | None = None, user_id: str | None = None
    ) -> list[CouponUsage]:
        """Ledger rows for a coupon and/or user, newest first."""
        return self.usage_repo.get_history(coupon_id=coupon_id, user_id=user_id)

    def reconcile_used_counts(self) -> int:
        """Rewrite every coupon's ``used_count`` from the ledger.

        Returns the number of coupons whose cached counter had drifted.
        """
        counts = self.usage_repo.counts_by_coupon()
        corrected = 0
        for coupon in self.coupon_repo.get_all(limit=None):
            actual = counts.get(UUID(str(coupon.id)), 0)
            if coupon.used_count != actual:
                logger.warning(
                    "Coupon %s used_count drifted: cached %s, ledger %s",
                    coupon.code,
                    coupon.used_count,
                    actual,
                )
                self.coupon_repo.set_used_count(UUID(str(coupon.id)), actual)
                corrected += 1
        if corrected:
            self.db.commit()
        return corrected

    # CRUD

    def create(self, data: CouponCreate, created_by: str, now: datetime | None = None) -> Coupon:
        """Create a coupon after the rules a schema cannot check on its own.

        Raises:
            DuplicateCouponError: If the code is taken (case-insensitive).
            CouponValidationError: If ``valid_until`` is not in the future.
        """
        now = now or utc_now()
        if data.valid_until <= now:
            raise CouponValidationError(["Valid until date must be in the future"])
        if self.coupon_repo.code_exists(data.code):
            raise DuplicateCouponError(data.code)

        coupon = self.coupon_repo.create(data, created_by)
        logger.info("Coupon %s created by %s", coupon.code, created_by)
        return coupon

    def get_by_id(self, coupon_id: UUID) -> Coupon:
        coupon = self.coupon_repo.get_by_id(coupon_id)
        if not coupon:
            raise NotFoundError("Coupon", coupon_id)
        return coupon

    def get_by_code(self, code: str) -> Coupon | None:
        return self.coupon_repo.get_by_code(normalize_code(code))

    def list_coupons(
        self,
        skip: int = 0,
        limit: int = 100,
        status: CouponStatus | None = None,
    ) -> list[Coupon]:
        return self.coupon_repo.get_all(skip=skip, limit=limit, status=status)

    def count(self, status: CouponStatus | None = None) -> int:
        return self.coupon_repo.count(status=status)

    def update(self, coupon_id: UUID, data: CouponUpdate) -> Coupon:
        """Apply a partial update, re-checking only what the update touches.

        Raises:
            NotFoundError: If the coupon does not exist.
            DuplicateCouponError: If a new code collides with another coupon.
            CouponValidationError: If touched fields break a cross-field rule.
        """
        coupon = self.get_by_id(coupon_id)
        touched = data.model_fields_set
        errors: list[str] = []

        if "code" in touched and data.code is not None:
            if self.coupon_repo.code_exists(data.code, exclude_id=coupon_id):
                raise DuplicateCouponError(data.code)

        if touched & {"value", "coupon_type"}:
            coupon_type = data.coupon_type or CouponType(coupon.coupon_type)
            value = data.value if data.value is not None else Decimal(str(coupon.value))
            error = value_bounds_error(coupon_type, value)
            if error:
                errors.append(error)

        if touched & {"valid_from", "valid_until"}:
            valid_from = data.valid_from or ensure_utc(coupon.valid_from)
            valid_until = data.valid_until or ensure_utc(coupon.valid_until)
            if valid_from and valid_until and valid_from > valid_until:
                errors.append("Valid from date must not be after valid until date")

        if "usage_limit" in touched and data.usage_limit is not None:
            redeemed = max(int(coupon.used_count or 0), self.usage_repo.count_by_coupon(coupon_id))
            if data.usage_limit < redeemed:
                errors.append(f"Usage limit cannot be lower than current usage ({redeemed})")

        if errors:
            raise CouponValidationError(errors)

        updated = self.coupon_repo.update(coupon_id, data)
        if updated is None:
            raise NotFoundError("Coupon", coupon_id)
        logger.info("Coupon %s updated (%s)", updated.code, ", ".join(sorted(touched)))
        return updated

    def delete(self, coupon_id: UUID) -> None:
        """Hard-delete a coupon. Ledger rows referencing it are kept."""
        if not self.coupon_repo.delete(coupon_id):
            raise NotFoundError("Coupon", coupon_id)
        logger.info("Coupon %s deleted", coupon_id)

    def toggle_status(self, coupon_id: UUID) -> Coupon:
        coupon = self.get_by_id(coupon_id)
        updated = self.coupon_repo.set_active(coupon_id, not coupon.is_active)
        if updated is None:
            raise NotFoundError("Coupon", coupon_id)
        logger.info("Coupon %s is_active=%s", updated.code, updated.is_active)
        return updated

    def bulk_update(self, coupon_ids: list[UUID], data: CouponUpdate) -> list[Coupon]:
        """Apply the same update to several coupons, skipping the ones that fail."""
        updated = []
        for coupon_id in coupon_ids:
            try:
                updated.append(self.update(coupon_id, data))
            except (NotFoundError, CouponValidationError) as exc:
                logger.warning("Bulk update skipped coupon %s: %s", coupon_id, exc)
        return updated

    # Queries

    def get_active_coupons(self, now: datetime | None = None) -> list[Coupon]:
        """Coupons that could be redeemed right now by someone."""
        now = now or utc_now()
        return [
            c
            for c in self.coupon_repo.get_all(limit=None)
            if c.is_active
            and ensure_utc(c.valid_from) <= now  # type: ignore[operator]
            and now <= ensure_utc(c.valid_until)  # type: ignore[operator]
            and (c.usage_limit is None or c.used_count < c.usage_limit)
        ]

    def get_expired_coupons(self, now: datetime | None = None) -> list[Coupon]:
        return self.coupon_repo.get_all(limit=None, status=CouponStatus.EXPIRED, now=now)

    def get_stats(self, now: datetime | None = None) -> CouponStats:
        return coupon_stats(
            self.coupon_repo.get_all(limit=None),
            self.usage_repo.get_all(),
            now or utc_now(),
        )

    def generate_code(
        self,
        prefix: str | None = None,
        suffix: str = "",
        length: int = 8,
        include_numbers: bool = True,
        include_letters: bool = True,
        exclude_similar: bool = True,
    ) -> str:
        """Random code like ``UPSC-7KQ2M9XA``; retries until it is unused."""
        prefix = settings.COUPON_CODE_PREFIX if prefix is None else prefix
        alphabet = ""
        if include_letters:
            alphabet += UNAMBIGUOUS_LETTERS if exclude_similar else LETTERS
        if include_numbers:
            alphabet += UNAMBIGUOUS_DIGITS if exclude_similar else DIGITS
        if not alphabet:
            raise ValueError("At least one of letters or numbers must be included")

        while True:
            body = "".join(secrets.choice(alphabet) for _ in range(length))
            code = f"{prefix}{'-' if prefix else ''}{body}{'-' + suffix if suffix else ''}"
            code = normalize_code(code)
            if not self.coupon_repo.code_exists(code):
                return code
