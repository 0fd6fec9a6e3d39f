"""Whole-collection import and export in the at-rest JSON layout.

Each collection is one JSON array of camelCase records with ISO-8601 dates,
stored as ``<name>.json`` under ``settings.APP_DATA_PATH``.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, NamedTuple

from pydantic import BaseModel
from sqlalchemy.orm import Session

from promoplan.models.coupon import Coupon
from promoplan.models.coupon_usage import CouponUsage
from promoplan.models.subscription import UserSubscription
from promoplan.schemas.coupon import CouponResponse, CouponUsageResponse
from promoplan.schemas.subscription import SubscriptionResponse

logger = logging.getLogger(__name__)


class Collection(NamedTuple):
    model: Any
    schema: type[BaseModel]
    order_by: str


COLLECTIONS: dict[str, Collection] = {
    "coupons": Collection(Coupon, CouponResponse, "created_at"),
    "coupon-usage": Collection(CouponUsage, CouponUsageResponse, "used_at"),
    "subscriptions": Collection(UserSubscription, SubscriptionResponse, "created_at"),
}


def _column_values(schema: type[BaseModel], record: dict[str, Any]) -> dict[str, Any]:
    values = schema.model_validate(record).model_dump()
    return {key: v.value if isinstance(v, Enum) else v for key, v in values.items()}


class CollectionStore:
    def __init__(self, db: Session):
        self.db = db

    def _collection(self, name: str) -> Collection:
        try:
            return COLLECTIONS[name]
        except KeyError:
            raise ValueError(f"Unknown collection: {name}") from None

    def read_collection(self, name: str) -> list[dict[str, Any]]:
        collection = self._collection(name)
        rows = (
            self.db.query(collection.model)
            .order_by(getattr(collection.model, collection.order_by).asc())
            .all()
        )
        return [
            collection.schema.model_validate(row).model_dump(mode="json", by_alias=True)
            for row in rows
        ]

    def write_collection(self, name: str, records: list[dict[str, Any]]) -> int:
        """Replace the whole collection with ``records`` in one transaction.

        Every record is validated before anything is written; an invalid
        record leaves the stored collection untouched.
        """
        collection = self._collection(name)
        rows = [collection.model(**_column_values(collection.schema, record)) for record in records]
        try:
            self.db.query(collection.model).delete()
            self.db.add_all(rows)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Wrote %d records to collection %s", len(rows), name)
        return len(rows)

    def export_to_dir(self, path: str | Path) -> dict[str, int]:
        directory = Path(path)
        directory.mkdir(parents=True, exist_ok=True)
        counts = {}
        for name in COLLECTIONS:
            records = self.read_collection(name)
            (directory / f"{name}.json").write_text(json.dumps(records, indent=2))
            counts[name] = len(records)
        logger.info("Exported collections to %s: %s", directory, counts)
        return counts

    def import_from_dir(self, path: str | Path) -> dict[str, int]:
        """Load every ``<name>.json`` found in ``path``; missing files are skipped."""
        directory = Path(path)
        counts = {}
        for name in COLLECTIONS:
            file = directory / f"{name}.json"
            if not file.exists():
                logger.warning("Collection file %s not found, skipping", file)
                continue
            records = json.loads(file.read_text())
            if not isinstance(records, list):
                raise ValueError(f"{file} must contain a JSON array")
            counts[name] = self.write_collection(name, records)
        return counts
