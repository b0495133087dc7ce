"""
opsconsole/workflow/stage_data.py

Per-order, per-step evidence store.

Each step owns one typed record (models.StepRecord subclasses):
- step 1       ReceiptStep    no evidence guard
- steps 2,3,5  PhotoStep      at least one image
- step 4       LogisticsStep  at least one logistics item, every item complete

Rules:
- Images are append/remove-by-index; duplicates are allowed.
- completion_time is only ever overwritten, never cleared. Nothing here is
  reset on audit rejection.
- Records are created lazily on first write; reads never create rows.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from ..models import LogisticsItem, LogisticsStep, PhotoStep, ProcurementOrder, ReceiptStep, StepRecord
from .errors import InvalidEvidence
from .states import ALL_STEPS, STEP_LOGISTICS

STEP_RECORD_TYPES = {
    1: ReceiptStep,
    2: PhotoStep,
    3: PhotoStep,
    4: LogisticsStep,
    5: PhotoStep,
}

LOGISTICS_FIELDS = ("carrier_name", "tracking_ref")

# Keys a caller may never write through merge()
RESERVED_KEYS = frozenset(["kind", "completion_time", "step"])

_SCALARS = (str, int, float, bool, type(None))


def _clean_url(url: Any) -> str:
    if not isinstance(url, str) or not url.strip():
        raise InvalidEvidence("Image URL must be a non-empty string.")
    return url.strip()


class StageDataStore:
    """Evidence accessor bound to one order."""

    def __init__(self, order: ProcurementOrder) -> None:
        self.order = order

    # -------------------- reads --------------------

    def get(self, step: int) -> Optional[StepRecord]:
        self._check_step(step)
        return self.order.steps.get(step)

    def completion_time(self, step: int) -> Optional[datetime]:
        record = self.get(step)
        return record.completion_time if record is not None else None

    def is_completed(self, step: int) -> bool:
        record = self.get(step)
        return record is not None and record.is_completed

    def missing_evidence(self, step: int) -> Optional[str]:
        """Message describing the unmet completion guard of a step, or None."""
        record = self.get(step)
        if record is None:
            # An untouched record has no evidence; ask an empty one for its message.
            record = STEP_RECORD_TYPES[step](step=step)
        return record.missing_evidence()

    def is_satisfied(self, step: int) -> bool:
        return self.missing_evidence(step) is None

    def snapshot(self) -> Dict[int, dict]:
        """Detached copy of all step data (used for before/after comparisons)."""
        return {step: record.to_dict() for step, record in sorted(self.order.steps.items())}

    # -------------------- writes --------------------

    def record(self, step: int) -> StepRecord:
        """Return the record for a step, creating it on first write."""
        self._check_step(step)
        record = self.order.steps.get(step)
        if record is None:
            record = STEP_RECORD_TYPES[step](step=step)
            self.order.steps[step] = record
        return record

    def mark_complete(self, step: int, at: datetime) -> StepRecord:
        record = self.record(step)
        record.completion_time = at
        return record

    def add_image(self, step: int, url: str) -> StepRecord:
        record = self.record(step)
        record.images = [*(record.images or []), _clean_url(url)]
        return record

    def remove_image(self, step: int, index: int) -> StepRecord:
        record = self.record(step)
        images = list(record.images or [])
        if not isinstance(index, int) or not 0 <= index < len(images):
            raise InvalidEvidence(f"Step {step} has no image at index {index}.")
        del images[index]
        record.images = images
        return record

    def merge(self, step: int, patch: Dict[str, Any]) -> StepRecord:
        """
        Merge a patch into a step record.

        - "images": replaces the image list
        - "logistics_items" (step 4 only): replaces the item list; entries with a
          known "id" update that item, others become new items
        - any other key: stored as a free-form scalar field
        """
        if not isinstance(patch, dict):
            raise InvalidEvidence("Evidence patch must be an object.")

        reserved = RESERVED_KEYS.intersection(patch)
        if reserved:
            raise InvalidEvidence(f"Fields {sorted(reserved)} cannot be patched.")

        if "logistics_items" in patch and step != STEP_LOGISTICS:
            raise InvalidEvidence("Logistics records belong to step 4 only.")

        images = None
        if "images" in patch:
            raw_images = patch["images"]
            if not isinstance(raw_images, list):
                raise InvalidEvidence("'images' must be a list of URLs.")
            images = [_clean_url(url) for url in raw_images]

        extra = {}
        for key, value in patch.items():
            if key in ("images", "logistics_items"):
                continue
            if not isinstance(value, _SCALARS):
                raise InvalidEvidence(f"Field {key!r} must be a scalar value.")
            extra[key] = value

        # Validate everything before the first mutation.
        items = None
        if "logistics_items" in patch:
            items = self._validated_logistics(patch["logistics_items"])

        record = self.record(step)
        if images is not None:
            record.images = images
        if extra:
            record.extra = {**(record.extra or {}), **extra}
        if items is not None:
            self._replace_logistics(record, items)
        return record

    # -------------------- logistics (step 4) --------------------

    def logistics_items(self) -> list:
        record = self.get(STEP_LOGISTICS)
        return list(record.logistics_items) if record is not None else []

    def add_logistics_item(self, carrier_name: str | None = None, tracking_ref: str = "") -> LogisticsItem:
        record = self.record(STEP_LOGISTICS)
        existing = record.logistics_items
        if carrier_name is None or not str(carrier_name).strip():
            carrier_name = f"物流单号 {len(existing) + 1}"
        item = LogisticsItem(
            position=self._next_position(record),
            carrier_name=str(carrier_name).strip(),
            tracking_ref=(tracking_ref or "").strip(),
        )
        record.logistics_items.append(item)
        return item

    def update_logistics_item(self, item_id: str, field: str, value: Any) -> LogisticsItem:
        if field not in LOGISTICS_FIELDS:
            raise InvalidEvidence(f"Logistics field must be one of {LOGISTICS_FIELDS}.")
        if value is not None and not isinstance(value, str):
            raise InvalidEvidence(f"Logistics field {field!r} must be text.")
        item = self._find_item(item_id)
        setattr(item, field, (value or "").strip())
        return item

    def remove_logistics_item(self, item_id: str) -> None:
        item = self._find_item(item_id)
        self.record(STEP_LOGISTICS).logistics_items.remove(item)

    def add_logistics_image(self, item_id: str, url: str) -> LogisticsItem:
        item = self._find_item(item_id)
        item.images = [*(item.images or []), _clean_url(url)]
        return item

    def remove_logistics_image(self, item_id: str, index: int) -> LogisticsItem:
        item = self._find_item(item_id)
        images = list(item.images or [])
        if not isinstance(index, int) or not 0 <= index < len(images):
            raise InvalidEvidence(f"Logistics record has no image at index {index}.")
        del images[index]
        item.images = images
        return item

    # -------------------- internals --------------------

    @staticmethod
    def _check_step(step: int) -> None:
        if step not in ALL_STEPS:
            raise InvalidEvidence(f"Unknown step: {step!r}.")

    @staticmethod
    def _next_position(record: LogisticsStep) -> int:
        return max((item.position for item in record.logistics_items), default=-1) + 1

    def _find_item(self, item_id: str) -> LogisticsItem:
        for item in self.logistics_items():
            if item.id == item_id:
                return item
        raise InvalidEvidence(f"Unknown logistics record: {item_id!r}.")

    @staticmethod
    def _validated_logistics(raw_items: Any) -> list:
        if not isinstance(raw_items, list):
            raise InvalidEvidence("'logistics_items' must be a list.")
        cleaned = []
        for raw in raw_items:
            if not isinstance(raw, dict):
                raise InvalidEvidence("Each logistics record must be an object.")
            images = raw.get("images") or []
            if not isinstance(images, list):
                raise InvalidEvidence("Logistics 'images' must be a list of URLs.")
            for field in LOGISTICS_FIELDS:
                if raw.get(field) is not None and not isinstance(raw.get(field), str):
                    raise InvalidEvidence(f"Logistics field {field!r} must be text.")
            cleaned.append({
                "id": raw.get("id"),
                "carrier_name": (raw.get("carrier_name") or "").strip(),
                "tracking_ref": (raw.get("tracking_ref") or "").strip(),
                "images": [_clean_url(url) for url in images],
            })
        return cleaned

    def _replace_logistics(self, record: LogisticsStep, items: list) -> None:
        by_id = {item.id: item for item in record.logistics_items}
        replacement = []
        for position, data in enumerate(items):
            # Unknown ids get a fresh server-side id.
            item = by_id.get(data["id"]) or LogisticsItem()
            item.position = position
            item.carrier_name = data["carrier_name"] or f"物流单号 {position + 1}"
            item.tracking_ref = data["tracking_ref"]
            item.images = data["images"]
            replacement.append(item)
        record.logistics_items = replacement
