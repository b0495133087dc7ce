"""
Evidence store: typed step records, guards and edits
"""
from datetime import datetime

import pytest

from opsconsole.models import LogisticsStep, PhotoStep, ProcurementOrder, ReceiptStep
from opsconsole.workflow.errors import InvalidEvidence
from opsconsole.workflow.stage_data import StageDataStore


@pytest.fixture()
def store(app):
    return StageDataStore(ProcurementOrder(id="o1", store_id="s1", store_name="上海南京路店", total_price=0))


def test_records_are_typed_per_step(store):
    assert isinstance(store.record(1), ReceiptStep)
    assert isinstance(store.record(2), PhotoStep)
    assert isinstance(store.record(3), PhotoStep)
    assert isinstance(store.record(4), LogisticsStep)
    assert isinstance(store.record(5), PhotoStep)


def test_reads_do_not_create_records(store):
    assert store.get(2) is None
    assert store.is_satisfied(2) is False
    assert store.is_completed(2) is False
    assert store.order.steps == {}


def test_unknown_step_is_invalid_evidence(store):
    with pytest.raises(InvalidEvidence):
        store.add_image(6, "a.jpg")
    with pytest.raises(InvalidEvidence):
        store.merge(0, {"images": ["a.jpg"]})


def test_images_append_with_duplicates_and_remove_by_index(store):
    store.add_image(2, "a.jpg")
    store.add_image(2, "a.jpg")
    store.add_image(2, "b.jpg")
    assert store.get(2).images == ["a.jpg", "a.jpg", "b.jpg"]

    store.remove_image(2, 1)
    assert store.get(2).images == ["a.jpg", "b.jpg"]


def test_remove_image_out_of_range(store):
    store.add_image(3, "a.jpg")
    with pytest.raises(InvalidEvidence):
        store.remove_image(3, 1)
    with pytest.raises(InvalidEvidence):
        store.remove_image(3, -1)
    assert store.get(3).images == ["a.jpg"]


def test_blank_image_url_rejected(store):
    with pytest.raises(InvalidEvidence):
        store.add_image(2, "   ")


def test_step_one_has_no_guard(store):
    assert store.is_satisfied(1)


def test_photo_guard(store):
    assert store.missing_evidence(5) == "Step 5 requires at least one photo."
    store.add_image(5, "r.jpg")
    assert store.is_satisfied(5)


def test_logistics_guard_requires_complete_items(store):
    assert not store.is_satisfied(4)

    item = store.add_logistics_item()
    assert item.carrier_name == "物流单号 1"
    assert not store.is_satisfied(4)

    store.update_logistics_item(item.id, "tracking_ref", "SF001")
    assert not store.is_satisfied(4)

    store.add_logistics_image(item.id, "bill.jpg")
    assert store.is_satisfied(4)

    second = store.add_logistics_item("中通", "  ")
    assert not store.is_satisfied(4)
    store.add_logistics_image(second.id, "bill2.jpg")
    assert not store.is_satisfied(4)  # whitespace tracking ref does not count

    store.remove_logistics_item(second.id)
    assert store.is_satisfied(4)


def test_logistics_item_edits(store):
    item = store.add_logistics_item("顺丰", "SF1")
    store.add_logistics_image(item.id, "a.jpg")
    store.add_logistics_image(item.id, "b.jpg")
    store.remove_logistics_image(item.id, 0)
    assert item.images == ["b.jpg"]

    with pytest.raises(InvalidEvidence):
        store.remove_logistics_image(item.id, 5)
    with pytest.raises(InvalidEvidence):
        store.update_logistics_item(item.id, "images", "x")
    with pytest.raises(InvalidEvidence):
        store.update_logistics_item("nope", "tracking_ref", "x")


def test_merge_images_and_free_fields(store):
    store.add_image(2, "old.jpg")
    store.merge(2, {"images": ["a.jpg"], "note": "shelf B", "boxes": 3})

    data = store.get(2).to_dict()
    assert data["images"] == ["a.jpg"]
    assert data["note"] == "shelf B"
    assert data["boxes"] == 3

    store.merge(2, {"note": "shelf C"})
    assert store.get(2).to_dict()["boxes"] == 3
    assert store.get(2).to_dict()["note"] == "shelf C"


def test_merge_rejects_reserved_and_structured_fields(store):
    with pytest.raises(InvalidEvidence):
        store.merge(2, {"completion_time": "2024-01-01T00:00:00"})
    with pytest.raises(InvalidEvidence):
        store.merge(2, {"nested": {"a": 1}})
    with pytest.raises(InvalidEvidence):
        store.merge(2, {"logistics_items": []})
    with pytest.raises(InvalidEvidence):
        store.merge(2, ["a.jpg"])
    # nothing was written by the failed merges
    assert store.get(2) is None


def test_merge_logistics_items_keeps_known_ids(store):
    kept = store.add_logistics_item("顺丰", "SF1")
    store.add_logistics_item("中通", "ZT1")

    store.merge(4, {"logistics_items": [
        {"id": kept.id, "carrier_name": "顺丰", "tracking_ref": "SF2", "images": ["a.jpg"]},
        {"carrier_name": "", "tracking_ref": "YT1", "images": []},
    ]})

    items = store.logistics_items()
    assert [i.tracking_ref for i in items] == ["SF2", "YT1"]
    assert items[0].id == kept.id
    assert items[1].carrier_name == "物流单号 2"


def test_completion_time_overwritten_not_cleared(store):
    first = datetime(2024, 1, 1, 8, 0)
    second = datetime(2024, 1, 2, 8, 0)

    assert store.is_completed(3) is False
    store.mark_complete(3, first)
    assert store.is_completed(3) is True
    store.add_image(3, "a.jpg")
    assert store.completion_time(3) == first

    store.mark_complete(3, second)
    assert store.completion_time(3) == second


def test_snapshot_is_detached(store):
    store.add_image(2, "a.jpg")
    snap = store.snapshot()

    store.add_image(2, "b.jpg")
    assert snap[2]["images"] == ["a.jpg"]
    assert store.snapshot()[2]["images"] == ["a.jpg", "b.jpg"]
