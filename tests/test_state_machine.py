"""
Transition table and guards, exercised directly on unsaved orders
"""

import pytest

from opsconsole.models import ProcurementOrder
from opsconsole.workflow.errors import InvalidTransition, StepIncomplete
from opsconsole.workflow.stage_data import StageDataStore
from opsconsole.workflow.state_machine import OrderStateMachine, can_fire
from opsconsole.workflow.states import Event, OrderStatus, Phase


@pytest.fixture()
def machine(app, clock):
    return OrderStateMachine(clock)


def make_order(status=OrderStatus.PENDING_RECEIVE, step=1, audit_status="none"):
    return ProcurementOrder(
        id="o1",
        store_id="s1",
        store_name="上海南京路店",
        total_price=0,
        status=status.value,
        current_step=step,
        audit_status=audit_status,
    )


@pytest.mark.parametrize("status, step, event", [
    (OrderStatus.PENDING_RECEIVE, 1, Event.START_PROCESSING),
    (OrderStatus.INBOUND_PROCESSING, 2, Event.ADVANCE_STEP),
    (OrderStatus.INBOUND_PROCESSING, 3, Event.ADVANCE_STEP),
    (OrderStatus.INBOUND_PROCESSING, 3, Event.SUBMIT_INBOUND_AUDIT),
    (OrderStatus.PENDING_INBOUND_AUDIT, 3, Event.APPROVE),
    (OrderStatus.PENDING_INBOUND_AUDIT, 3, Event.REJECT),
    (OrderStatus.OUTBOUND_PROCESSING, 4, Event.ADVANCE_STEP),
    (OrderStatus.OUTBOUND_PROCESSING, 5, Event.ADVANCE_STEP),
    (OrderStatus.OUTBOUND_PROCESSING, 5, Event.SUBMIT_OUTBOUND_AUDIT),
    (OrderStatus.PENDING_OUTBOUND_AUDIT, 5, Event.APPROVE),
    (OrderStatus.PENDING_OUTBOUND_AUDIT, 5, Event.REJECT),
])
def test_table_entries(status, step, event):
    assert can_fire(status.value, step, event)


@pytest.mark.parametrize("status, step, event", [
    (OrderStatus.PENDING_RECEIVE, 1, Event.ADVANCE_STEP),
    (OrderStatus.INBOUND_PROCESSING, 2, Event.START_PROCESSING),
    (OrderStatus.INBOUND_PROCESSING, 2, Event.SUBMIT_INBOUND_AUDIT),
    (OrderStatus.INBOUND_PROCESSING, 3, Event.SUBMIT_OUTBOUND_AUDIT),
    (OrderStatus.PENDING_INBOUND_AUDIT, 3, Event.ADVANCE_STEP),
    (OrderStatus.OUTBOUND_PROCESSING, 4, Event.SUBMIT_OUTBOUND_AUDIT),
    (OrderStatus.OUTBOUND_PROCESSING, 5, Event.APPROVE),
    (OrderStatus.COMPLETED, 5, Event.ADVANCE_STEP),
    (OrderStatus.COMPLETED, 5, Event.APPROVE),
])
def test_missing_entries(status, step, event):
    assert not can_fire(status.value, step, event)


def test_unknown_status_has_no_entries():
    assert not can_fire("archived", 1, Event.START_PROCESSING)


def test_invalid_transition_names_status_step_and_event(machine):
    order = make_order(OrderStatus.COMPLETED, 5, "approved")
    with pytest.raises(InvalidTransition) as excinfo:
        machine.advance_step(order)

    err = excinfo.value
    assert (err.status, err.step, err.event) == ("completed", 5, "advance_step")
    assert "advance_step" in err.message and "completed" in err.message
    assert err.http_status == 409


def test_start_processing_marks_step_one(machine):
    order = make_order()
    machine.start_processing(order)

    assert order.status == "inbound_processing"
    assert order.current_step == 2
    assert StageDataStore(order).completion_time(1) is not None


def test_advance_within_inbound(machine):
    order = make_order(OrderStatus.INBOUND_PROCESSING, 2)
    store = StageDataStore(order)

    with pytest.raises(StepIncomplete) as excinfo:
        machine.advance_step(order)
    assert excinfo.value.step == 2
    assert store.completion_time(2) is None

    store.add_image(2, "a.jpg")
    machine.advance_step(order)
    assert order.current_step == 3
    assert store.completion_time(2) is not None

    store.add_image(3, "b.jpg")
    machine.advance_step(order)
    assert order.current_step == 3
    assert order.status == "inbound_processing"


def test_submit_requires_completed_final_step(machine):
    order = make_order(OrderStatus.INBOUND_PROCESSING, 3)
    store = StageDataStore(order)
    store.add_image(3, "b.jpg")

    # evidence present but step never completed
    with pytest.raises(StepIncomplete):
        machine.submit_for_audit(order, Phase.INBOUND)

    machine.advance_step(order)
    first = store.completion_time(3)

    machine.submit_for_audit(order, Phase.INBOUND)
    assert order.status == "pending_inbound_audit"
    assert order.audit_status == "pending"
    assert store.completion_time(3) > first


def test_submit_requires_evidence_still_present(machine):
    order = make_order(OrderStatus.INBOUND_PROCESSING, 3)
    store = StageDataStore(order)
    store.add_image(3, "b.jpg")
    machine.advance_step(order)
    store.remove_image(3, 0)

    with pytest.raises(StepIncomplete):
        machine.submit_for_audit(order, Phase.INBOUND)
    assert order.status == "inbound_processing"


def test_submit_wrong_phase_is_invalid_transition(machine):
    order = make_order(OrderStatus.INBOUND_PROCESSING, 3)
    with pytest.raises(InvalidTransition):
        machine.submit_for_audit(order, Phase.OUTBOUND)


def test_approve_inbound_moves_to_step_four(machine):
    order = make_order(OrderStatus.PENDING_INBOUND_AUDIT, 3, "pending")
    machine.approve(order)
    assert (order.status, order.current_step, order.audit_status) == ("outbound_processing", 4, "approved")


def test_approve_outbound_completes(machine):
    order = make_order(OrderStatus.PENDING_OUTBOUND_AUDIT, 5, "pending")
    machine.approve(order)
    assert (order.status, order.current_step, order.audit_status) == ("completed", 5, "approved")


def test_reject_keeps_step(machine):
    order = make_order(OrderStatus.PENDING_OUTBOUND_AUDIT, 5, "pending")
    machine.reject(order, "签收照片缺失")
    assert (order.status, order.current_step, order.audit_status) == ("outbound_processing", 5, "rejected")
    assert order.reject_reason == "签收照片缺失"


def test_outbound_advance_step_four_to_five(machine):
    order = make_order(OrderStatus.OUTBOUND_PROCESSING, 4, "approved")
    store = StageDataStore(order)
    item = store.add_logistics_item("顺丰", "SF1")

    with pytest.raises(StepIncomplete):
        machine.advance_step(order)

    store.add_logistics_image(item.id, "bill.jpg")
    machine.advance_step(order)
    assert order.current_step == 5

    with pytest.raises(StepIncomplete):
        machine.advance_step(order)


def test_evidence_frozen_statuses(machine):
    for status in (OrderStatus.PENDING_INBOUND_AUDIT, OrderStatus.PENDING_OUTBOUND_AUDIT, OrderStatus.COMPLETED):
        with pytest.raises(InvalidTransition) as excinfo:
            machine.ensure_evidence_writable(make_order(status, 3))
        assert excinfo.value.event == "record_evidence"

    machine.ensure_evidence_writable(make_order(OrderStatus.INBOUND_PROCESSING, 2))
    machine.ensure_evidence_writable(make_order(OrderStatus.PENDING_RECEIVE, 1))
