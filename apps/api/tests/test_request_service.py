"""Tests for request submission and the approval chain."""

import pytest

from portal.core.errors import ConflictError, NotFoundError, ValidationError
from portal.models.request import RequestApproval
from portal.services import domain_events as events
from portal.services.request_service import (
    decide_request,
    derive_request_status,
    get_request,
    list_requests,
    submit_request,
)


def _hardware_payload(**overrides):
    payload = {
        "type": "NEW_HARDWARE",
        "subject": "Laptop replacement",
        "description": "Current laptop battery no longer holds a charge.",
        "justification": "Needed for on-site client visits.",
        "details": {"item": "14-inch laptop", "quantity": 1},
    }
    payload.update(overrides)
    return payload


class TestDeriveRequestStatus:
    @pytest.mark.parametrize(
        "statuses, expected",
        [
            ([], "PENDING_APPROVAL"),
            (["PENDING"], "PENDING_APPROVAL"),
            (["APPROVED", "PENDING"], "PENDING_APPROVAL"),
            (["APPROVED", "APPROVED"], "APPROVED"),
            (["APPROVED", "REJECTED"], "REJECTED"),
            (["PENDING", "REJECTED"], "REJECTED"),
        ],
    )
    def test_status_is_a_function_of_approvals(self, statuses, expected):
        approvals = [RequestApproval(status=s) for s in statuses]
        assert derive_request_status(approvals) == expected


class TestSubmitRequest:
    def test_seeds_pending_approval_for_manager(self, session, employee, manager, dispatcher):
        request = submit_request(session, _hardware_payload(), employee.id)

        assert request.request_number.startswith("REQ-")
        assert request.status == "PENDING_APPROVAL"
        assert request.type == "NEW_HARDWARE"
        assert request.details == {"item": "14-inch laptop", "quantity": 1}
        assert [(a.approver_id, a.level, a.status) for a in request.approvals] == [(manager.id, 1, "PENDING")]

        sent = dispatcher.to(manager.email)
        assert len(sent) == 1
        assert sent[0].subject == f"Approval Required: {request.request_number}"
        assert sent[0].event_key == f"request_approval_required:{request.id}:{manager.id}"

    def test_requestor_without_manager_gets_no_approvals(self, session, make_user, dispatcher, caplog):
        loner = make_user("Lou", "Loner")

        with caplog.at_level("WARNING", logger="portal.services.request_service"):
            request = submit_request(session, _hardware_payload(), loner.id)

        assert request.status == "PENDING_APPROVAL"
        assert request.approvals == []
        assert dispatcher.sent == []
        assert "without approval chain" in caplog.text

    def test_publishes_request_submitted(self, session, employee, manager):
        received = []
        events.subscribe(events.RequestSubmitted, received.append)

        request = submit_request(session, _hardware_payload(), employee.id)

        assert len(received) == 1
        assert received[0].request_id == request.id
        assert received[0].approver_ids == (manager.id,)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"type": "HARDWARE"},
            {"subject": "   "},
            {"subject": "ab"},
            {"justification": ""},
            {"details": {"item": "Monitor", "quantity": 0}},
            {"details": {"item": "Monitor", "colour": "black"}},
            {"unexpected": True},
        ],
    )
    def test_rejects_invalid_input(self, session, employee, overrides):
        with pytest.raises(ValidationError):
            submit_request(session, _hardware_payload(**overrides), employee.id)

    def test_details_are_validated_against_the_request_type(self, session, employee):
        payload = _hardware_payload(
            type="ACCESS_REQUEST",
            details={"system": "Payroll", "access_level": "read", "duration_days": 30},
        )
        request = submit_request(session, payload, employee.id)
        assert request.details == {"system": "Payroll", "access_level": "read", "duration_days": 30}

        with pytest.raises(ValidationError):
            submit_request(session, _hardware_payload(type="ACCESS_REQUEST"), employee.id)

    def test_unknown_requestor(self, session):
        with pytest.raises(NotFoundError):
            submit_request(session, _hardware_payload(), 9999)

    def test_numbers_are_unique(self, session, employee):
        numbers = {submit_request(session, _hardware_payload(), employee.id).request_number for _ in range(5)}
        assert len(numbers) == 5

    def test_dispatch_failure_does_not_undo_submission(self, session, employee, failing_dispatcher):
        request = submit_request(session, _hardware_payload(), employee.id, dispatcher=failing_dispatcher)

        stored = get_request(session, request.id)
        assert stored.status == "PENDING_APPROVAL"
        assert len(stored.approvals) == 1


class TestDecideRequest:
    def test_single_level_approval_approves_request(self, session, employee, manager):
        request = submit_request(session, _hardware_payload(), employee.id)

        decide_request(session, request.id, manager.id, "APPROVED")

        stored = get_request(session, request.id)
        assert stored.status == "APPROVED"
        assert stored.approvals[0].status == "APPROVED"
        assert stored.approvals[0].approved_at is not None

    def test_rejection_records_comment_and_notifies_requestor(self, session, employee, manager, dispatcher):
        request = submit_request(session, _hardware_payload(), employee.id)

        decide_request(session, request.id, manager.id, "REJECTED", "budget")

        stored = get_request(session, request.id)
        assert stored.status == "REJECTED"
        assert stored.approvals[0].comments == "budget"

        sent = dispatcher.to(employee.email)
        assert len(sent) == 1
        assert sent[0].subject == f"IT Request Rejected: {request.request_number}"
        assert "budget" in sent[0].text

    def test_multi_level_chain_needs_every_approval(self, session, employee, manager, it_admin):
        request = submit_request(session, _hardware_payload(), employee.id)
        session.add(RequestApproval(request_id=request.id, approver_id=it_admin.id, level=2, status="PENDING"))
        session.commit()

        decide_request(session, request.id, manager.id, "APPROVED")
        assert get_request(session, request.id).status == "PENDING_APPROVAL"

        decide_request(session, request.id, it_admin.id, "APPROVED")
        assert get_request(session, request.id).status == "APPROVED"

    def test_any_rejection_rejects_multi_level_chain(self, session, employee, manager, it_admin):
        request = submit_request(session, _hardware_payload(), employee.id)
        session.add(RequestApproval(request_id=request.id, approver_id=it_admin.id, level=2, status="PENDING"))
        session.commit()

        decide_request(session, request.id, it_admin.id, "REJECTED", "not this quarter")

        assert get_request(session, request.id).status == "REJECTED"

    def test_publishes_decision_and_outcome_events(self, session, employee, manager):
        received = []
        events.subscribe(events.DomainEvent, received.append)
        request = submit_request(session, _hardware_payload(), employee.id)
        received.clear()

        decide_request(session, request.id, manager.id, "APPROVED")

        assert [type(e).__name__ for e in received] == ["RequestDecisionRecorded", "RequestApproved"]

    def test_repeat_decision_is_a_conflict(self, session, employee, manager):
        request = submit_request(session, _hardware_payload(), employee.id)
        session.add(RequestApproval(request_id=request.id, approver_id=employee.id, level=2, status="PENDING"))
        session.commit()
        decide_request(session, request.id, manager.id, "APPROVED")

        with pytest.raises(ConflictError):
            decide_request(session, request.id, manager.id, "REJECTED")

        assert get_request(session, request.id).approvals[0].status == "APPROVED"

    def test_decision_on_finished_request_is_a_conflict(self, session, employee, manager):
        request = submit_request(session, _hardware_payload(), employee.id)
        decide_request(session, request.id, manager.id, "REJECTED")

        with pytest.raises(ConflictError):
            decide_request(session, request.id, manager.id, "APPROVED")

    def test_non_approver_is_a_conflict(self, session, employee, manager, it_admin):
        request = submit_request(session, _hardware_payload(), employee.id)

        with pytest.raises(ConflictError):
            decide_request(session, request.id, it_admin.id, "APPROVED")

        assert get_request(session, request.id).status == "PENDING_APPROVAL"

    def test_request_without_chain_cannot_be_decided(self, session, make_user, manager):
        loner = make_user("Lou", "Loner")
        request = submit_request(session, _hardware_payload(), loner.id)

        with pytest.raises(ConflictError):
            decide_request(session, request.id, manager.id, "APPROVED")

    def test_unknown_request(self, session, manager):
        with pytest.raises(NotFoundError):
            decide_request(session, 9999, manager.id, "APPROVED")

    @pytest.mark.parametrize("decision", ["PENDING", "MAYBE", ""])
    def test_invalid_decision(self, session, employee, manager, decision):
        request = submit_request(session, _hardware_payload(), employee.id)

        with pytest.raises(ValidationError):
            decide_request(session, request.id, manager.id, decision)

    def test_dispatch_failure_keeps_decision(self, session, employee, manager, failing_dispatcher):
        request = submit_request(session, _hardware_payload(), employee.id)

        decide_request(session, request.id, manager.id, "APPROVED", dispatcher=failing_dispatcher)

        assert get_request(session, request.id).status == "APPROVED"


class TestListRequests:
    def test_filters(self, session, employee, manager, make_user):
        other = make_user("Olga", "Other", manager=manager)
        first = submit_request(session, _hardware_payload(subject="Docking station"), employee.id)
        submit_request(
            session,
            _hardware_payload(type="NEW_SOFTWARE", subject="Diagram tool", details={"software_name": "Draw"}),
            other.id,
        )
        decide_request(session, first.id, manager.id, "APPROVED")

        items, total = list_requests(session, requestor_id=employee.id)
        assert total == 1 and items[0].id == first.id

        items, total = list_requests(session, status="PENDING_APPROVAL")
        assert total == 1 and items[0].type == "NEW_SOFTWARE"

        _, total = list_requests(session, approver_id=manager.id)
        assert total == 2

        items, total = list_requests(session, search="docking")
        assert total == 1 and items[0].id == first.id

        items, total = list_requests(session, page=2, limit=1)
        assert total == 2 and len(items) == 1

    def test_rejects_bad_paging(self, session):
        with pytest.raises(ValidationError):
            list_requests(session, page=0)
