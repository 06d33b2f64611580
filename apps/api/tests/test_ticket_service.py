"""Tests for the ticket lifecycle."""

from datetime import datetime, timedelta, timezone

import pytest

from portal.core.errors import ConflictError, NotFoundError, ValidationError
from portal.core.settings import settings
from portal.services import domain_events as events
from portal.services.sla import as_utc
from portal.services.ticket_service import (
    add_comment,
    assign_ticket,
    get_ticket,
    list_comments,
    list_events,
    list_tickets,
    submit_ticket,
    update_ticket,
)


def _ticket_payload(**overrides):
    payload = {
        "subject": "VPN drops every hour",
        "description": "The VPN client disconnects roughly every sixty minutes.",
        "priority": "HIGH",
        "category": "NETWORK",
    }
    payload.update(overrides)
    return payload


def _status_mails(dispatcher):
    return [m for m in dispatcher.sent if m.event_type == "ticket_status_changed"]


class TestSubmitTicket:
    @pytest.mark.parametrize("priority, hours", [("CRITICAL", 4), ("HIGH", 8), ("MEDIUM", 24), ("LOW", 48)])
    def test_sla_deadline_follows_priority(self, session, employee, priority, hours):
        before = datetime.now(timezone.utc)
        ticket = submit_ticket(session, _ticket_payload(priority=priority), employee.id)

        expected = before + timedelta(hours=hours)
        assert abs(as_utc(ticket.sla_deadline) - expected) < timedelta(seconds=1)
        assert ticket.status == "OPEN"
        assert ticket.ticket_number.startswith("TKT-")
        assert ticket.assignee_id is None

    def test_priority_defaults_to_medium(self, session, employee):
        payload = _ticket_payload()
        del payload["priority"]
        ticket = submit_ticket(session, payload, employee.id)
        assert ticket.priority == "MEDIUM"

    def test_records_event_and_notifies_creator(self, session, employee, dispatcher):
        ticket = submit_ticket(session, _ticket_payload(), employee.id)

        assert [e.type for e in list_events(session, ticket.id)] == ["ticket_created"]
        sent = dispatcher.to(employee.email)
        assert len(sent) == 1
        assert sent[0].subject == f"IT Ticket Created: {ticket.ticket_number}"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"priority": "URGENT"},
            {"category": "PRINTERS"},
            {"subject": "  "},
            {"description": ""},
            {"status": "CLOSED"},
        ],
    )
    def test_rejects_invalid_input(self, session, employee, overrides):
        with pytest.raises(ValidationError):
            submit_ticket(session, _ticket_payload(**overrides), employee.id)

    def test_unknown_creator(self, session):
        with pytest.raises(NotFoundError):
            submit_ticket(session, _ticket_payload(), 9999)

    def test_dispatch_failure_keeps_ticket(self, session, employee, failing_dispatcher):
        ticket = submit_ticket(session, _ticket_payload(), employee.id, dispatcher=failing_dispatcher)
        assert get_ticket(session, ticket.id).status == "OPEN"


class TestLifecycle:
    def test_assign_then_resolve(self, session, employee, it_admin, dispatcher):
        ticket = submit_ticket(session, _ticket_payload(priority="HIGH"), employee.id)

        assign_ticket(session, ticket.id, it_admin.id, actor_id=it_admin.id)
        ticket = get_ticket(session, ticket.id)
        assert ticket.status == "IN_PROGRESS"
        assert ticket.assignee_id == it_admin.id
        assert len(dispatcher.to(it_admin.email)) == 1

        update_ticket(session, ticket.id, {"status": "RESOLVED"}, actor_id=it_admin.id)
        ticket = get_ticket(session, ticket.id)
        assert ticket.status == "RESOLVED"
        resolved_at = ticket.resolved_at
        assert resolved_at is not None
        assert ticket.closed_at is None
        assert len(_status_mails(dispatcher)) == 1

        update_ticket(session, ticket.id, {"status": "RESOLVED"}, actor_id=it_admin.id)
        ticket = get_ticket(session, ticket.id)
        assert ticket.resolved_at == resolved_at
        assert len(_status_mails(dispatcher)) == 1

    def test_close_stamps_closed_at(self, session, employee):
        ticket = submit_ticket(session, _ticket_payload(), employee.id)

        update_ticket(session, ticket.id, {"status": "CLOSED"})

        ticket = get_ticket(session, ticket.id)
        assert ticket.closed_at is not None
        assert ticket.resolved_at is None

    def test_priority_change_keeps_sla_deadline(self, session, employee):
        ticket = submit_ticket(session, _ticket_payload(priority="LOW"), employee.id)
        deadline = ticket.sla_deadline

        update_ticket(session, ticket.id, {"priority": "CRITICAL", "category": "SOFTWARE"})

        ticket = get_ticket(session, ticket.id)
        assert ticket.priority == "CRITICAL"
        assert ticket.category == "SOFTWARE"
        assert ticket.sla_deadline == deadline

    def test_update_records_events(self, session, employee, it_admin):
        ticket = submit_ticket(session, _ticket_payload(), employee.id)

        update_ticket(
            session,
            ticket.id,
            {"priority": "LOW", "assignee_id": it_admin.id, "status": "IN_PROGRESS"},
            actor_id=it_admin.id,
        )

        types = {e.type for e in list_events(session, ticket.id)}
        assert types == {"ticket_created", "priority_changed", "assignee_assigned", "status_changed"}

    def test_update_can_clear_assignee(self, session, employee, it_admin):
        ticket = submit_ticket(session, _ticket_payload(), employee.id)
        assign_ticket(session, ticket.id, it_admin.id)

        update_ticket(session, ticket.id, {"assignee_id": None})

        assert get_ticket(session, ticket.id).assignee_id is None

    def test_update_records_first_assignment_then_reassignment(self, session, employee, it_admin, make_user):
        other_admin = make_user("Ada", "Admin", role="ADMIN")
        ticket = submit_ticket(session, _ticket_payload(), employee.id)

        update_ticket(session, ticket.id, {"assignee_id": it_admin.id})
        update_ticket(session, ticket.id, {"assignee_id": other_admin.id})

        assignee_events = [
            (e.type, e.from_value, e.to_value)
            for e in list_events(session, ticket.id)
            if e.type.startswith("assignee_")
        ]
        assert assignee_events == [
            ("assignee_changed", str(it_admin.id), str(other_admin.id)),
            ("assignee_assigned", None, str(it_admin.id)),
        ]

    def test_unknown_assignee_leaves_ticket_untouched(self, session, employee):
        ticket = submit_ticket(session, _ticket_payload(priority="HIGH", category="HARDWARE"), employee.id)

        with pytest.raises(NotFoundError):
            update_ticket(session, ticket.id, {"priority": "LOW", "category": "NETWORK", "assignee_id": 9999})

        # A later commit on the same session must not carry the rejected patch.
        add_comment(session, ticket.id, employee.id, "Still waiting on this.")
        session.expire_all()

        ticket = get_ticket(session, ticket.id)
        assert (ticket.priority, ticket.category, ticket.assignee_id) == ("HIGH", "HARDWARE", None)
        assert [e.type for e in list_events(session, ticket.id)] == ["ticket_created"]

    @pytest.mark.parametrize(
        "patch",
        [
            {"subject": "New subject"},
            {"status": "REOPENED"},
            {"priority": "URGENT"},
            {"status": None},
            {"category": None},
        ],
    )
    def test_update_rejects_invalid_patch(self, session, employee, patch):
        ticket = submit_ticket(session, _ticket_payload(), employee.id)

        with pytest.raises(ValidationError):
            update_ticket(session, ticket.id, patch)

        assert get_ticket(session, ticket.id).status == "OPEN"

    def test_update_unknown_ticket(self, session):
        with pytest.raises(NotFoundError):
            update_ticket(session, 9999, {"status": "CLOSED"})

    def test_status_events_published_only_on_change(self, session, employee):
        received = []
        events.subscribe(events.TicketStatusChanged, received.append)
        ticket = submit_ticket(session, _ticket_payload(), employee.id)

        update_ticket(session, ticket.id, {"status": "OPEN"})
        assert received == []

        update_ticket(session, ticket.id, {"status": "IN_PROGRESS"})
        assert [(e.from_status, e.to_status) for e in received] == [("OPEN", "IN_PROGRESS")]


class TestAssignTicket:
    def test_reassign_notifies_new_assignee(self, session, employee, it_admin, make_user, dispatcher):
        other_admin = make_user("Ada", "Admin", role="ADMIN")
        ticket = submit_ticket(session, _ticket_payload(), employee.id)
        assign_ticket(session, ticket.id, it_admin.id)

        assign_ticket(session, ticket.id, other_admin.id)

        assert get_ticket(session, ticket.id).assignee_id == other_admin.id
        assert len(dispatcher.to(other_admin.email)) == 1

    def test_same_assignee_is_not_notified_twice(self, session, employee, it_admin, dispatcher):
        ticket = submit_ticket(session, _ticket_payload(), employee.id)
        assign_ticket(session, ticket.id, it_admin.id)
        assign_ticket(session, ticket.id, it_admin.id)

        assert len(dispatcher.to(it_admin.email)) == 1

    def test_assigning_resolved_ticket_reopens_it(self, session, employee, it_admin):
        ticket = submit_ticket(session, _ticket_payload(), employee.id)
        update_ticket(session, ticket.id, {"status": "RESOLVED"})

        assign_ticket(session, ticket.id, it_admin.id)

        assert get_ticket(session, ticket.id).status == "IN_PROGRESS"

    def test_assigning_terminal_ticket_can_be_disallowed(self, session, employee, it_admin, monkeypatch):
        monkeypatch.setattr(settings, "ALLOW_ASSIGN_TERMINAL_TICKETS", False)
        ticket = submit_ticket(session, _ticket_payload(), employee.id)
        update_ticket(session, ticket.id, {"status": "CLOSED"})

        with pytest.raises(ConflictError):
            assign_ticket(session, ticket.id, it_admin.id)

        assert get_ticket(session, ticket.id).status == "CLOSED"

    def test_unknown_assignee_or_ticket(self, session, employee, it_admin):
        ticket = submit_ticket(session, _ticket_payload(), employee.id)

        with pytest.raises(NotFoundError):
            assign_ticket(session, ticket.id, 9999)
        with pytest.raises(NotFoundError):
            assign_ticket(session, 9999, it_admin.id)


class TestComments:
    def test_comments_listed_newest_first(self, session, employee, it_admin):
        ticket = submit_ticket(session, _ticket_payload(), employee.id)
        first = add_comment(session, ticket.id, employee.id, "It happened again at 10:00.")
        second = add_comment(session, ticket.id, it_admin.id, "Collecting client logs.")

        comments = list_comments(session, ticket.id)

        assert [c.id for c in comments] == [second.id, first.id]

    def test_internal_comments_can_be_hidden(self, session, employee, it_admin):
        ticket = submit_ticket(session, _ticket_payload(), employee.id)
        add_comment(session, ticket.id, it_admin.id, "Check firewall idle timeout.", is_internal=True)
        public = add_comment(session, ticket.id, it_admin.id, "We are looking into it.")

        assert len(list_comments(session, ticket.id)) == 2
        assert [c.id for c in list_comments(session, ticket.id, include_internal=False)] == [public.id]

    def test_comment_only_appends(self, session, employee, it_admin, dispatcher):
        ticket = submit_ticket(session, _ticket_payload(), employee.id)
        deadline = get_ticket(session, ticket.id).sla_deadline
        sent_before = len(dispatcher.sent)

        for author, content in [(it_admin, "  Rebooted the gateway.  "), (employee, "Looks stable now.")]:
            count_before = len(list_comments(session, ticket.id))

            add_comment(session, ticket.id, author.id, content)

            ticket = get_ticket(session, ticket.id)
            assert len(list_comments(session, ticket.id)) == count_before + 1
            assert ticket.sla_deadline == deadline
            assert ticket.status == "OPEN"

        assert [c.content for c in list_comments(session, ticket.id)] == ["Looks stable now.", "Rebooted the gateway."]
        assert len(dispatcher.sent) == sent_before

    def test_publishes_comment_added(self, session, employee):
        received = []
        events.subscribe(events.TicketCommentAdded, received.append)
        ticket = submit_ticket(session, _ticket_payload(), employee.id)

        comment = add_comment(session, ticket.id, employee.id, "Any update?")

        assert [(e.ticket_id, e.comment_id) for e in received] == [(ticket.id, comment.id)]

    @pytest.mark.parametrize("content", ["", "   "])
    def test_blank_comment_is_rejected(self, session, employee, content):
        ticket = submit_ticket(session, _ticket_payload(), employee.id)

        with pytest.raises(ValidationError):
            add_comment(session, ticket.id, employee.id, content)

        assert list_comments(session, ticket.id) == []

    def test_comment_on_unknown_ticket(self, session, employee):
        with pytest.raises(NotFoundError):
            add_comment(session, 9999, employee.id, "Hello?")


class TestListTickets:
    def test_orders_by_priority_then_newest(self, session, employee):
        low = submit_ticket(session, _ticket_payload(priority="LOW"), employee.id)
        critical = submit_ticket(session, _ticket_payload(priority="CRITICAL"), employee.id)
        medium_old = submit_ticket(session, _ticket_payload(priority="MEDIUM"), employee.id)
        medium_new = submit_ticket(session, _ticket_payload(priority="MEDIUM"), employee.id)

        items, total = list_tickets(session)

        assert total == 4
        assert [t.id for t in items] == [critical.id, medium_new.id, medium_old.id, low.id]

    def test_filters(self, session, employee, it_admin):
        mine = submit_ticket(session, _ticket_payload(subject="Printer jam", category="HARDWARE"), employee.id)
        submit_ticket(session, _ticket_payload(), it_admin.id)
        assign_ticket(session, mine.id, it_admin.id)

        assert list_tickets(session, creator_id=employee.id)[1] == 1
        assert list_tickets(session, assignee_id=it_admin.id)[0][0].id == mine.id
        assert list_tickets(session, category="HARDWARE")[1] == 1
        assert list_tickets(session, status="OPEN")[1] == 1
        assert list_tickets(session, search="printer")[0][0].id == mine.id
