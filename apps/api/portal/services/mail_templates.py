from __future__ import annotations

import html

from ..core.config import settings
from ..models.request import ITRequest
from ..models.ticket import Ticket
from ..models.user import User
from .mail_service import MailMessage


STATUS_LABELS = {
    "OPEN": "Open",
    "IN_PROGRESS": "In Progress",
    "RESOLVED": "Resolved",
    "CLOSED": "Closed",
    "PENDING_APPROVAL": "Pending Approval",
    "APPROVED": "Approved",
    "REJECTED": "Rejected",
}

REQUEST_TYPE_LABELS = {
    "NEW_HARDWARE": "New Hardware",
    "NEW_SOFTWARE": "New Software",
    "ACCESS_REQUEST": "Access Request",
    "MODIFICATION": "Modification",
    "REMOVAL": "Removal",
}

_BADGE_STYLES = {
    "Open": ("#e0f2fe", "#075985", "#bae6fd"),
    "In Progress": ("#fef9c3", "#854d0e", "#fde68a"),
    "Resolved": ("#dcfce7", "#166534", "#bbf7d0"),
    "Closed": ("#e5e7eb", "#374151", "#d1d5db"),
    "Pending Approval": ("#fef3c7", "#92400e", "#fcd34d"),
    "Approved": ("#dcfce7", "#166534", "#bbf7d0"),
    "Rejected": ("#fee2e2", "#b91c1c", "#fecaca"),
}


def request_link(request_id: int) -> str:
    return f"{settings.app_base_url.rstrip('/')}/it/requests/{request_id}"


def ticket_link(ticket_id: int) -> str:
    return f"{settings.app_base_url.rstrip('/')}/it/tickets/{ticket_id}"


def status_label(status: str | None) -> str:
    if not status:
        return "-"
    return STATUS_LABELS.get(status, status)


def _esc(value: str | None) -> str:
    return html.escape(value or "-")


def _user_label(user: User | None) -> str:
    if not user:
        return "-"
    return user.full_name or user.email or str(user.id)


def _badge(label: str) -> str:
    bg, fg, border = _BADGE_STYLES.get(label, ("#f3f4f6", "#374151", "#e5e7eb"))
    return (
        f"<span style=\"display:inline-block;padding:4px 10px;border-radius:999px;"
        f"background:{bg};color:{fg};border:1px solid {border};font-size:12px;font-weight:600;\">"
        f"{_esc(label)}"
        "</span>"
    )


def _render_plain(
    *,
    greeting: str,
    summary: str,
    fields: list[tuple[str, str]],
    badge_label: str | None,
    link_url: str | None,
    link_text: str,
) -> str:
    lines: list[str] = [f"{settings.app_name}", "", greeting, "", summary, ""]
    for label, value in fields:
        lines.append(f"- {label}: {value}")
    if badge_label:
        lines.append(f"- Status: {badge_label}")
    if link_url:
        lines.append("")
        lines.append(f"{link_text}: {link_url}")
    lines.append("")
    lines.append(f"This is an automated message from {settings.app_name}.")
    return "\n".join(lines)


def _render_html(
    *,
    greeting: str,
    summary: str,
    fields: list[tuple[str, str]],
    badge_label: str | None,
    link_url: str | None,
    link_text: str,
) -> str:
    rows = "".join(
        f"""
        <tr>
          <td style=\"padding:8px 0;color:#6b7280;font-size:13px;width:140px;\">{_esc(label)}</td>
          <td style=\"padding:8px 0;color:#111827;font-size:14px;font-weight:600;white-space:pre-line;\">{_esc(value)}</td>
        </tr>
        """
        for label, value in fields
    )
    badge = f"<div style=\"margin-top:12px;\">{_badge(badge_label)}</div>" if badge_label else ""
    button = (
        f"<div style=\"margin-top:18px;\"><a href=\"{_esc(link_url)}\" style=\"display:inline-block;padding:12px 20px;"
        f"background:#070B47;color:#ffffff;text-decoration:none;border-radius:8px;font-weight:700;font-size:14px;\">"
        f"{_esc(link_text)}</a></div>"
        if link_url
        else ""
    )

    return f"""
<!DOCTYPE html>
<html lang=\"en\">
  <body style=\"margin:0;padding:24px;background:#ffffff;font-family:Arial,sans-serif;\">
    <table role=\"presentation\" width=\"100%\" cellspacing=\"0\" cellpadding=\"0\">
      <tr>
        <td align=\"center\">
          <table role=\"presentation\" width=\"600\" cellspacing=\"0\" cellpadding=\"0\" style=\"width:600px;border-radius:14px;overflow:hidden;border:1px solid #e5e7eb;\">
            <tr>
              <td style=\"padding:20px 24px;background:#070B47;color:#ffffff;font-size:18px;font-weight:700;\">{_esc(settings.app_name)}</td>
            </tr>
            <tr>
              <td style=\"padding:20px 24px;\">
                <div style=\"font-size:16px;font-weight:700;color:#111827;\">{_esc(greeting)}</div>
                <div style=\"margin-top:8px;font-size:14px;color:#374151;\">{_esc(summary)}</div>
                {badge}
                <table role=\"presentation\" width=\"100%\" cellspacing=\"0\" cellpadding=\"0\" style=\"margin-top:16px;border-collapse:collapse;\">
                  {rows}
                </table>
                {button}
              </td>
            </tr>
            <tr>
              <td style=\"padding:16px 24px;border-top:1px solid #e5e7eb;font-size:12px;color:#6b7280;\">
                This is an automated message from {_esc(settings.app_name)}.
              </td>
            </tr>
          </table>
        </td>
      </tr>
    </table>
  </body>
</html>
    """.strip()


def _build(
    *,
    to: str,
    subject: str,
    event_type: str,
    event_key: str,
    greeting: str,
    summary: str,
    fields: list[tuple[str, str]],
    badge_label: str | None = None,
    link_url: str | None = None,
    link_text: str = "View details",
    reference: str | None = None,
) -> MailMessage:
    kwargs = dict(
        greeting=greeting,
        summary=summary,
        fields=fields,
        badge_label=badge_label,
        link_url=link_url,
        link_text=link_text,
    )
    return MailMessage(
        to=to,
        subject=subject,
        html=_render_html(**kwargs),
        text=_render_plain(**kwargs),
        event_type=event_type,
        event_key=event_key,
        reference=reference,
    )


def approval_required_mail(request: ITRequest, requestor: User, approver: User) -> MailMessage | None:
    if not approver.email:
        return None
    return _build(
        to=approver.email,
        subject=f"Approval Required: {request.request_number}",
        event_type="request_approval_required",
        event_key=f"request_approval_required:{request.id}:{approver.id}",
        greeting=f"Hello {_user_label(approver)},",
        summary="A new IT request requires your approval.",
        fields=[
            ("Request Number", request.request_number),
            ("Type", REQUEST_TYPE_LABELS.get(request.type, request.type)),
            ("Subject", request.subject),
            ("Requested By", _user_label(requestor)),
        ],
        badge_label=status_label(request.status),
        link_url=request_link(request.id),
        link_text="Review Request",
        reference=request.request_number,
    )


def request_decision_mail(
    request: ITRequest,
    requestor: User,
    approver_id: int,
    decision: str,
    comments: str | None = None,
) -> MailMessage | None:
    if not requestor.email:
        return None
    label = status_label(decision)
    fields = [("Request Number", request.request_number), ("Decision", label)]
    if comments:
        fields.append(("Comments", comments))
    return _build(
        to=requestor.email,
        subject=f"IT Request {label}: {request.request_number}",
        event_type="request_decision",
        event_key=f"request_decision:{request.id}:{approver_id}",
        greeting=f"Hello {_user_label(requestor)},",
        summary=f"Your IT request {request.request_number} has been reviewed.",
        fields=fields,
        badge_label=label,
        link_url=request_link(request.id),
        link_text="View Request",
        reference=request.request_number,
    )


def ticket_created_mail(ticket: Ticket, creator: User) -> MailMessage | None:
    if not creator.email:
        return None
    return _build(
        to=creator.email,
        subject=f"IT Ticket Created: {ticket.ticket_number}",
        event_type="ticket_created",
        event_key=f"ticket_created:{ticket.id}:{creator.id}",
        greeting=f"Hello {_user_label(creator)},",
        summary="Your IT support ticket has been created successfully. "
        "Our IT team will review your request and respond as soon as possible.",
        fields=[
            ("Ticket Number", ticket.ticket_number),
            ("Subject", ticket.subject),
            ("Priority", ticket.priority),
        ],
        badge_label=status_label(ticket.status),
        link_url=ticket_link(ticket.id),
        link_text="View Ticket",
        reference=ticket.ticket_number,
    )


def ticket_status_mail(ticket: Ticket, creator: User, new_status: str, event_id: int) -> MailMessage | None:
    if not creator.email:
        return None
    return _build(
        to=creator.email,
        subject=f"IT Ticket Updated: {ticket.ticket_number}",
        event_type="ticket_status_changed",
        event_key=f"ticket_status_changed:{ticket.id}:{event_id}",
        greeting=f"Hello {_user_label(creator)},",
        summary=f"Your IT ticket {ticket.ticket_number} has been updated.",
        fields=[
            ("Ticket Number", ticket.ticket_number),
            ("New Status", status_label(new_status)),
        ],
        badge_label=status_label(new_status),
        link_url=ticket_link(ticket.id),
        link_text="View Ticket",
        reference=ticket.ticket_number,
    )


def ticket_assigned_mail(ticket: Ticket, assignee: User, event_id: int) -> MailMessage | None:
    if not assignee.email:
        return None
    return _build(
        to=assignee.email,
        subject=f"IT Ticket Assigned: {ticket.ticket_number}",
        event_type="ticket_assigned",
        event_key=f"ticket_assigned:{ticket.id}:{event_id}",
        greeting=f"Hello {_user_label(assignee)},",
        summary="An IT ticket has been assigned to you.",
        fields=[
            ("Ticket Number", ticket.ticket_number),
            ("Subject", ticket.subject),
            ("Priority", ticket.priority),
            ("Requested By", _user_label(ticket.creator)),
        ],
        badge_label=status_label(ticket.status),
        link_url=ticket_link(ticket.id),
        link_text="View Ticket",
        reference=ticket.ticket_number,
    )
