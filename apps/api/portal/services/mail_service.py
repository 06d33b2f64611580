"""Notification dispatch.

Engines hand rendered :class:`MailMessage` objects to a dispatcher after their
state change is committed. The default :class:`OutboxDispatcher` only queues a
``mail_logs`` row; a background worker delivers queued rows over SMTP with
bounded retries.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
import smtplib
import threading
import time
import uuid
from email.message import EmailMessage
from typing import Protocol

from email_validator import validate_email, EmailNotValidError
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from ..core.config import settings
from ..core.errors import DispatchWarning
from ..core.settings import settings as feature_settings
from ..db import SessionLocal
from ..models.mail_log import MAIL_FAILED, MAIL_PENDING, MAIL_SENT, MAIL_SKIPPED, MailLog

logger = logging.getLogger(__name__)

MAIL_MAX_ATTEMPTS = 3
MAIL_POLL_SECONDS = 10
MAIL_BATCH_SIZE = 20
BACKOFF_STEPS = (60, 300, 900)


@dataclass
class MailMessage:
    to: str
    subject: str
    html: str
    text: str = ""
    event_type: str = "notification"
    event_key: str = field(default_factory=lambda: f"adhoc:{uuid.uuid4().hex}")
    reference: str | None = None


class NotificationDispatcher(Protocol):
    def send(self, message: MailMessage) -> bool:
        """Accept a rendered message for delivery. The result is advisory."""
        ...


def _normalize_recipient(addr: str | None) -> str | None:
    if not addr:
        return None
    try:
        normalized = validate_email(addr, check_deliverability=False).normalized
    except EmailNotValidError:
        return None
    allowed = settings.mail_allowed_domains
    if allowed and normalized.rsplit("@", 1)[-1].lower() not in allowed:
        return None
    return normalized


class OutboxDispatcher:
    """Queues messages in ``mail_logs``; the mail worker delivers them."""

    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory or SessionLocal

    def send(self, message: MailMessage) -> bool:
        if not settings.smtp_ready:
            logger.info("SMTP is not configured; skipping mail. event_key=%s", message.event_key)
            return False

        recipient = _normalize_recipient(message.to)
        now = datetime.now(timezone.utc)

        with self.session_factory() as session:
            exists = session.execute(select(MailLog.id).where(MailLog.event_key == message.event_key)).first()
            if exists:
                logger.info("duplicate mail event skipped: %s", message.event_key)
                return False

            log = MailLog(
                event_key=message.event_key,
                event_type=message.event_type,
                reference=message.reference,
                recipient_email=recipient or message.to,
                subject=message.subject,
                body_text=message.text,
                body_html=message.html,
                attempts=0,
            )
            if recipient is None:
                # 잘못된/허용되지 않은 주소는 기록만 남긴다.
                log.status = MAIL_SKIPPED
                log.last_attempt_at = now
                log.error_message = "invalid recipient address"
                session.add(log)
                session.commit()
                logger.info("recipient rejected, mail skipped: %s", message.to)
                return False

            log.status = MAIL_PENDING
            log.next_attempt_at = now
            session.add(log)
            session.commit()
            logger.info("mail queued: %s -> %s", message.event_key, recipient)
            return True


_default_dispatcher: NotificationDispatcher | None = None


def get_dispatcher() -> NotificationDispatcher:
    global _default_dispatcher
    if _default_dispatcher is None:
        _default_dispatcher = OutboxDispatcher()
    return _default_dispatcher


def set_dispatcher(dispatcher: NotificationDispatcher | None) -> None:
    global _default_dispatcher
    _default_dispatcher = dispatcher


def dispatch(message: MailMessage | None, dispatcher: NotificationDispatcher | None = None) -> bool:
    """Hand a message to the dispatcher. Failures are logged, never raised."""
    if message is None:
        return False
    dispatcher = dispatcher or get_dispatcher()
    try:
        accepted = dispatcher.send(message)
    except Exception as exc:
        logger.exception("mail dispatch failed: %s", message.event_key)
        logger.warning("%s", DispatchWarning(f"{message.event_type} to {message.to}: {exc}"))
        return False
    if not accepted:
        logger.warning("%s", DispatchWarning(f"{message.event_type} to {message.to} was not accepted"))
    return bool(accepted)


# --- delivery worker ----------------------------------------------------------

def _build_message(log: MailLog) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = log.subject
    msg["From"] = f"{settings.app_name} <{settings.smtp_from}>"
    msg["To"] = log.recipient_email
    msg.set_content(log.body_text or "")
    if log.body_html:
        msg.add_alternative(log.body_html, subtype="html")
    return msg


def _send_message(log: MailLog) -> None:
    msg = _build_message(log)
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
        if settings.smtp_starttls:
            smtp.starttls()
        if settings.smtp_user:
            smtp.login(settings.smtp_user, settings.smtp_password)
        smtp.send_message(msg)


def _next_backoff(attempts: int) -> int:
    return BACKOFF_STEPS[min(attempts - 1, len(BACKOFF_STEPS) - 1)]


def _load_due(session: Session, now: datetime) -> list[MailLog]:
    stmt = (
        select(MailLog)
        .where(MailLog.status.in_([MAIL_PENDING, MAIL_FAILED]))
        .where(MailLog.next_attempt_at <= now)
        .where(MailLog.attempts < MAIL_MAX_ATTEMPTS)
        .order_by(MailLog.next_attempt_at, MailLog.id)
        .with_for_update(skip_locked=True)
        .limit(MAIL_BATCH_SIZE)
    )
    return list(session.scalars(stmt).all())


def process_once(session_factory: sessionmaker | None = None) -> int:
    """Deliver due rows once. Returns the number of rows attempted."""
    if not settings.smtp_ready:
        return 0

    session_factory = session_factory or SessionLocal
    now = datetime.now(timezone.utc)
    with session_factory() as session:
        logs = _load_due(session, now)
        for log in logs:
            log.attempts += 1
            log.last_attempt_at = now
            try:
                _send_message(log)
            except (smtplib.SMTPException, OSError) as exc:
                log.status = MAIL_FAILED
                log.next_attempt_at = now + timedelta(seconds=_next_backoff(log.attempts))
                log.error_message = str(exc)
                logger.exception("mail delivery failed: %s (attempt %s)", log.event_key, log.attempts)
                continue
            log.status = MAIL_SENT
            log.next_attempt_at = None
            log.error_message = None
            logger.info("mail sent: %s", log.event_key)
        session.commit()
    return len(logs)


def _worker_loop() -> None:
    while True:
        try:
            process_once()
        except Exception:
            logger.exception("mail worker error")
        time.sleep(MAIL_POLL_SECONDS)


def start_mail_worker_thread() -> None:
    if not feature_settings.MAIL_WORKER_ENABLED:
        return
    if not settings.smtp_ready:
        logger.info("SMTP is not configured; mail worker not started.")
        return
    t = threading.Thread(target=_worker_loop, name="mail-worker", daemon=True)
    t.start()
