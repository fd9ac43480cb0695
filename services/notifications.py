from flask import current_app
from sqlalchemy import select

from models import db
from models.user import User, Role
from utils.audit import log_event
from utils.emailer import send_email

EXTENSION_KEY = "booking_notifier"


def _when(booking) -> str:
    return (
        f"{booking.booking_date.isoformat()} "
        f"{booking.start_time.strftime('%H:%M')}-{booking.end_time.strftime('%H:%M')}"
    )


class EmailNotifier:
    """Default dispatcher: plain-text mail through the configured SMTP relay."""

    def _send(self, to_email, subject, body):
        ok, error = send_email(to_email, subject, body)
        if not ok:
            current_app.logger.warning("Booking mail to %s not sent: %s", to_email, error)
        return ok

    def send_booking_status_update(self, booking, infrastructure, outcome):
        name = booking.requester_name or "there"
        body = (
            f"Hi {name},\n\n"
            f"Your booking request for {infrastructure.name} on {_when(booking)} "
            f"has been {outcome}.\n\n"
            "Thank you"
        )
        return self._send(booking.requester_email, f"Booking {outcome}: {infrastructure.name}", body)

    def send_action_request(self, booking, infrastructure, links, recipients):
        who = booking.requester_name or "Unknown requester"
        if booking.is_guest:
            who = f"{who} (guest, {booking.guest_email})"
        body = (
            f"A new booking request needs a decision.\n\n"
            f"Infrastructure: {infrastructure.name}\n"
            f"When: {_when(booking)}\n"
            f"Requested by: {who}\n"
            f"Purpose: {booking.purpose or '-'}\n\n"
            f"Approve: {links['approve']}\n"
            f"Reject: {links['reject']}\n\n"
            "Each link works once."
        )
        sent = True
        for to_email in recipients:
            sent = self._send(to_email, f"Booking request: {infrastructure.name}", body) and sent
        return sent

    def send_request_received(self, booking, infrastructure):
        name = booking.requester_name or "there"
        body = (
            f"Hi {name},\n\n"
            f"We received your booking request for {infrastructure.name} on {_when(booking)}. "
            "You will get another message once an administrator has reviewed it.\n\n"
            "Thank you"
        )
        return self._send(booking.requester_email, f"Booking request received: {infrastructure.name}", body)


def get_notifier():
    return current_app.extensions[EXTENSION_KEY]


def action_links(tokens: dict) -> dict:
    base = (current_app.config.get("PUBLIC_BASE_URL") or "").rstrip("/")
    return {action: f"{base}/email-actions/{action}/{value}" for action, value in tokens.items()}


def admin_recipients() -> list:
    configured = current_app.config.get("ADMIN_NOTIFICATION_EMAILS") or []
    admins = db.session.scalars(
        select(User.email).join(User.roles).where(Role.name == "ADMIN")
    ).all()
    seen, out = set(), []
    for email in list(configured) + list(admins):
        key = email.strip().lower()
        if key and key not in seen:
            seen.add(key)
            out.append(email.strip())
    return out


def _dispatch(kind: str, booking, call) -> bool:
    # Runs after commit only; a failed send never undoes the booking change.
    try:
        call(get_notifier())
        return True
    except Exception:
        current_app.logger.exception("Notification %s failed for booking %s", kind, booking.id)
        log_event("NOTIFICATION_FAIL", entity="booking", entity_id=booking.id, metadata={"kind": kind})
        return False


def notify_status_update(booking, outcome: str) -> bool:
    infrastructure = booking.infrastructure
    return _dispatch(
        "status_update",
        booking,
        lambda n: n.send_booking_status_update(booking, infrastructure, outcome),
    )


def notify_request_submitted(booking, tokens: dict) -> bool:
    infrastructure = booking.infrastructure
    links = action_links(tokens)
    recipients = admin_recipients()
    admins_ok = _dispatch(
        "action_request",
        booking,
        lambda n: n.send_action_request(booking, infrastructure, links, recipients),
    )
    requester_ok = _dispatch(
        "request_received",
        booking,
        lambda n: n.send_request_received(booking, infrastructure),
    )
    return admins_ok and requester_ok
