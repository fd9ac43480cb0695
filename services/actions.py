"""Transactional entry points for booking decisions.

``execute`` serves the unauthenticated approve/reject links sent by email;
``apply_admin_action`` and ``cancel_own_booking`` serve signed-in users.
All three run validation, state change and token bookkeeping in one unit of
work and notify the requester only once that unit has committed.
"""
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import select

from models import db
from models.booking import Booking
from security.action_tokens import consume_token, find_spent_token, validate_token
from services.errors import (
    AlreadyProcessed,
    BookingNotFound,
    CancellationWindowClosed,
    InvalidAction,
    InvalidOrExpiredToken,
    TokenActionMismatch,
)
from services.notifications import notify_status_update
from services.state_machine import TOKEN_ACTIONS, TRANSITIONS, transition
from services.transaction import unit_of_work
from utils.audit import log_event
from utils.clock import utcnow


@dataclass(frozen=True)
class ActionOutcome:
    booking_id: int
    action: str
    status: str


def _apply_token(session, token: str, url_action: str):
    """Returns (booking_id, new_status, already_processed) inside the open unit of work."""
    try:
        record = validate_token(session, token)
    except InvalidOrExpiredToken:
        return _replayed(session, token, url_action)

    if record.action != url_action:
        raise TokenActionMismatch()

    booking_id = record.booking_id
    if session.get(Booking, booking_id) is None:
        raise BookingNotFound()

    consume_token(session, record.id)
    try:
        return booking_id, transition(session, booking_id, url_action), None
    except AlreadyProcessed as exc:
        # token stays consumed; the caller commits before reporting this
        return booking_id, None, exc


def _replayed(session, token: str, url_action: str):
    # a link clicked again after it was spent reports where the booking ended up
    spent = find_spent_token(session, token)
    if spent is None or spent.action != url_action:
        raise InvalidOrExpiredToken()
    status = session.scalar(select(Booking.status).where(Booking.id == spent.booking_id))
    if status is None:
        raise InvalidOrExpiredToken()
    return spent.booking_id, None, AlreadyProcessed(status)


def execute(token: str, url_action: str, session=None) -> ActionOutcome:
    """
    Applies the action an emailed link carries.

    The token is consumed in the same transaction as the status change. When
    the booking has already left ``pending`` the token is still consumed and
    committed, then AlreadyProcessed is raised with the current status; the
    same answer comes back when a spent link is opened again. Unknown or
    expired tokens and action mismatches roll back without touching anything.
    """
    if url_action not in TOKEN_ACTIONS:
        raise InvalidAction()
    session = session or db.session

    with unit_of_work(session):
        booking_id, status, already = _apply_token(session, token, url_action)

    if already is not None:
        log_event(
            "EMAIL_ACTION_ALREADY_PROCESSED",
            entity="booking",
            entity_id=booking_id,
            metadata={"action": url_action, "current_status": already.current_status},
        )
        raise already

    # committed: notify first, audit second
    notify_status_update(session.get(Booking, booking_id), status)
    log_event(f"EMAIL_ACTION_{url_action.upper()}", entity="booking", entity_id=booking_id)
    return ActionOutcome(booking_id=booking_id, action=url_action, status=status)


def apply_admin_action(booking_id: int, action: str, actor_id: int = None, reason: str = None,
                       session=None) -> ActionOutcome:
    if action not in TRANSITIONS:
        raise InvalidAction()
    session = session or db.session

    with unit_of_work(session):
        status = transition(session, booking_id, action, reason=reason)

    notify_status_update(session.get(Booking, booking_id), status)
    log_event(
        f"ADMIN_BOOKING_{action.upper()}",
        user_id=actor_id,
        entity="booking",
        entity_id=booking_id,
        metadata={"reason": reason} if reason else None,
    )
    return ActionOutcome(booking_id=booking_id, action=action, status=status)


def cancel_own_booking(booking_id: int, user_id: int, reason: str = None, session=None) -> ActionOutcome:
    session = session or db.session

    booking = session.get(Booking, booking_id)
    # other people's bookings look missing
    if booking is None or booking.user_id != user_id:
        raise BookingNotFound()

    cutoff_hours = current_app.config.get("CANCEL_CUTOFF_HOURS", 12)
    if (booking.starts_at() - utcnow()).total_seconds() < cutoff_hours * 3600:
        raise CancellationWindowClosed(f"Cancellation not allowed within {cutoff_hours} hours of start")

    with unit_of_work(session):
        status = transition(session, booking_id, "cancel", reason=reason)

    notify_status_update(session.get(Booking, booking_id), status)
    log_event("BOOKING_CANCEL", user_id=user_id, entity="booking", entity_id=booking_id,
              metadata={"reason": reason} if reason else None)
    return ActionOutcome(booking_id=booking_id, action="cancel", status=status)
