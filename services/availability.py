import re
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from werkzeug.datastructures import FileStorage

from models import db
from models.booking import (
    Booking,
    BookingAnswer,
    GuestDailyClaim,
    AVAILABLE,
    PENDING,
    CANCELLED,
    OPEN_STATUSES,
)
from models.infrastructure import Infrastructure
from security.action_tokens import issue_action_tokens
from services.errors import (
    BookingNotFound,
    GuestLimitReached,
    InvalidBookingRequest,
    SlotNoLongerAvailable,
)
from services.transaction import unit_of_work
from utils.clock import utcnow
from utils.uploads import discard_documents, has_content, store_document

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MAX_SCHEDULE_DAYS = 366


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


@dataclass(frozen=True)
class Requester:
    """Who is asking for a timeslot: a registered user or a guest, never both."""
    user_id: int = None
    guest_name: str = None
    guest_email: str = None

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @classmethod
    def registered(cls, user_id: int) -> "Requester":
        return cls(user_id=user_id)

    @classmethod
    def guest(cls, name: str, email: str) -> "Requester":
        name = (name or "").strip()
        email = (email or "").strip()
        if not name:
            raise InvalidBookingRequest("Please enter your name")
        if not email:
            raise InvalidBookingRequest("Please enter your email address")
        if len(email) > 255 or not EMAIL_RE.match(email):
            raise InvalidBookingRequest("Please enter a valid email address")
        return cls(guest_name=name[:120], guest_email=email)


# ---------- listing ----------

def iter_available(infrastructure_id: int, start_date=None, end_date=None, session=None):
    """
    Lazily yields the reservable timeslots of an infrastructure, earliest first.

    Starts at today unless ``start_date`` says otherwise. Rows are fetched in
    batches; every call runs a fresh query, so calling again sees reservations
    and releases committed in between.
    """
    session = session or db.session
    first_day = start_date or utcnow().date()

    stmt = (
        select(Booking)
        .where(
            Booking.infrastructure_id == infrastructure_id,
            Booking.status == AVAILABLE,
            Booking.booking_date >= first_day,
        )
        .order_by(Booking.booking_date, Booking.start_time, Booking.id)
        .execution_options(yield_per=100)
    )
    if end_date is not None:
        stmt = stmt.where(Booking.booking_date <= end_date)

    for booking in session.scalars(stmt):
        yield booking


def list_timeslots(infrastructure_id: int, statuses=None, on_date=None, date_filter=None, session=None):
    # admin view: every status, newest date first
    session = session or db.session
    today = utcnow().date()

    stmt = select(Booking).where(Booking.infrastructure_id == infrastructure_id)
    if statuses:
        stmt = stmt.where(Booking.status.in_(statuses))
    if on_date is not None:
        stmt = stmt.where(Booking.booking_date == on_date)
    if date_filter == "past":
        stmt = stmt.where(Booking.booking_date < today)
    elif date_filter == "today":
        stmt = stmt.where(Booking.booking_date == today)
    elif date_filter == "upcoming":
        stmt = stmt.where(Booking.booking_date > today)

    stmt = stmt.order_by(Booking.booking_date.desc(), Booking.start_time.asc()).limit(500)
    return list(session.scalars(stmt))


# ---------- answers ----------

def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_answers(questions, answers: dict, documents: dict = None) -> list:
    """
    Checks the requester's answers against the infrastructure's questions.

    ``documents`` maps question id to an uploaded file; document questions
    are answered only through it. Returns [(question_id, answer), ...] where
    the answer is text, or the upload itself for document questions. Raises
    InvalidBookingRequest listing every problem at once.
    """
    given = {str(k): v for k, v in (answers or {}).items()}
    uploads = {str(k): v for k, v in (documents or {}).items()}
    known = {str(q.id) for q in questions}
    document_ids = {str(q.id) for q in questions if q.question_type == "document"}
    errors = []
    rows = []

    unknown = sorted(set(given) - known)
    if unknown:
        errors.append(f"Unknown question id(s): {', '.join(unknown)}")
    stray = sorted(set(uploads) - document_ids)
    if stray:
        errors.append(f"Files are only accepted for document questions, not: {', '.join(stray)}")

    for q in questions:
        if q.question_type == "document":
            if not _is_blank(given.get(str(q.id))):
                errors.append(f"A file upload is expected for: {q.question_text}")
                continue
            upload = uploads.get(str(q.id))
            if has_content(upload):
                rows.append((q.id, upload))
            elif q.is_required:
                errors.append(f"A document is required for: {q.question_text}")
            continue

        value = given.get(str(q.id))
        if _is_blank(value):
            if q.is_required:
                errors.append(f"An answer is required for: {q.question_text}")
            continue

        if q.question_type == "number":
            if isinstance(value, bool):
                errors.append(f"A number is expected for: {q.question_text}")
                continue
            try:
                float(value)
            except (TypeError, ValueError):
                errors.append(f"A number is expected for: {q.question_text}")
                continue
            rows.append((q.id, str(value).strip()))
        elif not isinstance(value, str):
            errors.append(f"A text answer is expected for: {q.question_text}")
        elif q.question_type == "dropdown" and q.options and value not in q.options:
            errors.append(f"'{value}' is not a valid choice for: {q.question_text}")
        else:
            rows.append((q.id, value.strip()))

    if errors:
        raise InvalidBookingRequest("Some answers are missing or invalid", details=errors)
    return rows


# ---------- reservation ----------

def _claim_guest_day(session, requester: Requester, booking_id: int, day) -> None:
    session.add(GuestDailyClaim(
        email_normalized=normalize_email(requester.guest_email),
        claim_date=day,
        booking_id=booking_id,
    ))
    try:
        session.flush()
    except IntegrityError:
        raise GuestLimitReached()


def reserve(timeslot_id: int, requester: Requester, purpose: str = None, answers: dict = None,
            documents: dict = None, session=None):
    """
    Claims an available timeslot for the requester (available -> pending).

    The claim is a single conditional UPDATE on the status, so of several
    concurrent callers exactly one wins and the rest get
    SlotNoLongerAvailable. The guest daily claim, the answers and the
    approve/reject tokens are written in the same transaction. Uploaded
    documents are saved only once the claim has succeeded and are removed
    again if the transaction does not commit.

    Returns (booking, tokens); tokens maps action to raw token value.
    """
    session = session or db.session

    slot = session.get(Booking, timeslot_id)
    if slot is None:
        raise BookingNotFound("Timeslot not found")

    infrastructure = slot.infrastructure
    if not infrastructure.is_active:
        raise SlotNoLongerAvailable("This infrastructure is not accepting bookings")
    if slot.starts_at() <= utcnow():
        raise SlotNoLongerAvailable("Cannot book past or started timeslots")
    if requester.is_guest and not current_app.config.get("GUEST_BOOKINGS_ENABLED", True):
        raise InvalidBookingRequest("Guest bookings are disabled")

    answer_rows = validate_answers(infrastructure.questions, answers, documents)
    now = utcnow()
    stored = []

    try:
        with unit_of_work(session):
            result = session.execute(
                update(Booking)
                .where(Booking.id == timeslot_id, Booking.status == AVAILABLE)
                .values(
                    status=PENDING,
                    user_id=requester.user_id,
                    guest_name=requester.guest_name,
                    guest_email=requester.guest_email,
                    purpose=(purpose or "").strip() or None,
                    requested_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise SlotNoLongerAvailable()

            if requester.is_guest:
                _claim_guest_day(session, requester, timeslot_id, now.date())

            for question_id, answer in answer_rows:
                if isinstance(answer, FileStorage):
                    answer = store_document(answer, timeslot_id, question_id)
                    stored.append(answer)
                session.add(BookingAnswer(booking_id=timeslot_id, question_id=question_id, answer_text=answer))

            tokens = issue_action_tokens(session, timeslot_id)
    except Exception:
        discard_documents(stored)
        raise

    booking = session.get(Booking, timeslot_id, populate_existing=True)
    return booking, tokens


def release_timeslot(session, booking: Booking) -> Booking:
    """Puts the booking's window back on offer as a fresh available row."""
    replacement = Booking(
        infrastructure_id=booking.infrastructure_id,
        booking_date=booking.booking_date,
        start_time=booking.start_time,
        end_time=booking.end_time,
        status=AVAILABLE,
    )
    session.add(replacement)
    session.flush()
    return replacement


# ---------- schedule management ----------

def generate_timeslots(infrastructure_id: int, start_date, end_date, day_start, day_end,
                       slot_minutes: int, weekdays=None, session=None) -> list:
    """
    Creates available timeslots of ``slot_minutes`` between ``day_start`` and
    ``day_end`` on every matching day. Windows that already have an open
    timeslot are skipped, so running it twice changes nothing.
    """
    session = session or db.session

    if session.get(Infrastructure, infrastructure_id) is None:
        raise BookingNotFound("Infrastructure not found")
    if end_date < start_date:
        raise InvalidBookingRequest("end_date must not be before start_date")
    if (end_date - start_date).days >= MAX_SCHEDULE_DAYS:
        raise InvalidBookingRequest(f"Schedules are limited to {MAX_SCHEDULE_DAYS} days")
    if day_end <= day_start:
        raise InvalidBookingRequest("day_end must be after day_start")
    if not slot_minutes or slot_minutes <= 0:
        raise InvalidBookingRequest("slot_minutes must be positive")

    step = timedelta(minutes=slot_minutes)
    existing = {
        (b.booking_date, b.start_time, b.end_time)
        for b in session.scalars(
            select(Booking).where(
                Booking.infrastructure_id == infrastructure_id,
                Booking.status.in_(OPEN_STATUSES),
                Booking.booking_date >= start_date,
                Booking.booking_date <= end_date,
            )
        )
    }

    created = []
    with unit_of_work(session):
        day = start_date
        while day <= end_date:
            if weekdays is None or day.weekday() in weekdays:
                cursor = datetime.combine(day, day_start)
                limit = datetime.combine(day, day_end)
                while cursor + step <= limit:
                    key = (day, cursor.time(), (cursor + step).time())
                    if key not in existing:
                        slot = Booking(
                            infrastructure_id=infrastructure_id,
                            booking_date=day,
                            start_time=key[1],
                            end_time=key[2],
                            status=AVAILABLE,
                        )
                        session.add(slot)
                        created.append(slot)
                    cursor += step
            day += timedelta(days=1)
        session.flush()

    return created


def withdraw_timeslots(timeslot_ids, reason: str = None, session=None):
    """
    Takes unreserved timeslots off the schedule (available -> cancelled).
    Anything already requested is left alone and reported as skipped.
    """
    session = session or db.session
    withdrawn, skipped = [], []
    now = utcnow()

    with unit_of_work(session):
        for timeslot_id in timeslot_ids:
            result = session.execute(
                update(Booking)
                .where(Booking.id == timeslot_id, Booking.status == AVAILABLE)
                .values(status=CANCELLED, cancelled_at=now, cancel_reason=reason)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                withdrawn.append(timeslot_id)
            else:
                skipped.append(timeslot_id)

    return withdrawn, skipped
