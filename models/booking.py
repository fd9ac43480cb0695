from datetime import datetime
from utils.clock import utcnow
from models.db import db

AVAILABLE = "available"
PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
CANCELLED = "cancelled"

BOOKING_STATUSES = (AVAILABLE, PENDING, APPROVED, REJECTED, CANCELLED)
# statuses that occupy a (infrastructure, date, start, end) key
OPEN_STATUSES = (AVAILABLE, PENDING, APPROVED)
TERMINAL_STATUSES = (REJECTED, CANCELLED)

_OPEN_SLOT_WHERE = db.text("status IN ('available', 'pending', 'approved')")


class Booking(db.Model):
    """One timeslot of an infrastructure, and the requester's claim on it once reserved.

    Rejected and cancelled rows are kept as history; releasing a slot inserts
    a fresh ``available`` row for the same key.
    """
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    infrastructure_id = db.Column(db.Integer, db.ForeignKey("infrastructures.id"), nullable=False, index=True)
    booking_date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=AVAILABLE, index=True)

    # requester: registered user OR guest, never both
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    guest_name = db.Column(db.String(120), nullable=True)
    guest_email = db.Column(db.String(255), nullable=True)

    purpose = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    requested_at = db.Column(db.DateTime, nullable=True)
    decided_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    infrastructure = db.relationship("Infrastructure")
    user = db.relationship("User")
    answers = db.relationship("BookingAnswer", back_populates="booking", cascade="all, delete-orphan")

    __table_args__ = (
        # Exclusive reservation: one open row per infrastructure timeslot
        db.Index(
            "uq_bookings_open_slot",
            "infrastructure_id", "booking_date", "start_time", "end_time",
            unique=True,
            sqlite_where=_OPEN_SLOT_WHERE,
            postgresql_where=_OPEN_SLOT_WHERE,
        ),
        db.CheckConstraint(
            "user_id IS NULL OR guest_email IS NULL",
            name="ck_bookings_single_requester",
        ),
        db.CheckConstraint(
            "status IN ('available', 'pending', 'approved', 'rejected', 'cancelled')",
            name="ck_bookings_status",
        ),
    )

    @property
    def is_guest(self) -> bool:
        return self.guest_email is not None

    @property
    def requester_email(self):
        if self.guest_email:
            return self.guest_email
        return self.user.email if self.user else None

    @property
    def requester_name(self):
        if self.guest_email:
            return self.guest_name
        if self.user:
            return self.user.full_name or self.user.email
        return None

    def starts_at(self) -> datetime:
        return datetime.combine(self.booking_date, self.start_time)

    def to_dict(self):
        return {
            "id": self.id,
            "infrastructure_id": self.infrastructure_id,
            "booking_date": self.booking_date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "status": self.status,
        }


class BookingAnswer(db.Model):
    __tablename__ = "booking_answers"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey("filter_questions.id"), nullable=False)
    # document answers hold the stored document reference
    answer_text = db.Column(db.Text, nullable=True)

    booking = db.relationship("Booking", back_populates="answers")
    question = db.relationship("FilterQuestion")


class GuestDailyClaim(db.Model):
    """Holds a guest email's single outstanding request for one calendar day."""
    __tablename__ = "guest_daily_claims"

    id = db.Column(db.Integer, primary_key=True)
    email_normalized = db.Column(db.String(255), nullable=False)
    claim_date = db.Column(db.Date, nullable=False)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)

    __table_args__ = (
        db.UniqueConstraint("email_normalized", "claim_date", name="uq_guest_claim_per_day"),
    )
