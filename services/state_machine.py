from sqlalchemy import delete, select, update

from models.booking import (
    Booking,
    GuestDailyClaim,
    PENDING,
    APPROVED,
    REJECTED,
    CANCELLED,
)
from services.availability import release_timeslot
from services.errors import AlreadyProcessed, BookingNotFound, InvalidAction
from utils.clock import utcnow

# action -> (allowed source statuses, target status)
TRANSITIONS = {
    "approve": ((PENDING,), APPROVED),
    "reject": ((PENDING,), REJECTED),
    "cancel": ((PENDING, APPROVED), CANCELLED),
}

# actions an emailed link may carry
TOKEN_ACTIONS = ("approve", "reject")

RELEASING_STATUSES = (REJECTED, CANCELLED)


def transition(session, booking_id: int, action: str, reason: str = None) -> str:
    """
    Moves a booking to the status ``action`` leads to and returns it.

    The status check and the write are one conditional UPDATE, so two
    competing transitions on the same booking cannot both succeed: the loser
    gets AlreadyProcessed carrying whatever status the winner left behind.
    Rejection and cancellation put the timeslot back on offer in the same
    transaction. Must run inside the caller's unit of work.
    """
    if action not in TRANSITIONS:
        raise InvalidAction()
    sources, target = TRANSITIONS[action]

    now = utcnow()
    values = {"status": target, "decided_at": now}
    if target == CANCELLED:
        values.update(cancelled_at=now, cancel_reason=reason)

    result = session.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status.in_(sources))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current = session.scalar(select(Booking.status).where(Booking.id == booking_id))
        if current is None:
            raise BookingNotFound()
        raise AlreadyProcessed(current)

    booking = session.get(Booking, booking_id, populate_existing=True)

    # leaving pending ends the guest's outstanding request for the day
    session.execute(
        delete(GuestDailyClaim)
        .where(GuestDailyClaim.booking_id == booking_id)
        .execution_options(synchronize_session=False)
    )

    if target in RELEASING_STATUSES:
        release_timeslot(session, booking)

    return target
