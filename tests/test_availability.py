import types
from datetime import date, time, timedelta

import pytest

from conftest import run_concurrently
from models import db
from models.booking import Booking, BookingAnswer, GuestDailyClaim, AVAILABLE, PENDING, APPROVED, CANCELLED
from models.email_action_token import EmailActionToken
from services.actions import apply_admin_action
from services.availability import (
    Requester,
    generate_timeslots,
    iter_available,
    list_timeslots,
    reserve,
    validate_answers,
    withdraw_timeslots,
)
from services.errors import (
    BookingNotFound,
    GuestLimitReached,
    InvalidBookingRequest,
    SlotNoLongerAvailable,
)
from utils.clock import utcnow


def test_iter_available_is_lazy_and_ordered(make_slot, infrastructure):
    later = make_slot(days_ahead=5, start=time(8), end=time(9))
    early_afternoon = make_slot(days_ahead=2, start=time(14), end=time(15))
    early_morning = make_slot(days_ahead=2, start=time(9), end=time(10))
    make_slot(days_ahead=2, start=time(11), end=time(12), status=PENDING)
    make_slot(days_ahead=-1, start=time(9), end=time(10))

    listing = iter_available(infrastructure.id)
    assert isinstance(listing, types.GeneratorType)
    assert [b.id for b in listing] == [early_morning.id, early_afternoon.id, later.id]
    # restartable: a new call runs a new query
    assert len(list(iter_available(infrastructure.id))) == 3


def test_iter_available_date_range(make_slot, infrastructure):
    make_slot(days_ahead=1)
    inside = make_slot(days_ahead=3)
    make_slot(days_ahead=6)
    today = utcnow().date()

    got = iter_available(infrastructure.id, today + timedelta(days=2), today + timedelta(days=4))
    assert [b.id for b in got] == [inside.id]


def test_reserve_claims_slot_and_issues_tokens(make_slot, user, questions):
    slot = make_slot()
    answers = {str(questions[0].id): "PRJ-7", questions[1].id: 3, str(questions[2].id): "40x"}

    booking, tokens = reserve(slot.id, Requester.registered(user.id), purpose="imaging", answers=answers)

    assert booking.status == PENDING
    assert booking.user_id == user.id
    assert booking.guest_email is None
    assert booking.purpose == "imaging"
    assert booking.requested_at is not None
    assert {a.question_id: a.answer_text for a in BookingAnswer.query.all()} == {
        questions[0].id: "PRJ-7",
        questions[1].id: "3",
        questions[2].id: "40x",
    }
    assert set(tokens) == {"approve", "reject"}
    assert EmailActionToken.query.filter_by(booking_id=slot.id).count() == 2
    assert list(iter_available(slot.infrastructure_id)) == []


def test_reserve_taken_slot(make_slot, user, make_user):
    slot = make_slot()
    reserve(slot.id, Requester.registered(user.id))
    other = make_user("bob@example.com", "USER")

    with pytest.raises(SlotNoLongerAvailable):
        reserve(slot.id, Requester.registered(other.id))
    assert db.session.get(Booking, slot.id).user_id == user.id


def test_reserve_withdrawn_or_past_slot(make_slot, user):
    withdrawn = make_slot(status=CANCELLED)
    past = make_slot(days_ahead=-2)

    with pytest.raises(SlotNoLongerAvailable):
        reserve(withdrawn.id, Requester.registered(user.id))
    with pytest.raises(SlotNoLongerAvailable):
        reserve(past.id, Requester.registered(user.id))
    assert db.session.get(Booking, past.id).status == AVAILABLE


def test_reserve_unknown_timeslot(app, user):
    with pytest.raises(BookingNotFound):
        reserve(9999, Requester.registered(user.id))


def test_invalid_answers_leave_slot_untouched(make_slot, user, questions):
    slot = make_slot()

    with pytest.raises(InvalidBookingRequest) as info:
        reserve(slot.id, Requester.registered(user.id), answers={questions[1].id: "lots", questions[2].id: "100x"})

    details = info.value.extra["details"]
    assert "An answer is required for: Project code" in details
    assert "A number is expected for: Samples" in details
    assert "'100x' is not a valid choice for: Objective" in details
    assert db.session.get(Booking, slot.id).status == AVAILABLE


def test_validate_answers_rejects_unknown_questions(questions):
    with pytest.raises(InvalidBookingRequest) as info:
        validate_answers(questions, {questions[0].id: "PRJ", "999": "x"})
    assert info.value.extra["details"] == ["Unknown question id(s): 999"]


def test_validate_answers_skips_blank_optional(questions):
    rows = validate_answers(questions, {questions[0].id: "  PRJ  ", questions[1].id: ""})
    assert rows == [(questions[0].id, "PRJ")]


@pytest.mark.parametrize("name, email", [("", "g@example.com"), ("Gus", ""), ("Gus", "not-an-email")])
def test_guest_requester_validation(name, email):
    with pytest.raises(InvalidBookingRequest):
        Requester.guest(name, email)


def test_guest_one_request_per_day(make_slot):
    first, second = make_slot(start=time(9), end=time(10)), make_slot(start=time(10), end=time(11))

    reserve(first.id, Requester.guest("Gus", "Gus@Example.com"))
    with pytest.raises(GuestLimitReached):
        reserve(second.id, Requester.guest("Gus", "gus@example.com "))

    assert db.session.get(Booking, first.id).status == PENDING
    assert db.session.get(Booking, second.id).status == AVAILABLE
    assert EmailActionToken.query.filter_by(booking_id=second.id).count() == 0
    assert GuestDailyClaim.query.one().booking_id == first.id


def test_guest_can_request_again_after_rejection(make_slot):
    first, second = make_slot(start=time(9), end=time(10)), make_slot(start=time(10), end=time(11))
    reserve(first.id, Requester.guest("Gus", "gus@example.com"))
    apply_admin_action(first.id, "reject")

    booking, _ = reserve(second.id, Requester.guest("Gus", "gus@example.com"))
    assert booking.status == PENDING


def test_guest_bookings_can_be_disabled(app, make_slot):
    app.config["GUEST_BOOKINGS_ENABLED"] = False
    slot = make_slot()
    with pytest.raises(InvalidBookingRequest):
        reserve(slot.id, Requester.guest("Gus", "gus@example.com"))


def test_concurrent_reserve_has_one_winner(app, make_slot, make_user):
    slot = make_slot()
    slot_id = slot.id
    user_ids = [make_user(f"user{i}@example.com", "USER").id for i in range(6)]

    results = run_concurrently(app, lambda i: reserve(slot_id, Requester.registered(user_ids[i])), 6)

    winners = [r for r in results if isinstance(r, tuple)]
    losers = [r for r in results if not isinstance(r, tuple)]
    assert len(winners) == 1
    assert all(isinstance(r, SlotNoLongerAvailable) for r in losers), losers
    assert db.session.get(Booking, slot_id).user_id in user_ids
    assert EmailActionToken.query.count() == 2


def test_concurrent_guest_requests_respect_daily_limit(app, make_slot):
    slot_ids = [make_slot(start=time(8 + i), end=time(9 + i)).id for i in range(4)]

    results = run_concurrently(
        app, lambda i: reserve(slot_ids[i], Requester.guest("Gus", "gus@example.com")), 4
    )

    assert sum(isinstance(r, tuple) for r in results) == 1
    assert all(isinstance(r, GuestLimitReached) for r in results if not isinstance(r, tuple)), results
    assert Booking.query.filter_by(status=PENDING).count() == 1


def test_generate_timeslots_is_idempotent(infrastructure):
    start = utcnow().date() + timedelta(days=7)
    # a Monday-to-Wednesday week starting on the next Monday
    monday = start + timedelta(days=(7 - start.weekday()) % 7)

    created = generate_timeslots(infrastructure.id, monday, monday + timedelta(days=2),
                                 time(9), time(12), 60, weekdays={0, 2})
    assert len(created) == 6
    assert {s.booking_date for s in created} == {monday, monday + timedelta(days=2)}
    assert sorted({s.start_time for s in created}) == [time(9), time(10), time(11)]

    again = generate_timeslots(infrastructure.id, monday, monday + timedelta(days=2),
                               time(9), time(12), 60, weekdays={0, 2})
    assert again == []
    assert Booking.query.count() == 6


def test_generate_timeslots_rejects_bad_ranges(infrastructure):
    day = date(2031, 1, 6)
    with pytest.raises(InvalidBookingRequest):
        generate_timeslots(infrastructure.id, day, day - timedelta(days=1), time(9), time(10), 30)
    with pytest.raises(InvalidBookingRequest):
        generate_timeslots(infrastructure.id, day, day, time(10), time(9), 30)
    with pytest.raises(InvalidBookingRequest):
        generate_timeslots(infrastructure.id, day, day, time(9), time(10), 0)
    with pytest.raises(BookingNotFound):
        generate_timeslots(777, day, day, time(9), time(10), 30)


def test_withdraw_only_touches_available(make_slot, user):
    free = make_slot(start=time(9), end=time(10))
    taken = make_slot(start=time(10), end=time(11), status=APPROVED, user_id=user.id)

    withdrawn, skipped = withdraw_timeslots([free.id, taken.id, 555], reason="maintenance")

    assert withdrawn == [free.id]
    assert skipped == [taken.id, 555]
    assert db.session.get(Booking, free.id).status == CANCELLED
    assert db.session.get(Booking, taken.id).status == APPROVED
    assert list(iter_available(free.infrastructure_id)) == []


def test_list_timeslots_filters(make_slot, infrastructure, user):
    make_slot(days_ahead=-3)
    upcoming_pending = make_slot(days_ahead=4, status=PENDING, user_id=user.id)
    make_slot(days_ahead=4, start=time(11), end=time(12))

    assert [b.id for b in list_timeslots(infrastructure.id, statuses=[PENDING])] == [upcoming_pending.id]
    assert len(list_timeslots(infrastructure.id, date_filter="past")) == 1
    assert len(list_timeslots(infrastructure.id, date_filter="upcoming")) == 2
    assert len(list_timeslots(infrastructure.id, on_date=upcoming_pending.booking_date)) == 2
