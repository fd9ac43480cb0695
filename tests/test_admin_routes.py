from datetime import timedelta

from models import db
from models.booking import Booking, AVAILABLE, PENDING, APPROVED, REJECTED, CANCELLED
from models.filter_question import FilterQuestion
from utils.clock import utcnow


def test_admin_endpoints_need_admin_role(app, user_client, infrastructure):
    anonymous = app.test_client()
    assert anonymous.post("/admin/infrastructures", json={"name": "X"}).status_code == 401
    assert user_client.post("/admin/infrastructures", json={"name": "X"}).status_code == 403


def test_set_up_infrastructure_and_schedule(admin_client):
    created = admin_client.post("/admin/infrastructures", json={"name": "Cryo-EM", "location": "B1"})
    assert created.status_code == 201
    infra_id = created.get_json()["id"]
    assert admin_client.post("/admin/infrastructures", json={"name": "Cryo-EM"}).status_code == 409

    q = admin_client.post(f"/admin/infrastructures/{infra_id}/questions", json={
        "question_text": "Grid type",
        "question_type": "dropdown",
        "options": ["Quantifoil", "C-flat"],
        "is_required": True,
    })
    assert q.status_code == 201
    assert db.session.get(FilterQuestion, q.get_json()["id"]).options == ["Quantifoil", "C-flat"]
    bad = admin_client.post(f"/admin/infrastructures/{infra_id}/questions",
                            json={"question_text": "Grid", "question_type": "dropdown"})
    assert bad.status_code == 400

    day = (utcnow().date() + timedelta(days=10)).isoformat()
    gen = admin_client.post(f"/admin/infrastructures/{infra_id}/timeslots", json={
        "start_date": day, "day_start": "08:00", "day_end": "12:00", "slot_minutes": 120,
    })
    assert gen.status_code == 201
    assert gen.get_json()["created"] == 2

    again = admin_client.post(f"/admin/infrastructures/{infra_id}/timeslots", json={
        "start_date": day, "day_start": "08:00", "day_end": "12:00", "slot_minutes": 120,
    })
    assert again.get_json()["created"] == 0

    bad_time = admin_client.post(f"/admin/infrastructures/{infra_id}/timeslots",
                                 json={"start_date": day, "day_start": "8am", "day_end": "12:00"})
    assert bad_time.status_code == 400


def test_admin_listing_filters(admin_client, infrastructure, make_slot, user):
    make_slot(status=PENDING, user_id=user.id, purpose="training")
    make_slot(days_ahead=4)

    pending = admin_client.get(f"/admin/infrastructures/{infrastructure.id}/timeslots?status=pending").get_json()
    assert len(pending) == 1
    assert pending[0]["requester_email"] == "alice@example.com"
    assert pending[0]["purpose"] == "training"

    both = admin_client.get(
        f"/admin/infrastructures/{infrastructure.id}/timeslots?status=pending&status=available"
    ).get_json()
    assert len(both) == 2

    assert admin_client.get(f"/admin/infrastructures/{infrastructure.id}/timeslots?status=lost").status_code == 400
    assert admin_client.get(f"/admin/infrastructures/{infrastructure.id}/timeslots?when=soon").status_code == 400


def test_withdraw_timeslots(admin_client, make_slot, user):
    free = make_slot()
    taken = make_slot(days_ahead=4, status=PENDING, user_id=user.id)

    resp = admin_client.post("/admin/timeslots/withdraw", json={"ids": [free.id, taken.id]})

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["withdrawn"] == [free.id]
    assert body["skipped"] == [taken.id]
    assert db.session.get(Booking, free.id).status == CANCELLED
    assert db.session.get(Booking, taken.id).status == PENDING
    assert admin_client.post("/admin/timeslots/withdraw", json={"ids": []}).status_code == 400


def test_admin_decisions(admin_client, make_slot, user, notifier):
    to_approve = make_slot(status=PENDING, user_id=user.id)
    to_reject = make_slot(days_ahead=4, status=PENDING, user_id=user.id)

    approved = admin_client.post(f"/admin/bookings/{to_approve.id}/approve")
    assert approved.status_code == 200
    assert approved.get_json()["status"] == APPROVED

    rejected = admin_client.post(f"/admin/bookings/{to_reject.id}/reject", json={"reason": "no operator"})
    assert rejected.status_code == 200
    assert db.session.get(Booking, to_reject.id).status == REJECTED
    assert Booking.query.filter_by(status=AVAILABLE).count() == 1

    late = admin_client.post(f"/admin/bookings/{to_reject.id}/approve")
    assert late.status_code == 400
    assert late.get_json()["currentStatus"] == REJECTED

    cancelled = admin_client.post(f"/admin/bookings/{to_approve.id}/cancel", json={"reason": "maintenance"})
    assert cancelled.status_code == 200
    assert db.session.get(Booking, to_approve.id).status == CANCELLED

    assert notifier.status_updates == [
        (to_approve.id, APPROVED),
        (to_reject.id, REJECTED),
        (to_approve.id, CANCELLED),
    ]


def test_admin_unknown_action_and_booking(admin_client, make_slot):
    slot = make_slot(status=PENDING)
    resp = admin_client.post(f"/admin/bookings/{slot.id}/escalate")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InvalidAction"
    assert admin_client.post("/admin/bookings/4040/approve").status_code == 404


def test_whole_number_fields_are_validated(admin_client, infrastructure):
    questions_url = f"/admin/infrastructures/{infrastructure.id}/questions"
    bad_order = admin_client.post(questions_url, json={"question_text": "Q", "sort_order": "first"})
    assert bad_order.status_code == 400
    assert bad_order.get_json()["message"] == "sort_order must be a whole number"
    assert FilterQuestion.query.count() == 0

    ok = admin_client.post(questions_url, json={"question_text": "Q", "sort_order": "2"})
    assert ok.status_code == 201
    assert db.session.get(FilterQuestion, ok.get_json()["id"]).sort_order == 2

    day = (utcnow().date() + timedelta(days=10)).isoformat()
    for slot_minutes in (["60"], {"minutes": 60}, "hour", True):
        resp = admin_client.post(f"/admin/infrastructures/{infrastructure.id}/timeslots", json={
            "start_date": day, "day_start": "08:00", "day_end": "12:00", "slot_minutes": slot_minutes,
        })
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "slot_minutes must be a whole number"
    assert Booking.query.count() == 0


def test_deactivated_infrastructure_takes_no_requests(app, admin_client, infrastructure, make_slot):
    slot = make_slot()
    public = app.test_client()
    guest = {"name": "Gus", "email": "gus@example.com"}

    off = admin_client.post(f"/admin/infrastructures/{infrastructure.id}/deactivate")
    assert off.status_code == 200
    assert off.get_json()["is_active"] is False

    assert public.get("/infrastructures").get_json() == []
    assert public.get(f"/infrastructures/{infrastructure.id}/timeslots").status_code == 404
    refused = public.post("/bookings", json={"timeslot_id": slot.id, "guest": guest})
    assert refused.status_code == 409
    assert refused.get_json()["error"] == "SlotNoLongerAvailable"
    assert db.session.get(Booking, slot.id).status == AVAILABLE

    assert admin_client.post(f"/admin/infrastructures/{infrastructure.id}/activate").status_code == 200
    assert public.post("/bookings", json={"timeslot_id": slot.id, "guest": guest}).status_code == 201
    assert admin_client.post("/admin/infrastructures/999/deactivate").status_code == 404
