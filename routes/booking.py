import json

from flask import Blueprint, request, jsonify, g

from models.booking import Booking
from services.actions import cancel_own_booking
from services.availability import Requester, reserve
from services.errors import InvalidBookingRequest
from services.notifications import notify_request_submitted
from utils.audit import log_event
from utils.auth_context import login_required

booking_bp = Blueprint("booking", __name__)


def _requester_from(data: dict) -> Requester:
    # A signed-in user always books as themselves; guest fields are ignored then
    user = getattr(g, "user", None)
    if user is not None:
        return Requester.registered(user.id)
    guest = data.get("guest") or {}
    if not guest:
        raise InvalidBookingRequest("Sign in or provide guest name and email")
    return Requester.guest(guest.get("name"), guest.get("email"))


def _form_payload():
    # multipart form: answers as a JSON field, document answers as files keyed by question id
    form = request.form
    try:
        answers = json.loads(form.get("answers") or "{}")
    except ValueError:
        raise InvalidBookingRequest("answers must be a JSON object keyed by question id")

    data = {
        "timeslot_id": form.get("timeslot_id", type=int),
        "purpose": form.get("purpose"),
        "answers": answers,
    }
    if form.get("guest_name") or form.get("guest_email"):
        data["guest"] = {"name": form.get("guest_name"), "email": form.get("guest_email")}
    return data, {key: storage for key, storage in request.files.items()}


# ---------- requesters: submit a booking request (registered or guest) ----------
@booking_bp.post("/bookings")
def create_booking():
    if request.mimetype == "multipart/form-data":
        data, documents = _form_payload()
    else:
        data, documents = request.get_json(silent=True) or {}, {}
    timeslot_id = data.get("timeslot_id")
    if not isinstance(timeslot_id, int) or isinstance(timeslot_id, bool):
        raise InvalidBookingRequest("timeslot_id required")

    answers = data.get("answers") or {}
    if not isinstance(answers, dict):
        raise InvalidBookingRequest("answers must be an object keyed by question id")

    requester = _requester_from(data)
    booking, tokens = reserve(timeslot_id, requester, purpose=data.get("purpose"), answers=answers,
                              documents=documents)

    log_event(
        "BOOKING_REQUEST",
        user_id=requester.user_id,
        entity="booking",
        entity_id=booking.id,
        metadata={"guest": requester.is_guest},
    )
    notify_request_submitted(booking, tokens)

    message = "Your booking request has been submitted successfully!"
    if requester.is_guest:
        message = "Your booking request has been submitted. You will receive an email once it is reviewed."
    return jsonify(success=True, message=message, id=booking.id, status=booking.status), 201


# ---------- requesters: own bookings ----------
@booking_bp.get("/bookings/me")
@login_required
def my_bookings():
    status = request.args.get("status")
    q = Booking.query.filter_by(user_id=g.user.id)
    if status:
        q = q.filter_by(status=status)

    rows = q.order_by(Booking.booking_date.desc(), Booking.start_time.desc()).all()
    out = []
    for b in rows:
        item = b.to_dict()
        item.update({
            "infrastructure_name": b.infrastructure.name,
            "purpose": b.purpose,
            "requested_at": b.requested_at.isoformat() if b.requested_at else None,
            "cancelled_at": b.cancelled_at.isoformat() if b.cancelled_at else None,
        })
        out.append(item)
    return jsonify(out), 200


@booking_bp.post("/bookings/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()[:255] or None

    outcome = cancel_own_booking(booking_id, g.user.id, reason=reason)
    return jsonify(success=True, message="Cancelled", status=outcome.status), 200
