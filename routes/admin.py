import json

from flask import Blueprint, jsonify, g, request

from models import db
from models.booking import BOOKING_STATUSES
from models.filter_question import FilterQuestion, QUESTION_TYPES
from models.infrastructure import Infrastructure
from security.rbac import require_roles
from services.actions import apply_admin_action
from services.availability import generate_timeslots, list_timeslots, withdraw_timeslots
from utils.audit import log_event
from utils.parsing import parse_date, parse_time

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

DATE_FILTERS = ("past", "today", "upcoming")


def _bad_request(message, **extra):
    return jsonify(success=False, message=message, **extra), 400


def _parse_int(value, field: str, default: int) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a whole number")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be a whole number")


# ---------- infrastructures & questions ----------
@admin_bp.post("/infrastructures")
@require_roles("ADMIN")
def create_infrastructure():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        return _bad_request("Infrastructure name required")
    if Infrastructure.query.filter_by(name=name).first():
        return jsonify(success=False, message="Infrastructure name already exists"), 409

    infra = Infrastructure(
        name=name,
        location=(data.get("location") or "").strip() or None,
        description=(data.get("description") or "").strip() or None,
    )
    db.session.add(infra)
    db.session.commit()

    log_event("INFRASTRUCTURE_CREATE", user_id=g.user.id, entity="infrastructure", entity_id=infra.id)
    return jsonify(infra.to_dict()), 201


# Inactive infrastructures disappear from the public listing and take no new requests;
# bookings already made are left as they are
def _set_active(infrastructure_id: int, active: bool):
    infra = db.session.get(Infrastructure, infrastructure_id)
    if infra is None:
        return jsonify(success=False, message="Infrastructure not found"), 404

    infra.is_active = active
    db.session.commit()

    action = "INFRASTRUCTURE_ACTIVATE" if active else "INFRASTRUCTURE_DEACTIVATE"
    log_event(action, user_id=g.user.id, entity="infrastructure", entity_id=infra.id)
    return jsonify(success=True, id=infra.id, is_active=infra.is_active), 200


@admin_bp.post("/infrastructures/<int:infrastructure_id>/deactivate")
@require_roles("ADMIN")
def deactivate_infrastructure(infrastructure_id: int):
    return _set_active(infrastructure_id, False)


@admin_bp.post("/infrastructures/<int:infrastructure_id>/activate")
@require_roles("ADMIN")
def activate_infrastructure(infrastructure_id: int):
    return _set_active(infrastructure_id, True)


@admin_bp.post("/infrastructures/<int:infrastructure_id>/questions")
@require_roles("ADMIN")
def add_question(infrastructure_id: int):
    data = request.get_json(silent=True) or {}
    text = (data.get("question_text") or "").strip()
    qtype = (data.get("question_type") or "text").strip().lower()
    options = data.get("options") or []

    if not text:
        return _bad_request("question_text required")
    if qtype not in QUESTION_TYPES:
        return _bad_request(f"question_type must be one of: {', '.join(QUESTION_TYPES)}")
    if qtype == "dropdown" and (not isinstance(options, list) or not options
                                or not all(isinstance(o, str) and o.strip() for o in options)):
        return _bad_request("dropdown questions need a non-empty list of options")
    try:
        sort_order = _parse_int(data.get("sort_order"), "sort_order", 0)
    except ValueError as exc:
        return _bad_request(str(exc))

    if db.session.get(Infrastructure, infrastructure_id) is None:
        return jsonify(success=False, message="Infrastructure not found"), 404

    question = FilterQuestion(
        infrastructure_id=infrastructure_id,
        question_text=text,
        question_type=qtype,
        is_required=bool(data.get("is_required")),
        options_json=json.dumps([o.strip() for o in options]) if qtype == "dropdown" else None,
        sort_order=sort_order,
    )
    db.session.add(question)
    db.session.commit()

    log_event("QUESTION_CREATE", user_id=g.user.id, entity="filter_question", entity_id=question.id)
    return jsonify(question.to_dict()), 201


# ---------- schedule ----------
@admin_bp.post("/infrastructures/<int:infrastructure_id>/timeslots")
@require_roles("ADMIN")
def create_timeslots(infrastructure_id: int):
    data = request.get_json(silent=True) or {}
    try:
        start_date = parse_date(data.get("start_date"), "start_date")
        end_date = parse_date(data.get("end_date") or data.get("start_date"), "end_date")
        day_start = parse_time(data.get("day_start"), "day_start")
        day_end = parse_time(data.get("day_end"), "day_end")
        slot_minutes = _parse_int(data.get("slot_minutes"), "slot_minutes", 60)
    except ValueError as exc:
        return _bad_request(str(exc))

    weekdays = data.get("weekdays")
    if weekdays is not None and (not isinstance(weekdays, list)
                                 or not all(isinstance(d, int) and 0 <= d <= 6 for d in weekdays)):
        return _bad_request("weekdays must be a list of integers 0 (Monday) to 6 (Sunday)")

    created = generate_timeslots(
        infrastructure_id, start_date, end_date, day_start, day_end, slot_minutes,
        weekdays=set(weekdays) if weekdays is not None else None,
    )

    log_event("TIMESLOTS_CREATE", user_id=g.user.id, entity="infrastructure", entity_id=infrastructure_id,
              metadata={"created": len(created)})
    return jsonify(success=True, created=len(created), ids=[s.id for s in created]), 201


@admin_bp.get("/infrastructures/<int:infrastructure_id>/timeslots")
@require_roles("ADMIN")
def admin_list_timeslots(infrastructure_id: int):
    statuses = [s.strip().lower() for s in request.args.getlist("status") if s.strip()]
    unknown = [s for s in statuses if s not in BOOKING_STATUSES]
    if unknown:
        return _bad_request("Unknown status filter", unknown=unknown)

    date_filter = request.args.get("when")
    if date_filter and date_filter not in DATE_FILTERS:
        return _bad_request(f"when must be one of: {', '.join(DATE_FILTERS)}")

    on_date = None
    if request.args.get("date"):
        try:
            on_date = parse_date(request.args["date"], "date")
        except ValueError as exc:
            return _bad_request(str(exc))

    rows = list_timeslots(infrastructure_id, statuses=statuses, on_date=on_date, date_filter=date_filter)
    out = []
    for b in rows:
        item = b.to_dict()
        item.update({
            "requester_name": b.requester_name,
            "requester_email": b.requester_email,
            "guest": b.is_guest,
            "purpose": b.purpose,
            "answers": {str(a.question_id): a.answer_text for a in b.answers},
        })
        out.append(item)
    return jsonify(out), 200


@admin_bp.post("/timeslots/withdraw")
@require_roles("ADMIN")
def withdraw():
    data = request.get_json(silent=True) or {}
    ids = data.get("ids")
    if not isinstance(ids, list) or not ids or not all(isinstance(i, int) for i in ids):
        return _bad_request("ids must be a non-empty list of timeslot ids")

    withdrawn, skipped = withdraw_timeslots(ids, reason=(data.get("reason") or "").strip() or None)

    log_event("TIMESLOTS_WITHDRAW", user_id=g.user.id, entity="timeslot",
              metadata={"withdrawn": withdrawn, "skipped": skipped})
    return jsonify(
        success=True,
        message=f"Successfully canceled {len(withdrawn)} timeslot(s)",
        withdrawn=withdrawn,
        skipped=skipped,
    ), 200


# ---------- decisions ----------
@admin_bp.post("/bookings/<int:booking_id>/<action>")
@require_roles("ADMIN")
def decide_booking(booking_id: int, action: str):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()[:255] or None

    outcome = apply_admin_action(booking_id, action, actor_id=g.user.id, reason=reason)
    return jsonify(success=True, message=f"Booking {outcome.status}", status=outcome.status), 200
