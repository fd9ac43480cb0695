from flask import Blueprint, request, jsonify

from models import db
from models.infrastructure import Infrastructure
from services.availability import iter_available
from utils.parsing import parse_date

infrastructure_bp = Blueprint("infrastructure", __name__, url_prefix="/infrastructures")


def _active_or_404(infrastructure_id: int):
    infra = db.session.get(Infrastructure, infrastructure_id)
    if infra is None or not infra.is_active:
        return None
    return infra


@infrastructure_bp.get("")
def list_infrastructures():
    rows = Infrastructure.query.filter_by(is_active=True).order_by(Infrastructure.name.asc()).all()
    return jsonify([i.to_dict() for i in rows]), 200


@infrastructure_bp.get("/<int:infrastructure_id>/questions")
def list_questions(infrastructure_id: int):
    infra = _active_or_404(infrastructure_id)
    if infra is None:
        return jsonify(success=False, message="Infrastructure not found"), 404
    return jsonify([q.to_dict() for q in infra.questions]), 200


# Open to guests: the booking page lists slots before anyone signs in
@infrastructure_bp.get("/<int:infrastructure_id>/timeslots")
def list_available_timeslots(infrastructure_id: int):
    infra = _active_or_404(infrastructure_id)
    if infra is None:
        return jsonify(success=False, message="Infrastructure not found"), 404

    try:
        start = parse_date(request.args["start"], "start") if request.args.get("start") else None
        end = parse_date(request.args["end"], "end") if request.args.get("end") else None
    except ValueError as exc:
        return jsonify(success=False, message=str(exc)), 400

    return jsonify([slot.to_dict() for slot in iter_available(infra.id, start, end)]), 200
