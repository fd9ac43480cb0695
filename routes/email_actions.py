from flask import Blueprint, current_app, jsonify

from services.actions import execute
from services.errors import BookingError

email_actions_bp = Blueprint("email_actions", __name__, url_prefix="/email-actions")


# Approve/reject links sent to administrators by email; the token is the only credential
@email_actions_bp.get("/<action>/<token>")
def process_email_action(action: str, token: str):
    try:
        outcome = execute(token, action)
    except BookingError:
        raise
    except Exception:
        current_app.logger.exception("Error processing email action")
        return jsonify(success=False, message="Error processing the action"), 500

    verb = "approved" if outcome.action == "approve" else "rejected"
    return jsonify(
        success=True,
        message=f"Booking {verb} successfully",
        action=outcome.action,
        status=outcome.status,
    ), 200
