from utils.clock import utcnow
from models.db import db

TOKEN_ACTIONS = ("approve", "reject")


class EmailActionToken(db.Model):
    __tablename__ = "email_action_tokens"

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(128), unique=True, nullable=False, index=True)

    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    action = db.Column(db.String(16), nullable=False)  # approve / reject

    used = db.Column(db.Boolean, default=False, nullable=False)
    used_at = db.Column(db.DateTime, nullable=True)
    expires = db.Column(db.DateTime, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
