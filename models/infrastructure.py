from utils.clock import utcnow
from models.db import db

class Infrastructure(db.Model):
    __tablename__ = "infrastructures"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    location = db.Column(db.String(160), nullable=True)
    description = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    questions = db.relationship(
        "FilterQuestion",
        back_populates="infrastructure",
        order_by="FilterQuestion.sort_order",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "description": self.description,
            "is_active": self.is_active,
        }
