import json
from models.db import db

QUESTION_TYPES = ("text", "number", "dropdown", "document")

class FilterQuestion(db.Model):
    __tablename__ = "filter_questions"

    id = db.Column(db.Integer, primary_key=True)
    infrastructure_id = db.Column(db.Integer, db.ForeignKey("infrastructures.id"), nullable=False, index=True)

    question_text = db.Column(db.String(255), nullable=False)
    question_type = db.Column(db.String(20), nullable=False, default="text")
    is_required = db.Column(db.Boolean, default=False, nullable=False)
    # dropdown choices, JSON encoded list of strings
    options_json = db.Column(db.Text, nullable=True)
    sort_order = db.Column(db.Integer, default=0, nullable=False)

    infrastructure = db.relationship("Infrastructure", back_populates="questions")

    @property
    def options(self):
        if not self.options_json:
            return []
        return json.loads(self.options_json)

    def to_dict(self):
        return {
            "id": self.id,
            "question_text": self.question_text,
            "question_type": self.question_type,
            "is_required": self.is_required,
            "options": self.options,
        }
