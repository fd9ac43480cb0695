import json
from flask import current_app, has_request_context, request
from sqlalchemy.exc import SQLAlchemyError
from models import db
from models.audit_log import AuditLog

def log_event(action: str, user_id=None, entity=None, entity_id=None, metadata=None):
    """
    Appends an audit row and commits it on its own.
    Call only after the business transaction has committed. A failed audit
    write is rolled back and logged; it never fails the caller.
    """
    ip, user_agent = None, None
    if has_request_context():
        ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = (request.headers.get("User-Agent") or "")[:255] or None

    db.session.add(AuditLog(
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent,
        metadata_json=json.dumps(metadata, default=str) if metadata else None,
    ))
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Audit event %s not recorded", action)
        return False
    return True
