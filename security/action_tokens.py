import secrets
from datetime import timedelta

from flask import current_app
from sqlalchemy import delete, or_, select, update

from models.email_action_token import EmailActionToken, TOKEN_ACTIONS
from services.errors import InvalidOrExpiredToken
from utils.clock import utcnow


def _ttl() -> timedelta:
    return timedelta(hours=current_app.config.get("ACTION_TOKEN_TTL_HOURS", 72))


def issue_action_tokens(session, booking_id: int) -> dict:
    """
    Creates one single-use token per action for the booking.
    Returns {"approve": raw_token, "reject": raw_token}.
    Must run inside the caller's transaction.
    """
    expires = utcnow() + _ttl()
    issued = {}
    for action in TOKEN_ACTIONS:
        value = secrets.token_urlsafe(32)
        session.add(EmailActionToken(
            token=value,
            booking_id=booking_id,
            action=action,
            used=False,
            expires=expires,
        ))
        issued[action] = value
    session.flush()
    return issued


def validate_token(session, token: str) -> EmailActionToken:
    # Not found, used and expired all look the same to the caller
    if not token:
        raise InvalidOrExpiredToken()

    row = session.scalar(
        select(EmailActionToken)
        .where(
            EmailActionToken.token == token,
            EmailActionToken.used.is_(False),
            EmailActionToken.expires > utcnow(),
        )
        .with_for_update()
    )
    if row is None:
        raise InvalidOrExpiredToken()
    return row


def consume_token(session, token_id: int) -> None:
    """
    Marks the token used. Conditional on used = false, so a concurrent
    consumer that committed first makes this one fail.
    """
    result = session.execute(
        update(EmailActionToken)
        .where(EmailActionToken.id == token_id, EmailActionToken.used.is_(False))
        .values(used=True, used_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidOrExpiredToken()


def purge_expired_tokens(session, older_than_days: int = 30) -> int:
    cutoff = utcnow() - timedelta(days=older_than_days)
    result = session.execute(
        delete(EmailActionToken)
        .where(or_(EmailActionToken.expires < cutoff, EmailActionToken.used_at < cutoff))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def find_spent_token(session, token: str):
    """Returns the token record if it has been used and has not yet expired."""
    if not token:
        return None
    return session.scalar(
        select(EmailActionToken).where(
            EmailActionToken.token == token,
            EmailActionToken.used.is_(True),
            EmailActionToken.expires > utcnow(),
        )
    )
