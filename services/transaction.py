from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from services.errors import TransactionFailure


@contextmanager
def unit_of_work(session=None):
    """Commit on a clean exit, roll back on every other exit path.

    Store-level failures (lock timeouts, lost connections, constraint
    violations nobody handled) surface as a retryable TransactionFailure.
    """
    session = session or db.session
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        current_app.logger.warning("Booking transaction rolled back: %s", exc)
        raise TransactionFailure() from exc
    except BaseException:
        session.rollback()
        raise
