import threading
from datetime import time, timedelta

import pytest

from app import create_app
from config import TestingConfig
from models import db
from models.booking import Booking, AVAILABLE
from models.filter_question import FilterQuestion
from models.infrastructure import Infrastructure
from models.user import User, Role
from security.password import hash_password
from utils.clock import utcnow
from utils.seed import seed_roles

PASSWORD = "correct-horse-battery"


class RecordingNotifier:
    """Stands in for the SMTP notifier and remembers every call."""

    def __init__(self):
        self.status_updates = []
        self.action_requests = []
        self.received = []
        self.fail = False
        self._lock = threading.Lock()

    def send_booking_status_update(self, booking, infrastructure, outcome):
        if self.fail:
            raise RuntimeError("smtp relay unreachable")
        with self._lock:
            self.status_updates.append((booking.id, outcome))

    def send_action_request(self, booking, infrastructure, links, recipients):
        with self._lock:
            self.action_requests.append((booking.id, links, list(recipients)))

    def send_request_received(self, booking, infrastructure):
        with self._lock:
            self.received.append(booking.id)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(tmp_path, notifier):
    class FileDbConfig(TestingConfig):
        # a real file so worker threads share the database
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "bookings.db")
        UPLOAD_FOLDER = str(tmp_path / "uploads")

    app = create_app(FileDbConfig, notifier=notifier)
    with app.app_context():
        db.create_all()
        seed_roles()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _make_user(email, role_name):
    user = User(email=email, password_hash=hash_password(PASSWORD), full_name=email.split("@")[0])
    user.roles.append(Role.query.filter_by(name=role_name).one())
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def make_user(app):
    return _make_user


@pytest.fixture
def user(app):
    return _make_user("alice@example.com", "USER")


@pytest.fixture
def admin(app):
    return _make_user("admin@example.com", "ADMIN")


def login(client, email):
    resp = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 200
    return client


@pytest.fixture
def user_client(client, user):
    return login(client, user.email)


@pytest.fixture
def admin_client(app, admin):
    return login(app.test_client(), admin.email)


@pytest.fixture
def infrastructure(app):
    infra = Infrastructure(name="Confocal microscope", location="Lab 2")
    db.session.add(infra)
    db.session.commit()
    return infra


@pytest.fixture
def make_slot(infrastructure):
    def _make(days_ahead=3, start=time(9, 0), end=time(10, 0), status=AVAILABLE, infra=None, **fields):
        slot = Booking(
            infrastructure_id=(infra or infrastructure).id,
            booking_date=utcnow().date() + timedelta(days=days_ahead),
            start_time=start,
            end_time=end,
            status=status,
            **fields,
        )
        db.session.add(slot)
        db.session.commit()
        return slot
    return _make


@pytest.fixture
def questions(infrastructure):
    rows = [
        FilterQuestion(infrastructure_id=infrastructure.id, question_text="Project code",
                       question_type="text", is_required=True, sort_order=1),
        FilterQuestion(infrastructure_id=infrastructure.id, question_text="Samples",
                       question_type="number", is_required=False, sort_order=2),
        FilterQuestion(infrastructure_id=infrastructure.id, question_text="Objective",
                       question_type="dropdown", is_required=False, sort_order=3,
                       options_json='["10x", "40x", "63x oil"]'),
    ]
    db.session.add_all(rows)
    db.session.commit()
    return rows


def run_concurrently(app, fn, count):
    """Runs fn(i) in ``count`` threads, each with its own app context and DB session.

    Returns the list of results; an exception raised by fn is returned in its place.
    """
    db.session.close()
    barrier = threading.Barrier(count)
    results = [None] * count

    def worker(i):
        with app.app_context():
            barrier.wait()
            try:
                results[i] = fn(i)
            except Exception as exc:
                results[i] = exc

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results
