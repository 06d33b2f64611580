"""Pytest configuration and fixtures."""

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from portal.models.user import Base, User
import portal.models.request  # noqa: F401
import portal.models.ticket  # noqa: F401
import portal.models.comment  # noqa: F401
import portal.models.event  # noqa: F401
import portal.models.mail_log  # noqa: F401
from portal.services import domain_events
from portal.services.mail_service import set_dispatcher


class RecordingDispatcher:
    """Collects messages instead of delivering them."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.sent = []

    def send(self, message) -> bool:
        self.sent.append(message)
        return self.accept

    def to(self, address: str):
        return [m for m in self.sent if m.to == address]


class FailingDispatcher:
    def send(self, message) -> bool:
        raise ConnectionError("mail relay unavailable")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_fk(dbapi_conn, _record):
        dbapi_conn.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def dispatcher():
    recorder = RecordingDispatcher()
    set_dispatcher(recorder)
    yield recorder
    set_dispatcher(None)


@pytest.fixture(autouse=True)
def _reset_domain_events():
    yield
    domain_events.clear_subscribers()


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make(first_name: str = "Test", last_name: str = "User", *, role: str = "EMPLOYEE", manager=None, email=None):
        counter["n"] += 1
        user = User(
            first_name=first_name,
            last_name=last_name,
            email=email if email is not None else f"user{counter['n']}@example.com",
            role=role,
            manager_id=manager.id if manager is not None else None,
        )
        session.add(user)
        session.commit()
        return user

    return _make


@pytest.fixture
def manager(make_user):
    return make_user("Maria", "Manager", email="maria.manager@example.com")


@pytest.fixture
def employee(make_user, manager):
    return make_user("Evan", "Employee", manager=manager, email="evan.employee@example.com")


@pytest.fixture
def it_admin(make_user):
    return make_user("Ian", "Support", role="IT_ADMIN", email="ian.support@example.com")


@pytest.fixture
def failing_dispatcher():
    return FailingDispatcher()
