from datetime import date

import pytest
from sqlalchemy import text

from app import BROWSERS, create_app
from auth import AuthProvider, SessionHolder
from dashboard import DashboardController
from models import Task, db
from storage import BrowserStorage
from store import Store


class FakeInterval:
    """Interval that only fires when a test tells it to."""

    def __init__(self, seconds, callback):
        self.seconds = seconds
        self.callback = callback
        self.active = False

    def start(self):
        self.active = True
        return self

    def cancel(self):
        self.active = False

    def fire(self, times=1):
        for _ in range(times):
            if self.active:
                self.callback()


@pytest.fixture
def intervals():
    created = []

    def factory(seconds, callback):
        interval = FakeInterval(seconds, callback)
        created.append(interval)
        return interval

    factory.created = created
    return factory


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    })
    yield app
    for browser in BROWSERS.values():
        browser.close()
    BROWSERS.clear()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield


@pytest.fixture
def store(app_ctx):
    return Store()


@pytest.fixture
def provider(app_ctx):
    return AuthProvider()


@pytest.fixture
def local_storage():
    return BrowserStorage()


@pytest.fixture
def session_storage():
    return BrowserStorage()


@pytest.fixture
def today():
    return date(2024, 6, 15)


@pytest.fixture
def controller(provider, store, local_storage, session_storage, today):
    holder = SessionHolder(provider)
    return DashboardController(store, holder, local_storage, session_storage, clock=lambda: today)


@pytest.fixture
def user(provider, controller):
    """Sign in through the provider; the controller loads on the event."""
    return provider.sign_in('ada@example.com')


@pytest.fixture
def legacy_tasks_table(app_ctx):
    """Replace ``tasks`` with a table created before task ordering existed."""
    Task.__table__.drop(db.engine)
    db.session.execute(text(
        "CREATE TABLE tasks ("
        " id INTEGER PRIMARY KEY,"
        " user_id INTEGER NOT NULL REFERENCES user(id) ON DELETE CASCADE,"
        " text VARCHAR(500) NOT NULL,"
        " completed BOOLEAN NOT NULL DEFAULT 0,"
        " pomodoros_spent INTEGER NOT NULL DEFAULT 0,"
        " scheduled_date DATE NOT NULL,"
        " completed_at DATETIME,"
        " description TEXT,"
        " section_id INTEGER REFERENCES sections(id) ON DELETE SET NULL,"
        " created_at DATETIME)"
    ))
    db.session.commit()
