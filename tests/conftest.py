"""Shared fixtures: a fresh SQLite file per test, a frozen clock and a small household."""
# pylint: disable=redefined-outer-name

import os

os.environ["CHOREQUEST_DATABASE_URL"] = "sqlite://"
os.environ["CHOREQUEST_TZ"] = "America/Chicago"
os.environ["CHOREQUEST_SCHEDULER"] = "0"

from datetime import datetime
from types import SimpleNamespace

import pytest

import catalog
import db
import lifecycle
from actors import Actor
from clock import FrozenClock
from events import bus

# Monday, the day after the 2026 spring-forward change in Chicago
MONDAY_MORNING = datetime(2026, 3, 9, 7, 0)


@pytest.fixture
def engine(tmp_path):
    eng = db.configure_engine(f"sqlite:///{tmp_path / 'chorequest.sqlite3'}")
    db.init_db()
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with db.SessionLocal() as s:
        yield s


@pytest.fixture
def clock():
    return FrozenClock(MONDAY_MORNING)


@pytest.fixture
def events():
    received = []
    callback = bus.subscribe(received.append)
    yield received
    bus.unsubscribe(callback)


@pytest.fixture
def household(session):
    """One admin, two players, two recurring chores and one growth task."""
    admin = catalog.create_player(session, "Parent", is_admin=True)
    avery = catalog.create_player(session, "Avery")
    blake = catalog.create_player(session, "Blake")
    brush = catalog.create_template(session, "Brush Teeth", "morning", 150, created_by=admin.id)
    homework = catalog.create_template(
        session, "Homework", "afternoon", 300, created_by=admin.id,
        saturday=False, sunday=False,
    )
    shoes = catalog.create_template(session, "Learn to Tie Shoes", "growth", 500, created_by=admin.id)
    return SimpleNamespace(
        admin=admin,
        avery=avery,
        blake=blake,
        brush=brush,
        homework=homework,
        shoes=shoes,
        admin_actor=Actor(player_id=admin.id, is_admin=True),
        avery_actor=Actor(player_id=avery.id),
        blake_actor=Actor(player_id=blake.id),
    )


@pytest.fixture
def finish(session, household, clock):
    """Drive one instance all the way to approved."""

    def _finish(instance_id, actor):
        lifecycle.begin(session, instance_id, actor, clock=clock)
        clock.advance(minutes=5)
        lifecycle.complete(session, instance_id, actor, clock=clock)
        return lifecycle.approve(session, instance_id, household.admin_actor, clock=clock)

    return _finish
