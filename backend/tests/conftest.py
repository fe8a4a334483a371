"""Shared fixtures: an in-memory database and small factories for test data."""

import os
import sys

import pytest
from sqlalchemy.orm import sessionmaker

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from cardswap import models  # noqa: F401,E402
from cardswap.database import Base, build_engine  # noqa: E402
from cardswap.models.enums import ParticipationStatus, UserRole  # noqa: E402
from cardswap.models.event import Event, EventParticipation  # noqa: E402
from cardswap.models.inventory import InventoryItem  # noqa: E402
from cardswap.models.user import User  # noqa: E402
from cardswap.services.chat_service import ChatProvisioningError  # noqa: E402


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


class Factory:
    """Creates and commits rows so each test reads like its scenario."""

    def __init__(self, db):
        self.db = db
        self._n = 0

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def user(self, role=UserRole.ADULT, guardian=None, name=None, kyc=False, **kwargs):
        self._n += 1
        name = name or f"user{self._n}"
        return self._save(User(
            email=f"{name}@example.com",
            display_name=name,
            role=role,
            guardian_id=guardian.id if guardian else None,
            is_kyc_verified=kyc,
            **kwargs,
        ))

    def guardian(self, name=None, **kwargs):
        return self.user(role=UserRole.GUARDIAN, name=name, kyc=True, **kwargs)

    def minor(self, guardian=None, name=None, **kwargs):
        return self.user(role=UserRole.MINOR, guardian=guardian, name=name, **kwargs)

    def event(self, title="Saturday League"):
        return self._save(Event(title=title))

    def join(self, event, *users, status=ParticipationStatus.CONFIRMED):
        for user in users:
            self.db.add(EventParticipation(event_id=event.id, user_id=user.id, status=status))
        self.db.commit()

    def item(self, owner, value=None, desired=None, **kwargs):
        self._n += 1
        return self._save(InventoryItem(
            owner_id=owner.id,
            card_definition_id=kwargs.pop("card_definition_id", f"sv1-{self._n}"),
            estimated_value=value,
            desired_sale_price=desired,
            **kwargs,
        ))


@pytest.fixture
def make(db):
    return Factory(db)


class RecordingChat:
    """Chat provisioner double that remembers what it was asked to create."""

    def __init__(self):
        self.calls = []

    def create_trade_channel(self, trade_id, member_ids):
        self.calls.append((trade_id, list(member_ids)))
        return f"channel-{trade_id}"


class FailingChat:
    def create_trade_channel(self, trade_id, member_ids):
        raise ChatProvisioningError("provider down", status_code=503)


@pytest.fixture
def chat():
    return RecordingChat()


@pytest.fixture
def failing_chat():
    return FailingChat()


@pytest.fixture
def factory_cls():
    """The Factory class itself, for tests that manage their own sessions."""
    return Factory
