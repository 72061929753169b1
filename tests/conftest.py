import pytest

from app.chat.service import ChatService
from app.friendship.service import RelationshipService
from app.profiles.service import ProfileService
from app.store.base import MESSAGES, PROFILES
from tests.fakes.builders import ALICE, BOB
from tests.fakes.flaky_store import FlakyStore


@pytest.fixture
def store():
    store = FlakyStore()
    store.seed(
        PROFILES,
        [
            {"id": ALICE, "full_name": "Alice Smith", "title": "Engineer", "bio": "hi"},
            {"id": BOB, "full_name": "Bob Jones", "title": "Designer"},
        ],
    )
    return store


@pytest.fixture
def profiles(store):
    return ProfileService(store)


@pytest.fixture
def relationships(store, profiles):
    return RelationshipService(store, profiles)


@pytest.fixture
def chat(store, profiles):
    return ChatService(store, profiles, enrichment_timeout=0.5)


@pytest.fixture
def seed_messages(store):
    def seed(*rows):
        return store.seed(MESSAGES, list(rows))

    return seed
