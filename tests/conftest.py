"""
Shared fixtures: every test gets its own snapshot file in tmp_path and a
clock it can move forward by hand.
"""
import pytest

from database.database import Store
from database.snapshot import SnapshotSlot
from utils.srs import MS_PER_DAY

START = 1_700_000_000_000


class FakeClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, days=0, ms=0):
        self.now += days * MS_PER_DAY + ms


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def slot(tmp_path):
    return SnapshotSlot(str(tmp_path / "flashmind.db"), key='test_db')


@pytest.fixture()
def store(slot, clock):
    s = Store(slot=slot, clock=clock).open()
    yield s
    s.close()


@pytest.fixture()
def deck_id(store):
    return store.create_deck('Vocab', 'Test deck')
