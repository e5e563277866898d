"""
Shared fixtures: an in-memory vote store seeded with a small catalog and a
selection engine wired to a fresh party state table.
"""
import random

import pytest

from nexttrack.catalog import Catalog, Track
from nexttrack.scheduler import PlaybackScheduler
from nexttrack.selection import SelectionEngine
from nexttrack.state import PartyStateTable
from nexttrack.store import VoteStore

# Long enough that no track ends during a test unless a test wants it to
LONG_MS = 60_000

CATALOG_TRACKS = [
    Track(1001, "Paper Hearts", "The Lanterns", LONG_MS),
    Track(1002, "Neon Avenue", "Mira Vale", LONG_MS),
    Track(2001, "Slow Tide", "Harbor Lights", LONG_MS),
    Track(2002, "Warm Static", "Mira Vale", LONG_MS),
    Track(3001, "Overdrive", "Volt Theory", LONG_MS),
    Track(4001, "Night Shift", "DJ Parallax", LONG_MS),
    Track(5001, "Stride", "Pace Unit", LONG_MS),
    Track(6001, "Driftwood", "Still Water", LONG_MS),
]


def make_store(tracks):
    store = VoteStore("sqlite://")
    store.create_schema()
    store.import_tracks(tracks)
    return store


def make_engine(store, tracks, table, seed=1234):
    scheduler = PlaybackScheduler(table)
    return SelectionEngine(Catalog(tracks), store, table, scheduler, rng=random.Random(seed))


@pytest.fixture
def tracks():
    return list(CATALOG_TRACKS)


@pytest.fixture
def store(tracks):
    store = make_store(tracks)
    yield store
    store.dispose()


@pytest.fixture
def table():
    return PartyStateTable()


@pytest.fixture
async def engine(store, tracks, table):
    engine = make_engine(store, tracks, table)
    yield engine
    table.close()


async def select(engine, party_code):
    """Force a fresh pick for the party, the way a track ending does"""
    async with engine.table.lock(party_code):
        return await engine.pick_next(party_code)
