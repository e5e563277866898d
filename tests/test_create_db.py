from create_db import create_db
from nexttrack.catalog import load_catalog
from nexttrack.store import VoteStore


async def test_create_db_imports_csv_and_resets_votes(tmp_path):
    csv_path = tmp_path / "tracks.csv"
    csv_path.write_text(
        "track_id,title,artist,duration\n"
        "1001,Paper Hearts,The Lanterns,30000\n"
        "2001,Slow Tide,Harbor Lights,30000\n",
        encoding="utf-8",
    )
    url = f"sqlite:///{tmp_path / 'party.db'}"

    assert create_db(csv_path, url) == 2

    store = VoteStore(url)
    try:
        await store.record_vote("p1", 1001, "s1", "up")
    finally:
        store.dispose()

    # Running it again starts from empty tables
    assert create_db(csv_path, url) == 2
    store = VoteStore(url)
    try:
        catalog = await load_catalog(store)
        assert [t.track_id for t in catalog] == [1001, 2001]
        assert await store.net_scores("p1") == {}
    finally:
        store.dispose()
