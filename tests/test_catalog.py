import pytest

from nexttrack.catalog import Catalog, Track, category_for, load_catalog, read_tracks_csv
from nexttrack.errors import CatalogError
from nexttrack.store import VoteStore


@pytest.mark.parametrize("track_id, category", [
    (999, "other"),
    (1000, "pop"),
    (1999, "pop"),
    (2000, "chill"),
    (3500, "energy"),
    (4001, "party"),
    (5999, "running"),
    (6000, "relaxing"),
    (6999, "relaxing"),
    (7000, "other"),
    (42, "other"),
])
def test_category_for_id_ranges(track_id, category):
    assert category_for(track_id) == category


def test_track_category_is_derived_from_id():
    track = Track(2002, "Warm Static", "Mira Vale", 1000)
    assert track.category == "chill"
    assert "category" not in track.to_dict()


def test_catalog_resolve_keeps_catalog_order_and_skips_unknown(tracks):
    catalog = Catalog(tracks)
    resolved = catalog.resolve([6001, 1001, 9999])
    assert [t.track_id for t in resolved] == [1001, 6001]
    assert 1001 in catalog
    assert 9999 not in catalog
    assert len(catalog) == len(tracks)


async def test_load_catalog_reads_every_track(store, tracks):
    catalog = await load_catalog(store)
    assert sorted(t.track_id for t in catalog) == sorted(t.track_id for t in tracks)
    assert [t.artist for t in catalog.resolve([2001])] == ["Harbor Lights"]


async def test_load_catalog_logs_track_count(store, tracks, caplog):
    with caplog.at_level("INFO", logger="nexttrack"):
        await load_catalog(store)
    assert f"Loaded {len(tracks)} tracks from database" in caplog.text


async def test_load_catalog_rejects_empty_store():
    store = VoteStore("sqlite://")
    store.create_schema()
    try:
        with pytest.raises(CatalogError):
            await load_catalog(store)
    finally:
        store.dispose()


def test_read_tracks_csv(tmp_path):
    path = tmp_path / "tracks.csv"
    path.write_text(
        "track_id,title,artist,duration\n"
        "1001,Paper Hearts,The Lanterns,30000\n"
        "2001,Slow Tide,Harbor Lights,45000\n",
        encoding="utf-8",
    )
    tracks = read_tracks_csv(path)
    assert tracks == [
        Track(1001, "Paper Hearts", "The Lanterns", 30000),
        Track(2001, "Slow Tide", "Harbor Lights", 45000),
    ]
