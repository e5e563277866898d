import asyncio

from nexttrack.catalog import Track
from nexttrack.state import PartyStateTable, PlayingTrack


def test_history_keeps_last_five():
    table = PartyStateTable()
    for track_id in range(1001, 1009):
        table.append_history("p1", track_id)
        assert len(table.recent("p1")) <= 5
    assert table.recent("p1") == [1004, 1005, 1006, 1007, 1008]


def test_parties_do_not_share_state():
    table = PartyStateTable()
    table.append_history("a", 1001)
    table.touch_member("b", "s1", 0)
    assert table.recent("b") == []
    assert table.members("a") == {}
    assert table.lock("a") is not table.lock("b")


def test_current_track_roundtrip():
    table = PartyStateTable()
    assert table.get_current("p1") is None

    playing = PlayingTrack(Track(1001, "Paper Hearts", "The Lanterns", 30000), started_at=5000)
    table.set_current("p1", playing)
    assert table.get_current("p1") is playing
    assert playing.ends_at == 35000
    assert playing.to_dict() == {
        "track_id": 1001,
        "title": "Paper Hearts",
        "artist": "The Lanterns",
        "duration": 30000,
        "started_at": 5000,
    }

    table.clear_current("p1")
    assert table.get_current("p1") is None


def test_sweep_purges_everyone_after_timeout():
    table = PartyStateTable()
    table.touch_member("p1", "A", 0)
    table.touch_member("p1", "B", 0)

    assert table.sweep_members("p1", 16000) == 0
    assert table.members("p1") == {}
    assert table.sweep_members("p1", 16001) == 0


def test_sweep_keeps_recent_members():
    table = PartyStateTable()
    table.touch_member("p1", "A", 0)
    table.touch_member("p1", "B", 10000)

    assert table.sweep_members("p1", 16000) == 1
    assert list(table.members("p1")) == ["B"]


def test_sweep_timeout_boundary_is_exclusive():
    table = PartyStateTable()
    table.touch_member("p1", "A", 0)
    assert table.sweep_members("p1", 14999) == 1
    assert table.sweep_members("p1", 15000) == 0


def test_heartbeat_refreshes_last_seen():
    table = PartyStateTable()
    table.touch_member("p1", "A", 0)
    table.touch_member("p1", "A", 10000)
    assert table.sweep_members("p1", 20000) == 1


def test_sweep_unknown_party_does_not_create_it():
    table = PartyStateTable()
    assert table.sweep_members("ghost", 0) == 0
    assert "ghost" not in table


def test_evict_idle_drops_only_idle_parties():
    table = PartyStateTable()
    table.mark_active("old", 0)
    table.mark_active("fresh", 50_000)

    evicted = table.evict_idle(now=60_000, idle_ms=30_000)

    assert evicted == ["old"]
    assert "old" not in table
    assert "fresh" in table
    assert table.codes() == ["fresh"]


async def test_evict_and_close_stop_playback_tasks():
    table = PartyStateTable()
    table.mark_active("old", 0)
    table.mark_active("live", 50_000)
    old = table.get("old")
    live = table.get("live")
    old.playback_task = asyncio.create_task(asyncio.sleep(60))
    live.playback_task = asyncio.create_task(asyncio.sleep(60))
    assert old.playback_running() and live.playback_running()

    table.evict_idle(now=60_000, idle_ms=30_000)
    await asyncio.sleep(0.01)
    assert old.playback_task.cancelled()
    assert live.playback_running()

    table.close()
    await asyncio.sleep(0.01)
    assert live.playback_task.cancelled()
    assert not live.playback_running()


def test_stop_playback_without_task_is_harmless():
    party = PartyStateTable().get("p1")
    assert not party.playback_running()
    party.stop_playback()
