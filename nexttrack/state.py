"""
In-memory per-party state: current track, recent history, member presence

Parties come into existence the first time they are touched. The table also
owns each party's playback loop task so that evicting a party stops it.
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

from . import config
from .catalog import Track
from .utils import now_ms

logger = logging.getLogger("nexttrack")


@dataclass(frozen=True)
class PlayingTrack:
    track: Track
    started_at: int  # epoch ms

    @property
    def track_id(self) -> int:
        return self.track.track_id

    @property
    def ends_at(self) -> int:
        return self.started_at + self.track.duration

    def to_dict(self) -> dict:
        data = self.track.to_dict()
        data["started_at"] = self.started_at
        return data


@dataclass
class PartyState:
    current: Optional[PlayingTrack] = None
    history: Deque[int] = field(default_factory=lambda: deque(maxlen=config.HISTORY_SIZE))
    members: Dict[str, int] = field(default_factory=dict)  # session_id -> last_seen ms
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    playback_task: Optional[asyncio.Task] = None
    last_activity: int = field(default_factory=now_ms)

    def playback_running(self) -> bool:
        return self.playback_task is not None and not self.playback_task.done()

    def stop_playback(self):
        if self.playback_running():
            self.playback_task.cancel()


class PartyStateTable:
    """Party code -> PartyState. Each party has its own lock."""

    def __init__(self):
        self._parties: Dict[str, PartyState] = {}

    def __len__(self) -> int:
        return len(self._parties)

    def __contains__(self, party_code: str) -> bool:
        return party_code in self._parties

    def codes(self) -> List[str]:
        return list(self._parties)

    def get(self, party_code: str) -> PartyState:
        party = self._parties.get(party_code)
        if party is None:
            party = self._parties[party_code] = PartyState()
        return party

    def peek(self, party_code: str) -> Optional[PartyState]:
        return self._parties.get(party_code)

    def lock(self, party_code: str) -> asyncio.Lock:
        return self.get(party_code).lock

    def mark_active(self, party_code: str, now: int):
        self.get(party_code).last_activity = now

    # Current track

    def get_current(self, party_code: str) -> Optional[PlayingTrack]:
        party = self._parties.get(party_code)
        return party.current if party else None

    def set_current(self, party_code: str, playing: PlayingTrack):
        self.get(party_code).current = playing

    def clear_current(self, party_code: str):
        party = self._parties.get(party_code)
        if party:
            party.current = None

    # Recent history

    def recent(self, party_code: str) -> List[int]:
        party = self._parties.get(party_code)
        return list(party.history) if party else []

    def append_history(self, party_code: str, track_id: int):
        self.get(party_code).history.append(track_id)

    # Presence

    def touch_member(self, party_code: str, session_id: str, now: int):
        self.get(party_code).members[session_id] = now

    def sweep_members(self, party_code: str, now: int,
                      timeout_ms: int = config.MEMBER_TIMEOUT_MS) -> int:
        """Count active members, deleting stale ones as a side effect"""
        party = self._parties.get(party_code)
        if party is None:
            return 0

        active = 0
        for session_id, last_seen in list(party.members.items()):
            if now - last_seen < timeout_ms:
                active += 1
            else:
                del party.members[session_id]
        return active

    def members(self, party_code: str) -> Dict[str, int]:
        party = self._parties.get(party_code)
        return dict(party.members) if party else {}

    # Lifecycle

    def evict_idle(self, now: int, idle_ms: int) -> List[str]:
        """Drop parties with no client activity for idle_ms, stopping their playback"""
        stale = [
            code for code, party in self._parties.items()
            if now - party.last_activity > idle_ms
        ]
        for code in stale:
            self._parties.pop(code).stop_playback()
            logger.info(f"🧹 Evicted idle party: {code}")
        return stale

    def close(self):
        """Cancel every playback loop (app shutdown)"""
        for party in self._parties.values():
            party.stop_playback()
