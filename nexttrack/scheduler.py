"""
Playback scheduler: one asyncio loop per party that advances to the next
track when the current one's duration has elapsed
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .state import PartyStateTable, PlayingTrack
from .utils import now_ms

logger = logging.getLogger("nexttrack")

TrackEndCallback = Callable[[str, PlayingTrack], Awaitable[Optional[PlayingTrack]]]


class PlaybackScheduler:

    def __init__(self, table: PartyStateTable, clock: Callable[[], int] = now_ms):
        self._table = table
        self._clock = clock
        self.on_track_end: Optional[TrackEndCallback] = None

    def arm(self, party_code: str, playing: PlayingTrack):
        """Make sure the party's playback loop is running for `playing`"""
        party = self._table.get(party_code)
        if party.playback_running():
            # The running loop reads the new current track on its next pass
            return
        party.playback_task = asyncio.create_task(
            self._play_loop(party_code),
            name=f"playback-{party_code}",
        )
        logger.debug(f"[{party_code}] playback armed for track {playing.track_id} ({playing.track.duration} ms)")

    def running(self, party_code: str) -> bool:
        party = self._table.peek(party_code)
        return bool(party and party.playback_running())

    def cancel(self, party_code: str):
        party = self._table.peek(party_code)
        if party:
            party.stop_playback()

    async def _play_loop(self, party_code: str):
        while True:
            playing = self._table.get_current(party_code)
            if playing is None:
                return

            delay_ms = max(0, playing.ends_at - self._clock())
            await asyncio.sleep(delay_ms / 1000)

            if self.on_track_end is None:
                return
            try:
                await self.on_track_end(party_code, playing)
            except asyncio.CancelledError:
                raise
            except Exception:
                # Only this party stops; the next currentTrack read restarts it
                logger.exception(f"[{party_code}] auto-advance failed, playback stopped")
                return
