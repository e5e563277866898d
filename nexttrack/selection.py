"""
Track selection engine

Scores every track that is not in the party's recent history:

    total = net vote score + similarity bonus

where the similarity bonus adds +2 for every liked track in the same
category and +3 for every liked track by the same artist. The highest total
wins; ties are broken uniformly at random. With no signal at all (best total
of exactly 0) a random non-recent track is played instead.
"""
import logging
import random
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .catalog import Catalog, Track
from .errors import CatalogError
from .scheduler import PlaybackScheduler
from .state import PartyStateTable, PlayingTrack
from .utils import now_ms

logger = logging.getLogger("nexttrack")

CATEGORY_BONUS = 2
ARTIST_BONUS = 3


def similarity_bonus(track: Track, liked: Iterable[Track]) -> int:
    bonus = 0
    for liked_track in liked:
        if track.category == liked_track.category:
            bonus += CATEGORY_BONUS
        if track.artist == liked_track.artist:
            bonus += ARTIST_BONUS
    return bonus


def score_tracks(candidates: Iterable[Track], net_scores: Dict[int, int],
                 liked: Sequence[Track]) -> List[Tuple[Track, int]]:
    """(track, total score) for each candidate, in candidate order"""
    return [
        (track, net_scores.get(track.track_id, 0) + similarity_bonus(track, liked))
        for track in candidates
    ]


def best_of(scored: Sequence[Tuple[Track, int]],
            rng: random.Random) -> Tuple[Optional[Track], Optional[int]]:
    """Highest-scoring track, uniform random pick among ties"""
    if not scored:
        return None, None
    best_score = max(score for _, score in scored)
    tied = [track for track, score in scored if score == best_score]
    return rng.choice(tied), best_score


class SelectionEngine:

    def __init__(self, catalog: Catalog, store, table: PartyStateTable,
                 scheduler: PlaybackScheduler,
                 rng: Optional[random.Random] = None,
                 clock: Callable[[], int] = now_ms):
        self.catalog = catalog
        self.store = store
        self.table = table
        self.scheduler = scheduler
        self.rng = rng or random.Random()
        self.clock = clock
        scheduler.on_track_end = self.advance

    async def current_track(self, party_code: str) -> PlayingTrack:
        """The party's playing track; picks one first if the party is idle"""
        playing = self.table.get_current(party_code)
        if playing is not None:
            return playing

        async with self.table.lock(party_code):
            # Another request may have selected while we waited
            playing = self.table.get_current(party_code)
            if playing is None:
                playing = await self.pick_next(party_code)
        return playing

    async def advance(self, party_code: str, finished: PlayingTrack) -> Optional[PlayingTrack]:
        """Called when `finished` runs out. No-op if the party already moved on."""
        async with self.table.lock(party_code):
            if self.table.get_current(party_code) is not finished:
                return None
            self.table.clear_current(party_code)
            return await self.pick_next(party_code)

    async def pick_next(self, party_code: str) -> PlayingTrack:
        """Choose, record and schedule the next track. Caller holds the party lock."""
        recent = set(self.table.recent(party_code))

        net_scores = await self.store.net_scores(party_code)
        liked_ids = await self.store.liked_track_ids(party_code)
        liked = self.catalog.resolve(liked_ids)

        if liked:
            categories = ", ".join(t.category for t in liked)
            logger.info(f"[{party_code}] Party likes: {categories}")

        candidates = [t for t in self.catalog if t.track_id not in recent]
        scored = score_tracks(candidates, net_scores, liked)
        track, best_score = best_of(scored, self.rng)

        if track is None or best_score == 0:
            track = self._random_pick(candidates)

        self.table.append_history(party_code, track.track_id)

        playing = PlayingTrack(track=track, started_at=self.clock())
        self.table.set_current(party_code, playing)
        logger.info(f'[{party_code}] Playing: "{track.title}" by {track.artist} ({track.category})')

        self.scheduler.arm(party_code, playing)
        return playing

    def _random_pick(self, candidates: List[Track]) -> Track:
        pool = candidates or list(self.catalog)
        if not pool:
            raise CatalogError("track catalog is empty")
        return self.rng.choice(pool)
