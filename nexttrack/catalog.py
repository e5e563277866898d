"""
Track catalog: immutable list of tracks loaded once at startup
"""
import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

from .errors import CatalogError

logger = logging.getLogger("nexttrack")

# Tracks are organised by id range: (low, high_exclusive, category)
CATEGORY_RANGES: Tuple[Tuple[int, int, str], ...] = (
    (1000, 2000, "pop"),
    (2000, 3000, "chill"),
    (3000, 4000, "energy"),
    (4000, 5000, "party"),
    (5000, 6000, "running"),
    (6000, 7000, "relaxing"),
)
DEFAULT_CATEGORY = "other"


def category_for(track_id: int) -> str:
    """Map a track id to its category via the fixed id ranges"""
    track_id = int(track_id)
    for low, high, category in CATEGORY_RANGES:
        if low <= track_id < high:
            return category
    return DEFAULT_CATEGORY


@dataclass(frozen=True)
class Track:
    track_id: int
    title: str
    artist: str
    duration: int  # ms

    @property
    def category(self) -> str:
        return category_for(self.track_id)

    def to_dict(self) -> dict:
        return {
            "track_id": self.track_id,
            "title": self.title,
            "artist": self.artist,
            "duration": self.duration,
        }


class Catalog:
    """Ordered, read-only collection of tracks with an id index"""

    def __init__(self, tracks: Iterable[Track]):
        self._tracks: Tuple[Track, ...] = tuple(tracks)
        self._by_id: Dict[int, Track] = {t.track_id: t for t in self._tracks}

    def __iter__(self):
        return iter(self._tracks)

    def __len__(self) -> int:
        return len(self._tracks)

    def __contains__(self, track_id: int) -> bool:
        return track_id in self._by_id

    def resolve(self, track_ids: Iterable[int]) -> List[Track]:
        """Catalog tracks for the given ids, in catalog order; unknown ids are skipped"""
        wanted = set(track_ids)
        return [t for t in self._tracks if t.track_id in wanted]


async def load_catalog(store) -> Catalog:
    """Load every track from the store. An empty catalog is fatal."""
    tracks = await store.all_tracks()
    if not tracks:
        raise CatalogError("track catalog is empty; run create_db.py first")
    logger.info(f"📀 Loaded {len(tracks)} tracks from database")
    return Catalog(tracks)


def read_tracks_csv(path: Path) -> List[Track]:
    """Parse a `track_id,title,artist,duration` CSV with a header row"""
    tracks = []
    with open(path, newline="", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            tracks.append(Track(
                track_id=int(row["track_id"]),
                title=row["title"],
                artist=row["artist"],
                duration=int(row["duration"]),
            ))
    return tracks
