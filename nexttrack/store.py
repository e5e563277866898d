"""
Vote store: tracks and votes tables behind SQLAlchemy Core

SQLAlchemy calls are synchronous; the async methods run them in a worker
thread so the event loop never blocks on the database.
"""
import asyncio
import contextlib
import logging
import threading
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import (
    BigInteger, CheckConstraint, Column, DateTime, Integer, MetaData,
    PrimaryKeyConstraint, Table, Text, case, create_engine, func, select, update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from . import config
from .catalog import Track
from .errors import StoreError

logger = logging.getLogger("nexttrack")

VOTE_TYPES = ("up", "down")

metadata = MetaData()

tracks = Table(
    "tracks", metadata,
    Column("track_id", BigInteger, primary_key=True, autoincrement=False),
    Column("title", Text, nullable=False),
    Column("artist", Text, nullable=False),
    Column("duration", Integer, nullable=False),
)

votes = Table(
    "votes", metadata,
    Column("party_code", Text, nullable=False),
    Column("track_id", BigInteger, nullable=False),
    Column("session_id", Text, nullable=False),
    Column("vote_type", Text, nullable=False),
    Column("voted_at", DateTime, server_default=func.now()),
    PrimaryKeyConstraint("party_code", "track_id", "session_id"),
    CheckConstraint("vote_type in ('up', 'down')", name="ck_votes_vote_type"),
)

# +1 for an upvote, -1 for a downvote
_net_score = func.sum(case((votes.c.vote_type == "up", 1), else_=-1))


def _is_memory_url(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


class VoteStore:
    """Queryable vote/track store"""

    def __init__(self, url: str = config.DATABASE_URL, engine=None):
        if engine is None:
            kwargs = {}
            if url.startswith("sqlite"):
                kwargs["connect_args"] = {"check_same_thread": False}
                if _is_memory_url(url):
                    # One shared connection, otherwise every thread sees its own empty db
                    kwargs["poolclass"] = StaticPool
            else:
                kwargs.update(
                    pool_size=10,
                    max_overflow=20,
                    pool_recycle=3600,
                    pool_pre_ping=True,
                )
            engine = create_engine(url, echo=False, **kwargs)
        self.engine = engine
        # A StaticPool connection must not be used by two threads at once
        if isinstance(engine.pool, StaticPool):
            self._lock = threading.Lock()
        else:
            self._lock = contextlib.nullcontext()

    # ------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------

    async def _run(self, fn, *args):
        return await asyncio.to_thread(self._guarded, fn, *args)

    def _guarded(self, fn, *args):
        try:
            with self._lock:
                return fn(*args)
        except SQLAlchemyError as e:
            logger.error(f"Database error in {fn.__name__}: {e}")
            raise StoreError("vote store unavailable") from e

    def dispose(self):
        self.engine.dispose()

    # ------------------------------------------------------------
    # Schema / bootstrap
    # ------------------------------------------------------------

    def create_schema(self, drop: bool = False):
        if drop:
            metadata.drop_all(self.engine)
        metadata.create_all(self.engine)

    def import_tracks(self, rows: Iterable[Track]) -> int:
        values = [t.to_dict() for t in rows]
        if not values:
            return 0
        with self.engine.begin() as conn:
            conn.execute(tracks.insert(), values)
        return len(values)

    # ------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------

    def _all_tracks(self) -> List[Track]:
        stmt = select(tracks.c.track_id, tracks.c.title, tracks.c.artist, tracks.c.duration)
        with self.engine.connect() as conn:
            return [
                Track(int(r.track_id), r.title, r.artist, int(r.duration))
                for r in conn.execute(stmt)
            ]

    def _net_scores(self, party_code: str) -> Dict[int, int]:
        stmt = (
            select(votes.c.track_id, _net_score.label("score"))
            .where(votes.c.party_code == party_code)
            .group_by(votes.c.track_id)
        )
        with self.engine.connect() as conn:
            return {int(r.track_id): int(r.score) for r in conn.execute(stmt)}

    def _liked_track_ids(self, party_code: str) -> Set[int]:
        stmt = (
            select(votes.c.track_id)
            .where(votes.c.party_code == party_code)
            .group_by(votes.c.track_id)
            .having(_net_score > 0)
        )
        with self.engine.connect() as conn:
            return {int(r.track_id) for r in conn.execute(stmt)}

    def _vote_counts(self, party_code: str, track_id: int) -> Tuple[int, int]:
        stmt = (
            select(votes.c.vote_type, func.count().label("n"))
            .where(votes.c.party_code == party_code, votes.c.track_id == track_id)
            .group_by(votes.c.vote_type)
        )
        upvotes = downvotes = 0
        with self.engine.connect() as conn:
            for r in conn.execute(stmt):
                if r.vote_type == "up":
                    upvotes = int(r.n)
                elif r.vote_type == "down":
                    downvotes = int(r.n)
        return upvotes, downvotes

    def _session_vote(self, party_code: str, track_id: int, session_id: str) -> Optional[str]:
        stmt = select(votes.c.vote_type).where(
            votes.c.party_code == party_code,
            votes.c.track_id == track_id,
            votes.c.session_id == session_id,
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar_one_or_none()

    def _record_vote(self, party_code: str, track_id: int, session_id: str, vote_type: str):
        values = {
            "party_code": party_code,
            "track_id": track_id,
            "session_id": session_id,
            "vote_type": vote_type,
        }
        dialect = self.engine.dialect.name
        with self.engine.begin() as conn:
            if dialect in ("sqlite", "postgresql"):
                insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
                stmt = insert(votes).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[votes.c.party_code, votes.c.track_id, votes.c.session_id],
                    set_={"vote_type": stmt.excluded.vote_type, "voted_at": func.now()},
                )
                conn.execute(stmt)
                return
            # Other backends: update, then insert if nothing matched
            result = conn.execute(
                update(votes)
                .where(
                    votes.c.party_code == party_code,
                    votes.c.track_id == track_id,
                    votes.c.session_id == session_id,
                )
                .values(vote_type=vote_type, voted_at=func.now())
            )
            if result.rowcount == 0:
                conn.execute(votes.insert().values(**values))

    # ------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------

    async def all_tracks(self) -> List[Track]:
        return await self._run(self._all_tracks)

    async def net_scores(self, party_code: str) -> Dict[int, int]:
        """Net score (upvotes - downvotes) per voted track in the party"""
        return await self._run(self._net_scores, party_code)

    async def liked_track_ids(self, party_code: str) -> Set[int]:
        """Tracks whose net score in the party is positive"""
        return await self._run(self._liked_track_ids, party_code)

    async def vote_counts(self, party_code: str, track_id: int) -> Tuple[int, int]:
        return await self._run(self._vote_counts, party_code, track_id)

    async def session_vote(self, party_code: str, track_id: int, session_id: str) -> Optional[str]:
        return await self._run(self._session_vote, party_code, track_id, session_id)

    async def record_vote(self, party_code: str, track_id: int, session_id: str, vote_type: str):
        """Store a vote; a repeat vote from the same session overwrites the old one"""
        if vote_type not in VOTE_TYPES:
            raise ValueError(f"invalid vote type: {vote_type!r}")
        await self._run(self._record_vote, party_code, track_id, session_id, vote_type)
