"""
Environment-driven settings for the party server
"""
import os
from pathlib import Path

PORT = int(os.environ.get("PORT", 3003))
SERVER_HOST = os.environ.get("SERVER_HOST", "0.0.0.0")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

DATA_DIR = Path(os.getenv("NEXTTRACK_DATA_DIR", "./data"))
DATABASE_URL = os.getenv("NEXTTRACK_DATABASE_URL", f"sqlite:///{DATA_DIR / 'party.db'}")
TRACKS_CSV = Path(os.getenv("NEXTTRACK_TRACKS_CSV", str(DATA_DIR / "short-tracks.csv")))

# Presence window and recency ring
MEMBER_TIMEOUT_MS = int(os.environ.get("NEXTTRACK_MEMBER_TIMEOUT_MS", 15000))
HISTORY_SIZE = 5

# Idle party eviction (seconds). 0 disables the sweeper.
PARTY_IDLE_TIMEOUT = int(os.environ.get("NEXTTRACK_PARTY_IDLE_TIMEOUT", 1800))
CLEANUP_INTERVAL = int(os.environ.get("NEXTTRACK_CLEANUP_INTERVAL", 60))

# Requests per minute per IP. 0 disables rate limiting.
# A polling tab sends roughly 85 requests a minute; the default leaves room
# for a few dozen tabs behind one NAT address.
RATE_LIMIT_PER_MINUTE = int(os.environ.get("NEXTTRACK_RATE_LIMIT", 3000))
