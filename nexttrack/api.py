"""
HTTP API handlers for the party server
"""
import logging

from aiohttp import web

from .errors import StateNotFoundError, ValidationError
from .store import VOTE_TYPES
from .utils import generate_party_code, now_ms

logger = logging.getLogger("nexttrack")

# Application keys (populated on startup, see main.py)
STORE_KEY = web.AppKey("store", object)
CATALOG_KEY = web.AppKey("catalog", object)
TABLE_KEY = web.AppKey("table", object)
ENGINE_KEY = web.AppKey("engine", object)


async def _read_json(request: web.Request) -> dict:
    """JSON object body; an empty body reads as {}"""
    if not request.body_exists:
        return {}
    try:
        data = await request.json()
    except ValueError:
        # JSONDecodeError, or UnicodeDecodeError from a non-UTF-8 body
        raise ValidationError("Request body must be JSON")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _party_code(request: web.Request) -> str:
    """Party code from the path; any request on a party counts as activity"""
    code = request.match_info["party_code"]
    request.app[TABLE_KEY].mark_active(code, now_ms())
    return code

# ============================================================
# PARTIES
# ============================================================

async def api_party_create(request: web.Request) -> web.Response:
    """Mint a party code that is not in use yet"""
    table = request.app[TABLE_KEY]
    code = generate_party_code()
    while code in table:
        code = generate_party_code()
    table.mark_active(code, now_ms())
    logger.info(f"🎉 Party created: {code}")
    return web.json_response({"partyCode": code})


async def api_health(request: web.Request) -> web.Response:
    return web.json_response({
        "ok": True,
        "parties": len(request.app[TABLE_KEY]),
        "tracks": len(request.app[CATALOG_KEY]),
    })

# ============================================================
# PLAYBACK
# ============================================================

async def api_current_track(request: web.Request) -> web.Response:
    """Current track for the party; starts playback if nothing is playing"""
    code = _party_code(request)
    playing = await request.app[ENGINE_KEY].current_track(code)
    return web.json_response(playing.to_dict())

# ============================================================
# VOTING
# ============================================================

async def api_votes(request: web.Request) -> web.Response:
    """Up/down vote totals for the current track"""
    code = _party_code(request)
    playing = request.app[TABLE_KEY].get_current(code)
    if playing is None:
        return web.json_response({"upvotes": 0, "downvotes": 0})

    upvotes, downvotes = await request.app[STORE_KEY].vote_counts(code, playing.track_id)
    return web.json_response({"upvotes": upvotes, "downvotes": downvotes})


async def api_my_vote(request: web.Request) -> web.Response:
    """This session's vote on the current track, if any"""
    code = _party_code(request)
    session_id = request.match_info["session_id"]
    playing = request.app[TABLE_KEY].get_current(code)
    if playing is None:
        return web.json_response({"myVote": None})

    vote = await request.app[STORE_KEY].session_vote(code, playing.track_id, session_id)
    return web.json_response({"myVote": vote})


async def api_vote(request: web.Request) -> web.Response:
    """Record (or change) this session's vote on the current track"""
    code = _party_code(request)
    playing = request.app[TABLE_KEY].get_current(code)
    if playing is None:
        raise StateNotFoundError("No track playing")

    data = await _read_json(request)
    vote = data.get("vote")
    session_id = data.get("sessionId")
    if vote not in VOTE_TYPES:
        raise ValidationError('Vote must be "up" or "down"')
    if not session_id:
        raise ValidationError("Session ID required")

    await request.app[STORE_KEY].record_vote(code, playing.track_id, str(session_id), vote)
    logger.debug(f"[{code}] {session_id} voted {vote} on {playing.track_id}")
    return web.json_response({"success": True})

# ============================================================
# PRESENCE TRACKING
# ============================================================

async def api_heartbeat(request: web.Request) -> web.Response:
    """Mark a session as present in the party"""
    code = _party_code(request)
    data = await _read_json(request)
    session_id = data.get("sessionId")
    if not session_id:
        raise ValidationError("Session ID required")

    request.app[TABLE_KEY].touch_member(code, str(session_id), now_ms())
    return web.json_response({"success": True})


async def api_members(request: web.Request) -> web.Response:
    """Number of sessions seen recently; stale sessions are dropped"""
    code = _party_code(request)
    count = request.app[TABLE_KEY].sweep_members(code, now_ms())
    return web.json_response({"count": count})
