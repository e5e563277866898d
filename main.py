#!/usr/bin/env python3
"""
NextTrack party server - Entry Point
Vote-driven track selection + rate limiting + idle party cleanup
"""
import asyncio
import logging
import socket
import time
from collections import defaultdict
from typing import Optional

from aiohttp import web

from nexttrack import config
from nexttrack.api import (
    CATALOG_KEY, ENGINE_KEY, STORE_KEY, TABLE_KEY,
    api_current_track, api_heartbeat, api_health, api_members,
    api_my_vote, api_party_create, api_vote, api_votes,
)
from nexttrack.catalog import load_catalog
from nexttrack.errors import PartyError, StoreError
from nexttrack.scheduler import PlaybackScheduler
from nexttrack.selection import SelectionEngine
from nexttrack.state import PartyStateTable
from nexttrack.store import VoteStore
from nexttrack.utils import now_ms

logger = logging.getLogger("nexttrack")

CLEANUP_TASK_KEY = web.AppKey("cleanup_task", asyncio.Task)

# Rate limiting storage
rate_limit_store = defaultdict(list)


@web.middleware
async def error_middleware(request, handler):
    """Turn PartyError into a JSON error response"""
    logger.debug(f"{request.method} {request.path}")
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except PartyError as e:
        if isinstance(e, StoreError):
            logger.error(f"Store failure on {request.method} {request.path}: {e.message}")
        return web.json_response({"ok": False, "error": e.message}, status=e.status)
    except Exception:
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return web.json_response({"ok": False, "error": "Internal server error"}, status=500)


@web.middleware
async def rate_limit_middleware(request, handler):
    """Simple rate limiting: RATE_LIMIT_PER_MINUTE requests per minute per IP"""
    limit = config.RATE_LIMIT_PER_MINUTE
    if limit <= 0:
        return await handler(request)

    ip = request.remote
    now = time.time()

    # Clean old entries
    rate_limit_store[ip] = [t for t in rate_limit_store[ip] if now - t < 60]

    # Check limit
    if len(rate_limit_store[ip]) >= limit:
        logger.warning(f"Rate limit exceeded for {ip}")
        return web.json_response(
            {"ok": False, "error": "Rate limit exceeded"},
            status=429
        )

    rate_limit_store[ip].append(now)
    return await handler(request)


def prune_rate_limit_store(now: float) -> int:
    """Drop IPs with no request in the last minute"""
    idle = [ip for ip, hits in rate_limit_store.items() if not any(now - t < 60 for t in hits)]
    for ip in idle:
        del rate_limit_store[ip]
    return len(idle)


async def cleanup_idle_parties(app):
    """Background task: evict parties nobody has touched for a while and
    forget rate-limit entries for IPs that went quiet"""
    idle_ms = config.PARTY_IDLE_TIMEOUT * 1000
    while True:
        await asyncio.sleep(config.CLEANUP_INTERVAL)
        try:
            prune_rate_limit_store(time.time())
            if idle_ms <= 0:
                continue
            evicted = app[TABLE_KEY].evict_idle(now_ms(), idle_ms)
            if evicted:
                logger.info(f"🧹 Evicted {len(evicted)} idle parties")
        except Exception as e:
            logger.error(f"Cleanup task error: {e}")


def create_app(store: Optional[VoteStore] = None) -> web.Application:
    """Create and configure the aiohttp application"""
    app = web.Application(middlewares=[error_middleware, rate_limit_middleware])

    async def start_party_engine(app):
        vote_store = store
        if vote_store is None:
            if config.DATABASE_URL.startswith("sqlite:///"):
                config.DATA_DIR.mkdir(parents=True, exist_ok=True)
            vote_store = VoteStore(config.DATABASE_URL)

        catalog = await load_catalog(vote_store)
        table = PartyStateTable()
        scheduler = PlaybackScheduler(table)

        app[STORE_KEY] = vote_store
        app[CATALOG_KEY] = catalog
        app[TABLE_KEY] = table
        app[ENGINE_KEY] = SelectionEngine(catalog, vote_store, table, scheduler)

        app[CLEANUP_TASK_KEY] = asyncio.create_task(cleanup_idle_parties(app))

    async def stop_party_engine(app):
        task = app.get(CLEANUP_TASK_KEY)
        if task is not None:
            task.cancel()
        if TABLE_KEY in app:
            app[TABLE_KEY].close()
        if STORE_KEY in app:
            app[STORE_KEY].dispose()

    app.on_startup.append(start_party_engine)
    app.on_cleanup.append(stop_party_engine)

    # API routes
    app.router.add_get("/health", api_health)
    app.router.add_post("/api/party", api_party_create)
    app.router.add_get("/api/party/{party_code}/currentTrack", api_current_track)
    app.router.add_get("/api/party/{party_code}/votes", api_votes)
    app.router.add_get("/api/party/{party_code}/myvote/{session_id}", api_my_vote)
    app.router.add_post("/api/party/{party_code}/vote", api_vote)
    app.router.add_post("/api/party/{party_code}/heartbeat", api_heartbeat)
    app.router.add_get("/api/party/{party_code}/members", api_members)

    return app


def get_local_ip():
    """Get local WiFi IP address"""
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except Exception:
        return "localhost"


def main():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    app = create_app()
    local_ip = get_local_ip()

    logger.info(f"🚀 Starting server on {config.SERVER_HOST}:{config.PORT}")
    logger.info(f"💡 Access at: http://{local_ip}:{config.PORT}")

    web.run_app(app, host=config.SERVER_HOST, port=config.PORT)


if __name__ == "__main__":
    main()
