from __future__ import annotations

import redis

# Session writes happen inside the commit lock; a hung server must not stall it.
SOCKET_TIMEOUT_SECONDS = 2.0


def create_redis(url: str) -> redis.Redis:
    # decode_responses=True => the stored session document comes back as str
    return redis.Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
    )
