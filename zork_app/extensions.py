from typing import Optional

from flask import current_app
from redis import Redis


def get_redis_client() -> Optional[Redis]:
    """Return the shared Redis client, creating one from REDIS_URL if the app has none yet."""
    client = getattr(current_app, "redis_client", None)
    if client is None and current_app.config.get("REDIS_URL"):
        client = Redis.from_url(current_app.config["REDIS_URL"])
        current_app.redis_client = client
    return client
