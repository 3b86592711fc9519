"""
RQ (Redis Queue) configuration for background jobs.
"""

from redis import Redis
from rq import Queue

from alphabook.config import get_config


def get_redis_connection() -> Redis:
    """
    Get the Redis connection used by RQ.

    Uses REDIS_URL from the application config. RQ stores pickled job
    payloads, so unlike the story repository this connection does not decode
    responses.

    Returns:
        Redis: A Redis connection instance configured from REDIS_URL.
    """
    return Redis.from_url(get_config().REDIS_URL)


def get_queue(name: str = 'default') -> Queue:
    """
    Get an RQ queue by name.

    Args:
        name: Queue name. Defaults to 'default' if not specified.

    Returns:
        Queue: An RQ Queue instance connected to the specified queue.
    """
    return Queue(name, connection=get_redis_connection())
