#!/usr/bin/env python3
"""
RQ Worker for background job processing.

This worker runs story generation jobs enqueued by the web app.
"""

import sys
import argparse
import logging
from typing import List

from dotenv import load_dotenv  # type: ignore[import-untyped]

load_dotenv()  # noqa: E402

import redis.exceptions  # noqa: E402
from rq import Worker  # noqa: E402

from alphabook.config import get_config  # noqa: E402
from rq_config import get_redis_connection  # noqa: E402

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main() -> int:
    """
    Main entry point for the RQ worker script.

    Parses command-line arguments to determine which Redis queues to listen to
    and whether to run in burst mode, then starts an RQ worker.

    Returns:
        int: The exit code for the script (0 for success, 1 for error).
    """
    parser = argparse.ArgumentParser(description='RQ worker for Alphabook')
    parser.add_argument(
        '--queue',
        type=str,
        default='default',
        help='Comma-separated list of queue names to listen on (default: default)'
    )
    parser.add_argument(
        '--burst',
        action='store_true',
        help='Run in burst mode (exit after processing all jobs)'
    )

    args = parser.parse_args()

    queue_names: List[str] = [q.strip() for q in args.queue.split(',')]

    logger.info(f"Starting RQ worker for queues: {queue_names}")
    logger.info(f"Redis URL: {get_config().REDIS_URL}")

    try:
        worker = Worker(queue_names, connection=get_redis_connection())
        worker.work(burst=args.burst, logging_level='INFO')
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")
        return 0
    except redis.exceptions.ConnectionError as ce:
        logger.critical(f"Redis connection error: {ce}. Worker cannot connect.", exc_info=True)
        return 1
    except Exception as e:
        logger.error(f"An unexpected worker error occurred: {e}", exc_info=True)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
