"""Flask web app for Alphabook."""

# Load environment variables from .env file before other imports
from dotenv import load_dotenv  # type: ignore[import-untyped]

load_dotenv()  # noqa: E402

import os  # noqa: E402
import logging  # noqa: E402
from typing import Optional  # noqa: E402
from flask import Flask, send_from_directory  # noqa: E402
from flask_cors import CORS  # type: ignore[import-untyped]  # noqa: E402
from flask_limiter import Limiter  # type: ignore[import-untyped]  # noqa: E402
from flask_limiter.util import get_remote_address  # type: ignore[import-untyped]  # noqa: E402
from alphabook.api import register_routes  # noqa: E402
from alphabook.config import Config, get_config  # noqa: E402
from alphabook.services import JobService, StoryService  # noqa: E402
from alphabook.settings import SettingsStore, get_settings_store  # noqa: E402
from alphabook.sweeper import TimeoutSweeper  # noqa: E402
from alphabook.utils.blob_storage import BlobStore, get_default_blob_store  # noqa: E402
from alphabook.utils.errors import register_error_handlers  # noqa: E402
from alphabook.utils.repository import StoryRepository, create_story_repository  # noqa: E402

# Configure logging
logging.basicConfig(
    level=logging.INFO if os.getenv('FLASK_ENV') != 'development' else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(
    config: Optional[Config] = None,
    repository: Optional[StoryRepository] = None,
    settings_store: Optional[SettingsStore] = None,
    blob_store: Optional[BlobStore] = None,
    job_service: Optional[JobService] = None,
) -> Flask:
    """
    Build the Flask application.

    Collaborators default to the configured backends; tests pass their own.

    Args:
        config: Configuration (get_config() if None)
        repository: Story repository
        settings_store: Settings store
        blob_store: Image blob store
        job_service: Scheduler for generation jobs

    Returns:
        Configured Flask app
    """
    config = config or get_config()

    flask_app = Flask(__name__)
    flask_app.config.from_object(config)
    CORS(flask_app)

    limiter = Limiter(
        app=flask_app,
        key_func=get_remote_address,
        default_limits=["1000 per day", "200 per hour"],
        storage_uri=config.RATELIMIT_STORAGE_URI,
        headers_enabled=True
    )

    repository = repository or create_story_repository()
    settings_store = settings_store or get_settings_store()
    blob_store = blob_store or get_default_blob_store()
    job_service = job_service or JobService(
        use_background_jobs=config.USE_BACKGROUND_JOBS,
        job_timeout=config.JOB_TIMEOUT,
    )

    flask_app.extensions["alphabook"] = {
        "story_service": StoryService(repository, settings_store, job_service, blob_store),
        "settings_store": settings_store,
        "sweeper": TimeoutSweeper(repository, config.STORY_TIMEOUT_HOURS, blob_store),
    }

    register_error_handlers(flask_app, debug=os.getenv('FLASK_ENV') == 'development')
    register_routes(flask_app, limiter)

    @flask_app.route('/media/<path:filename>')
    def media(filename: str):
        """Serve images written by the local blob store."""
        return send_from_directory(config.BLOB_DIR, filename)

    logger.info(
        f"Alphabook app created (background jobs: "
        f"{'rq' if config.USE_BACKGROUND_JOBS else 'thread'}, "
        f"storage: {'redis' if config.USE_REDIS_STORAGE else 'file'})"
    )
    return flask_app


if __name__ == '__main__':
    port = int(os.getenv('PORT', '5000'))
    create_app().run(host='0.0.0.0', port=port, debug=os.getenv('FLASK_ENV') == 'development')
