"""
Flask route handlers for the Alphabook API.

Handlers are thin: they read the request, check the shared admin or cron
secret, and delegate to the services stored on the app under
``app.extensions["alphabook"]``.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from flask import Flask
    from flask_limiter import Limiter

from flask import current_app, jsonify, request

from ..settings import validate_setting
from ..utils.auth import check_secret, require_admin, require_secret
from ..utils.errors import APIError, ValidationError

logger = logging.getLogger(__name__)

ADMIN_PASSWORD_HEADER = "X-Admin-Password"


def _services() -> Dict[str, Any]:
    return current_app.extensions["alphabook"]


def _admin_password_from_request() -> Optional[str]:
    """Admin password from the X-Admin-Password header or the adminPassword query parameter."""
    return request.headers.get(ADMIN_PASSWORD_HEADER) or request.args.get("adminPassword")


def _request_data() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def register_routes(flask_app: 'Flask', limiter_instance: 'Limiter') -> None:
    """
    Register all application routes.

    Args:
        flask_app: Flask application instance
        limiter_instance: Limiter instance for rate limiting
    """

    @flask_app.route('/api/health')
    def health():
        """Health check endpoint."""
        return jsonify({"status": "ok"})

    @flask_app.route('/api/stories', methods=['POST'])
    @limiter_instance.limit(lambda: current_app.config["CREATE_STORY_RATE_LIMIT"])
    def create_story():
        """
        Create a story and schedule its generation.

        Returns:
            202 with ``{id, status, letterCount}``; clients poll
            ``/api/story/<id>`` for progress
        """
        result = _services()["story_service"].create_story(_request_data())
        return jsonify(result), 202

    @flask_app.route('/api/stories', methods=['GET'])
    @limiter_instance.limit(lambda: current_app.config["LIST_STORIES_RATE_LIMIT"])
    def list_stories():
        """
        List stories for the gallery.

        Unlisted stories are included only with ``includeUnlisted=true`` and a
        valid admin password.
        """
        include_unlisted = request.args.get("includeUnlisted") == "true"
        if include_unlisted:
            require_admin(_admin_password_from_request(), current_app.config["ADMIN_PASSWORD"])

        stories = _services()["story_service"].list_stories(include_unlisted=include_unlisted)
        return jsonify({"stories": stories})

    @flask_app.route('/api/story/<story_id>', methods=['GET'])
    @limiter_instance.limit(lambda: current_app.config["GET_STORY_RATE_LIMIT"])
    def get_story(story_id: str):
        return jsonify(_services()["story_service"].get_story(story_id))

    @flask_app.route('/api/story/<story_id>', methods=['DELETE'])
    def delete_story(story_id: str):
        """Delete a story and its images (admin only)."""
        require_admin(_admin_password_from_request(), current_app.config["ADMIN_PASSWORD"])
        _services()["story_service"].delete_story(story_id)
        return jsonify({"success": True, "message": "Story deleted successfully"})

    @flask_app.route('/api/story/<story_id>/visibility', methods=['POST'])
    def update_visibility(story_id: str):
        """Set a story's visibility to public or unlisted (admin only)."""
        require_admin(_admin_password_from_request(), current_app.config["ADMIN_PASSWORD"])
        data = _request_data()
        story = _services()["story_service"].update_visibility(story_id, data.get("visibility"))
        return jsonify({"success": True, "story": story})

    @flask_app.route('/api/settings', methods=['GET'])
    def get_setting():
        """Read a single setting by ``key``."""
        # A supplied password must be right even though none is required
        admin_password = _admin_password_from_request()
        if admin_password:
            require_admin(admin_password, current_app.config["ADMIN_PASSWORD"])

        key = request.args.get("key")
        if not key:
            raise ValidationError("Key parameter is required", details={"field": "key"})

        value = _services()["settings_store"].get(key)
        if value is None:
            raise ValidationError(f"Unknown setting: {key}", details={"field": "key"})
        return jsonify({"key": key, "value": value})

    @flask_app.route('/api/settings', methods=['POST'])
    def update_setting():
        """Update a setting (admin only)."""
        require_admin(_admin_password_from_request(), current_app.config["ADMIN_PASSWORD"])

        data = _request_data()
        key = data.get("key")
        if not key:
            raise ValidationError("Key is required", details={"field": "key"})
        if "value" not in data:
            raise ValidationError("Value is required", details={"field": "value"})

        try:
            value = validate_setting(key, data["value"])
        except ValueError as e:
            raise ValidationError(str(e), details={"field": "value", "key": key})

        if not _services()["settings_store"].set(key, value):
            raise APIError("Failed to update setting", "SETTINGS_UPDATE_FAILED", status_code=500)

        return jsonify({
            "success": True,
            "message": "Setting updated successfully",
            "key": key,
            "value": value,
        })

    @flask_app.route('/api/settings/all', methods=['GET'])
    def get_all_settings():
        return jsonify({"settings": _services()["settings_store"].get_all()})

    @flask_app.route('/api/admin/check-auth', methods=['GET'])
    def check_admin_auth():
        if not check_secret(_admin_password_from_request(), current_app.config["ADMIN_PASSWORD"]):
            return jsonify({"authenticated": False}), 401
        return jsonify({"authenticated": True})

    @flask_app.route('/api/cron/cleanup', methods=['GET'])
    def cleanup_timed_out_stories():
        """
        Delete stories stuck in a generating state.

        Requires ``cronSecret``; the secret is checked before any story is read.
        """
        require_secret(request.args.get("cronSecret"), current_app.config["CRON_SECRET"])
        logger.info("Starting cleanup of timed out stories")
        result = _services()["sweeper"].sweep()
        return jsonify(result)
