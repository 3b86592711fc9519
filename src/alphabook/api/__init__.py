"""HTTP API for Alphabook."""

from .routes import register_routes

__all__ = ["register_routes"]
