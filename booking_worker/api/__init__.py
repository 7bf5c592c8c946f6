"""HTTP trigger endpoint for the dispatch cycle."""

from .app import create_app
from .auth import extract_bearer_token, is_authorized
from .routes import CORS_HEADERS, router

__all__ = ["create_app", "router", "is_authorized", "extract_bearer_token", "CORS_HEADERS"]
