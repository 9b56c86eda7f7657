"""FastAPI application exposing project archive endpoints."""

from .app import create_app

__all__ = ["create_app"]
