"""
API package - FastAPI routes and schemas.
"""

from nodeflow.api.routes import execute, workflows, websocket

__all__ = ["execute", "workflows", "websocket"]
