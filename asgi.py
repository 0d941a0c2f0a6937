"""
asgi.py -- ASGI entry point for PropDesk.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
