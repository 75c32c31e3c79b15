"""
ASGI entrypoint: `backend.asgi:app` pour uvicorn / gunicorn (UvicornWorker).
La configuration (routers, middlewares, lifespan) est centralisée dans backend.app_setup.factory.
"""

from backend.app import app

__all__ = ["app"]
