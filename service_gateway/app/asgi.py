"""
ASGI entry point for serverless platforms.

The platform imports ``app`` from this module and serves it itself, so no
embedded server is started here.
"""

from .main import create_app

app = create_app()
