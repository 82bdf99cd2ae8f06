"""
asgi.py -- Assembles the deployable SessionGuard app.

api/ and web/ never import each other; this module is where they meet. It
takes the app from api/main.py, adds the HTML routes, and installs the
handlers that turn auth failures into pages.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app
from web.errors import register_error_handlers
from web.routes import router as html_router

app.include_router(html_router, tags=["Web UI"])
register_error_handlers(app)
