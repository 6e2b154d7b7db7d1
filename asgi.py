"""
asgi.py -- Joins the JSON API and the HTML UI into one ASGI app.

api/ and web/ never import each other; this module is the single place that
sees both.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import app
from web.routes import router as web_router

app.include_router(web_router, tags=["Web UI"])
