"""
asgi.py -- ASGI entry point for the Tabitha Home records API.

The application itself is assembled in api/main.py; this module is what
process managers and uvicorn point at, so deployment config never needs to
know the package layout.

Run with:  uvicorn asgi:app --reload
           python asgi.py           (HOST / PORT from core.config)
"""

import uvicorn

from api.main import app
from core.config import get_settings

__all__ = ["app"]


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("asgi:app", host=settings.host, port=settings.port, reload=settings.debug)
