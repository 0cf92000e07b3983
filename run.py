"""Uvicorn launcher for the market advisor API.

Usage:
    python run.py              # reload follows DEBUG (on in development)
    python run.py --no-reload  # production-like
"""

import sys

import uvicorn

from app.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG and "--no-reload" not in sys.argv,
        timeout_keep_alive=int(settings.ADVISOR_TIMEOUT_SECONDS),
    )
