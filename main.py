"""
Zen Tasks — Entry Point.

Single entry point: `python main.py` starts the HTTP API.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

import uvicorn

from zentasks.api.server import create_app
from zentasks.config import settings

app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)
