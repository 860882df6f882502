"""
Rankboard entry point.

    $ rankboard            # serve on API_HOST:API_PORT
    $ uvicorn rankboard.main:app --reload
"""

from __future__ import annotations

import uvicorn

from rankboard.api.app import create_app
from rankboard.core.config.config import Config
from rankboard.core.logging.logger import get_logger, shutdown_logging

logger = get_logger(__name__)

app = create_app()


def main() -> None:
    logger.info(
        "Starting Rankboard API",
        extra={"host": Config.API_HOST, "port": Config.API_PORT},
    )
    try:
        # log_config=None keeps uvicorn on the already-configured root logger.
        uvicorn.run(app, host=Config.API_HOST, port=Config.API_PORT, log_config=None)
    finally:
        shutdown_logging()


if __name__ == "__main__":
    main()
