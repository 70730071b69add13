#!/usr/bin/env python3
import logging
import os

import uvicorn

from app import DATA_FILE, app

PORT = int(os.getenv("PORT", "3001"))
HOST = os.getenv("HOST", "0.0.0.0")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logger = logging.getLogger("server")


def main():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("=" * 50)
    logger.info("Sustainability Actions API Server")
    logger.info("Running on port: %d", PORT)
    logger.info("Server URL: http://localhost:%d", PORT)
    logger.info("Data file: %s", DATA_FILE)
    logger.info("=" * 50)
    # uvicorn handles SIGINT/SIGTERM and shuts down cleanly.
    uvicorn.run(app, host=HOST, port=PORT, log_level=LOG_LEVEL.lower(), access_log=False)


if __name__ == "__main__":
    main()
