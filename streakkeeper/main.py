"""Main entry point for the StreakKeeper API server"""
import logging
import os

import uvicorn

from streakkeeper.api.server import create_api_application

logger = logging.getLogger(__name__)

app = create_api_application()


def main() -> None:
    """Serve the API with uvicorn"""
    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    logger.info(f"Starting StreakKeeper API on {host}:{port}")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
