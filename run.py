"""
Startup script for the Substrack API.
Binds to PORT/HOST from the environment (Render and similar hosts set PORT).
"""
import logging
import os

import uvicorn

from substrack.core.config import settings

logger = logging.getLogger("substrack")

if __name__ == "__main__":
    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")
    reload = settings.environment == "development"

    logging.basicConfig(level=logging.INFO, format='%(levelname)s - %(message)s')
    logger.info(f"🚀 Starting Substrack API on {host}:{port} ({settings.environment})")

    uvicorn.run(
        "substrack.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )
