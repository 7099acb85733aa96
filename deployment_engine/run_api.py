# deployment_engine/run_api.py
"""Run the deployment HTTP API."""

import logging

import uvicorn

from deployment_engine.api.main import app
from deployment_engine.config import settings

# Setup logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    logger.info("=" * 80)
    logger.info("🚀 DEPLOYMENT ENGINE API")
    logger.info("=" * 80)
    logger.info(f"Backend: {settings.backend}")
    logger.info(f"Workspace: {settings.workspace}")
    logger.info(f"Listening on {settings.api_host}:{settings.api_port}")
    logger.info("=" * 80)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
