"""
Main entry point for the conflict monitoring service.

Serves the HTTP API and, unless SCHEDULER_MODE=disabled, starts the
recurring monitoring jobs on startup.
"""

import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv

# Add project root to PYTHONPATH so imports work when running this script directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from monitor.api import create_app
from monitor.config import get_settings
from monitor.plugin_loader import list_available, refresh_registry
from monitor.services import build_services


def main():
    """Main entry point: configure logging, wire services, serve."""
    # Load .env file
    load_dotenv()
    settings = get_settings()

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s"
    )
    logger = logging.getLogger(__name__)

    logger.info("Discovering plugins...")
    refresh_registry()
    available_transforms = list_available()
    logger.info(f"Discovered {len(available_transforms)} transform classes:")
    for name, cls in available_transforms.items():
        logger.info(f"  - {name}: {cls.__name__}")

    services = build_services(settings)
    logger.info(f"Database: {settings.database_url}")
    logger.info(f"Scheduler mode: {settings.scheduler_mode} ({services.scheduler.timezone})")
    for job in services.scheduler.registry:
        state = "active" if job.active else "inactive"
        logger.info(f"  - {job.name}: {job.schedule} -> {job.endpoint} ({state})")

    app = create_app(services)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
