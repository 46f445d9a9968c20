#!/usr/bin/env python3
"""
Factory Ledger Entry Point

Starts the FastAPI server with host, port and logging taken from the
FACTORY_LEDGER_* environment configuration.
"""

import sys

from factory_ledger.config import get_config
from factory_ledger.logging_config import configure_logging
from factory_ledger.api import run_server


if __name__ == "__main__":
    config = get_config()
    logger = configure_logging(config)
    logger.info(f"Starting Factory Ledger API on {config.api_host}:{config.api_port}")

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        logger.info("Shutting down Factory Ledger API")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
