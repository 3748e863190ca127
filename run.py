#!/usr/bin/env python3
"""
EMI Scheduler Entry Point

Starts the FastAPI server with the EMI scheduler.
"""

import sys

import uvicorn

from emi_scheduler.api import create_app
from emi_scheduler.config import get_config
from emi_scheduler.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, config.log_format, config.log_file)

    print("Starting EMI Scheduler...")
    print(f"Storage: {config.storage_type}")
    print(f"API available at: http://{config.api_host}:{config.api_port}")
    print(f"Documentation at: http://{config.api_host}:{config.api_port}/docs")
    print()

    try:
        uvicorn.run(create_app(), host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        print("\nShutting down EMI Scheduler...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
