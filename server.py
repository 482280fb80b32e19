#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Uvicorn server entry point for the YouTube Lens backend.

Handles environment loading (.env), final logging configuration based on environment,
and starts the Uvicorn server process.
"""

import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from config import config
from logging_config import setup_logging


def main():
    # 1. Load Environment Variables from .env file (if it exists)
    env_path = Path(".") / ".env"
    if env_path.is_file():
        load_dotenv(dotenv_path=env_path, override=True)
        print(f"Loaded environment variables from: {env_path.resolve()}")
    else:
        print(".env file not found, using system environment variables.")

    # 2. Re-read configuration AFTER loading .env
    config.load_from_env()

    # 3. Setup Logging based on final configuration
    log_level_console = getattr(logging, os.environ.get("LOG_LEVEL_CONSOLE", "INFO").upper(), logging.INFO)
    log_level_file = getattr(logging, os.environ.get("LOG_LEVEL_FILE", "DEBUG").upper(), logging.DEBUG)
    log_structured = os.environ.get("LOG_STRUCTURED", "true").lower() in ("true", "1", "yes")
    # An empty LOG_FILE disables the file handler (read-only serverless filesystems)
    log_file = os.environ.get("LOG_FILE", "youtube_lens_backend.log") or None

    setup_logging(
        log_level_console=log_level_console,
        log_level_file=log_level_file,
        structured=log_structured,
        log_file=log_file
    )

    if not config.ADMIN_CREDENTIALS:
        logging.info("No ADMIN_CREDENTIALS configured; adminAuth will reject every login.")

    # 4. Get Uvicorn Server Parameters from Environment/Defaults
    run_host = os.environ.get("HOST", "127.0.0.1")
    try:
        run_port = int(os.environ.get("PORT", "8000"))
    except ValueError:
        logging.warning(f"Invalid PORT environment variable '{os.environ.get('PORT')}', using default 8000.")
        run_port = 8000
    try:
        # The app keeps no shared request state, so several workers are safe
        run_workers = int(os.environ.get("WEB_CONCURRENCY", "1"))
    except ValueError:
        logging.warning(f"Invalid WEB_CONCURRENCY environment variable "
                        f"'{os.environ.get('WEB_CONCURRENCY')}', using default 1.")
        run_workers = 1

    # Reload should only be enabled for development
    debug_mode = os.environ.get("DEBUG", "false").lower() in ("true", "1", "yes")
    uvicorn_log_level = os.environ.get("UVICORN_LOG_LEVEL", "debug" if debug_mode else "info").lower()

    # 5. Start the Uvicorn Server
    logging.info(f"Starting Uvicorn server on http://{run_host}:{run_port}")
    logging.info(f"Debug mode: {debug_mode}, Workers: {run_workers}, Uvicorn Log Level: {uvicorn_log_level}")

    uvicorn.run(
        "main:app",
        host=run_host,
        port=run_port,
        reload=debug_mode,
        workers=run_workers if not debug_mode else 1,
        log_level=uvicorn_log_level,
    )


if __name__ == "__main__":
    main()
