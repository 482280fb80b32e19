#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Configuration module for the YouTube Lens backend.

Defines configuration parameters and loads values from environment variables.
API keys for the YouTube Data API are never configured here: they are supplied
by the browser client on every request.
"""

import os
import logging
from typing import Dict, Any

# Initialize a basic logger for config loading issues
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Default configuration values
_CONFIG_DEFAULTS: Dict[str, Any] = {
    # YouTube API Settings
    "BATCH_SIZE": 50,  # Max ids / maxResults accepted by the YouTube API per call
    "DEFAULT_MAX_RESULTS": 50,
    "MAX_RESULTS_LIMIT": 500,  # Upper bound on results a single search may request
    "DEFAULT_REGION_CODE": "KR",
    "SHORTS_MAX_SECONDS": 60,

    # Timeouts
    "API_TIMEOUT_SECONDS": 20.0,  # Timeout for a single YouTube API request
    "TRANSLATE_TIMEOUT_SECONDS": 10.0,
    "TRANSLATE_CONCURRENCY": 5,  # Concurrent segment translations

    # Translation providers
    "DEEPL_API_KEY": "",
    "DEEPL_API_URL": "https://api-free.deepl.com/v2/translate",
    "GOOGLE_TRANSLATE_URL": "https://translate.googleapis.com/translate_a/single",
    "MYMEMORY_URL": "https://api.mymemory.translated.net/get",

    # Admin lookup table, "user:password" pairs
    "ADMIN_CREDENTIALS": {},

    # Presentation
    "DISPLAY_UTC_OFFSET_HOURS": 9,  # Formatted publish dates are shown in KST

    # Web Server
    "DEFAULT_ENCODING": "utf-8",
    "MAX_CONTENT_LENGTH": 5 * 1024 * 1024,  # 5MB max POST body size

    # CORS
    "ALLOWED_ORIGINS": ["*"],
}


class Config:
    """Configuration class that loads values from environment variables."""

    def __init__(self, load_from_env=True):
        """Initialize configuration with default values and optionally from environment.

        Args:
            load_from_env: Whether to load values from environment variables
        """
        for key, value in _CONFIG_DEFAULTS.items():
            # Copy mutable defaults so instances never share them
            setattr(self, key, value.copy() if isinstance(value, (dict, list)) else value)

        if load_from_env:
            self.load_from_env()

    def load_from_env(self):
        """Load configuration values from environment variables."""
        self.DEEPL_API_KEY = os.environ.get("DEEPL_API_KEY", self.DEEPL_API_KEY)
        self.DEEPL_API_URL = os.environ.get("DEEPL_API_URL", self.DEEPL_API_URL)
        self.DEFAULT_REGION_CODE = os.environ.get("DEFAULT_REGION_CODE", self.DEFAULT_REGION_CODE).upper()

        env_origins = os.environ.get("ALLOWED_ORIGINS", "")
        if env_origins:
            origins = [origin.strip() for origin in env_origins.split(",")]
            self.ALLOWED_ORIGINS = [o for o in origins if o]
            logger.info(f"CORS origins set from environment: {self.ALLOWED_ORIGINS}")

        env_admins = os.environ.get("ADMIN_CREDENTIALS", "")
        if env_admins:
            self.ADMIN_CREDENTIALS = self._parse_credentials(env_admins)
            logger.info(f"Loaded {len(self.ADMIN_CREDENTIALS)} admin account(s) from environment.")

        self._load_int_from_env("BATCH_SIZE")
        self._load_int_from_env("DEFAULT_MAX_RESULTS")
        self._load_int_from_env("MAX_RESULTS_LIMIT")
        self._load_int_from_env("SHORTS_MAX_SECONDS")
        self._load_int_from_env("TRANSLATE_CONCURRENCY")
        self._load_int_from_env("DISPLAY_UTC_OFFSET_HOURS")
        self._load_int_from_env("MAX_CONTENT_LENGTH")
        self._load_float_from_env("API_TIMEOUT_SECONDS")
        self._load_float_from_env("TRANSLATE_TIMEOUT_SECONDS")

        # The API hard limit is 50; never batch above it
        if not 1 <= self.BATCH_SIZE <= 50:
            logger.warning(f"BATCH_SIZE {self.BATCH_SIZE} outside 1..50, using 50.")
            self.BATCH_SIZE = 50

    @staticmethod
    def _parse_credentials(raw: str) -> Dict[str, str]:
        """Parse a "user:password,user2:password2" string into a lookup table.

        Args:
            raw: The raw environment value

        Returns:
            dict: username -> password
        """
        table: Dict[str, str] = {}
        for pair in raw.split(","):
            username, sep, password = pair.strip().partition(":")
            if not sep or not username:
                logger.warning("Ignoring malformed ADMIN_CREDENTIALS entry.")
                continue
            table[username] = password
        return table

    def _load_int_from_env(self, key):
        """Load an integer value from environment variable.

        Args:
            key: The configuration key to load

        Returns:
            bool: True if the value was loaded, False otherwise
        """
        env_value = os.environ.get(key)
        if env_value is not None:
            try:
                setattr(self, key, int(env_value))
                return True
            except ValueError:
                logger.warning(f"Invalid integer value for {key}: {env_value}")
        return False

    def _load_float_from_env(self, key):
        """Load a float value from environment variable.

        Args:
            key: The configuration key to load

        Returns:
            bool: True if the value was loaded, False otherwise
        """
        env_value = os.environ.get(key)
        if env_value is not None:
            try:
                setattr(self, key, float(env_value))
                return True
            except ValueError:
                logger.warning(f"Invalid float value for {key}: {env_value}")
        return False


# Create a single instance of Config to be imported by other modules
config = Config(load_from_env=True)
