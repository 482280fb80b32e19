#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Admin account checks against the static credential table in the config.
"""

import hmac
from typing import Dict, Optional

from config import config
from exceptions import AuthenticationError
from logging_config import StructuredLogger

logger = StructuredLogger(__name__)


class AdminAuthenticator:
    """Looks up admin accounts; passwords are compared in constant time."""

    def __init__(self, credentials: Optional[Dict[str, str]] = None):
        self._credentials = dict(credentials if credentials is not None else config.ADMIN_CREDENTIALS)

    def is_admin(self, username: str) -> bool:
        return username in self._credentials

    def authenticate(self, username: str, password: str) -> Dict[str, object]:
        """Verify an admin login.

        Returns:
            dict: {"authenticated": True, "username": username}

        Raises:
            AuthenticationError: Unknown user or wrong password.
        """
        expected = self._credentials.get(username)
        # Compare against a dummy for unknown users so timing does not leak them
        matches = hmac.compare_digest(
            (expected if expected is not None else "\0").encode("utf-8"),
            password.encode("utf-8")
        )
        if expected is None or not matches:
            logger.warning("Admin authentication failed.", username=username)
            raise AuthenticationError()
        logger.info("Admin authenticated.", username=username)
        return {"authenticated": True, "username": username}
