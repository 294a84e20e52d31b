"""Bitbucket credential resolution.

Resolution order (stops at first success):
  1. BITBUCKET_APP_PASSWORD with BITBUCKET_USERNAME, or with the active
     profile's `user` option when the variable is unset -> HTTP Basic auth
  2. BITBUCKET_TOKEN (repository/workspace access token) -> Bearer auth
  3. The app password `bbpr auth login` saved in the OS keyring for the
     profile's `user` -> HTTP Basic auth
"""

from __future__ import annotations

import logging
import os

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "bbpr"


def resolve_bitbucket_credentials(profile_user: str | None = None) -> tuple[str, str] | str | None:
    """Return ``(username, app_password)``, a bearer token, or None.

    Never raises; callers decide whether anonymous access is acceptable.
    """
    password = os.environ.get("BITBUCKET_APP_PASSWORD")
    if password:
        username = os.environ.get("BITBUCKET_USERNAME") or profile_user
        if username:
            logger.debug("Using Basic auth for Bitbucket user %s.", username)
            return username, password
        logger.warning("BITBUCKET_APP_PASSWORD is set but no username is configured; ignoring it.")

    token = os.environ.get("BITBUCKET_TOKEN")
    if token:
        logger.debug("Using Bearer token from BITBUCKET_TOKEN.")
        return token

    if profile_user:
        stored = load_app_password(profile_user)
        if stored:
            logger.debug("Using app password from the keyring for %s.", profile_user)
            return profile_user, stored

    return None


def load_app_password(username: str) -> str | None:
    try:
        return keyring.get_password(KEYRING_SERVICE, username)
    except KeyringError as e:
        logger.debug("Keyring lookup for %s failed: %s", username, e)
        return None


def save_app_password(username: str, password: str) -> None:
    keyring.set_password(KEYRING_SERVICE, username, password)


def delete_app_password(username: str) -> bool:
    """Remove the stored password. Returns False if none was stored."""
    try:
        keyring.delete_password(KEYRING_SERVICE, username)
    except PasswordDeleteError:
        return False
    return True
