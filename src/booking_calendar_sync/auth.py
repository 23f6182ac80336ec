"""
Token lookup and refresh, run once before each reconciliation.
"""

import logging
import time

import httpx

from .db import BookingStore
from .models import SyncConfig
from .models import Token
from .models import Unauthenticated

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

logger = logging.getLogger(__name__)


def can_refresh(token: Token, config: SyncConfig) -> bool:
    return bool(token.refresh_token and config.client_id and config.client_secret)


def refresh_access_token(token: Token, config: SyncConfig, http: httpx.Client) -> Token:
    """Exchange the refresh token for a new access token."""
    try:
        response = http.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": config.client_id,
                "client_secret": config.client_secret,
                "refresh_token": token.refresh_token,
                "grant_type": "refresh_token",
            },
        )
    except httpx.HTTPError as e:
        raise Unauthenticated(f"Token refresh failed: {e}") from e

    if response.status_code != 200:
        raise Unauthenticated(f"Token refresh failed: {response.text}")

    try:
        tokens = response.json()
    except ValueError as e:
        raise Unauthenticated(f"Unparsable token refresh response: {response.text[:200]}") from e
    access_token = tokens.get("access_token")
    if not access_token:
        raise Unauthenticated("No access token in refresh response")

    expires_in = int(tokens.get("expires_in", 3600))
    return Token(
        access_token=access_token,
        refresh_token=tokens.get("refresh_token") or token.refresh_token,
        expiry=int(time.time()) + expires_in,
    )


def get_valid_token(
    store: BookingStore,
    config: SyncConfig,
    http: httpx.Client | None = None,
    now: float | None = None,
) -> Token:
    """
    Return a usable token for ``config.user_id``, refreshing it if expired.

    Raises Unauthenticated when no token is stored, or when it has expired
    and cannot be refreshed.
    """
    token = store.get_token(config.user_id)
    if token is None or not token.access_token:
        raise Unauthenticated(f"Google Calendar token not found for user {config.user_id}")

    now = time.time() if now is None else now
    if not token.is_expired(now):
        return token

    if not can_refresh(token, config):
        raise Unauthenticated(
            f"Google Calendar token for user {config.user_id} expired and cannot be refreshed"
        )

    logger.info("Google Calendar token expired, refreshing...")
    owns_http = http is None
    http = http or httpx.Client(timeout=config.request_timeout)
    try:
        new_token = refresh_access_token(token, config, http)
    finally:
        if owns_http:
            http.close()

    store.save_token(config.user_id, new_token)
    logger.info("Google Calendar token refreshed")
    return new_token
