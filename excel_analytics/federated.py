"""
federated.py — Firebase ID Token Verification
Excel Analytics API
"""

import google.auth.exceptions
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import id_token as google_id_token
from loguru import logger
from starlette.concurrency import run_in_threadpool

from excel_analytics.config import settings
from excel_analytics.errors import Unauthenticated


def _verify_sync(token: str) -> dict:
    return google_id_token.verify_firebase_token(
        token, GoogleAuthRequest(), audience=settings.FIREBASE_PROJECT_ID,
    )


async def verify_id_token(token: str) -> dict:
    """Return the verified claims of a Firebase ID token (certificate fetch runs off-loop)."""
    if not settings.FIREBASE_PROJECT_ID:
        logger.error("FIREBASE_PROJECT_ID not configured → federated login disabled.")
        raise Unauthenticated("Federated login is not available")
    try:
        claims = await run_in_threadpool(_verify_sync, token)
    except (ValueError, google.auth.exceptions.GoogleAuthError) as e:
        logger.warning(f"Firebase token rejected: {e}")
        raise Unauthenticated("Invalid federated credential")
    if not claims:
        raise Unauthenticated("Invalid federated credential")
    return claims
