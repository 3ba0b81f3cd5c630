from __future__ import annotations

from typing import Any

import bcrypt
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from ..config import settings
from ..errors import AuthenticationError


GOOGLE_PROVIDER = "google"


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_google_credential(credential: str) -> dict[str, Any]:
    """Verify a Google ID token and return its claims."""
    if not settings.google_client_id:
        raise RuntimeError("GOOGLE_CLIENT_ID is not configured.")
    try:
        claims = id_token.verify_oauth2_token(credential, google_requests.Request(), settings.google_client_id)
    except ValueError as exc:
        raise AuthenticationError("Invalid Google token") from exc

    if not claims.get("email"):
        raise AuthenticationError("Google account does not have an email")
    return claims
