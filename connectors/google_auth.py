import os
import json
from typing import Optional, Tuple

import httpx
from loguru import logger

AUTH_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
DEFAULT_REDIRECT_URI = "http://localhost:8000/auth/callback"
SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def _client_id_and_redirect() -> Tuple[Optional[str], str]:
    """Client id from GOOGLE_CLIENT_ID, else from the OAuth client-secrets file."""
    redirect_uri = os.getenv("GOOGLE_REDIRECT_URI", DEFAULT_REDIRECT_URI)
    client_id = os.getenv("GOOGLE_CLIENT_ID")
    if client_id:
        return client_id, redirect_uri

    path = os.getenv("GOOGLE_OAUTH_CREDENTIALS_PATH", "./credentials/credentials.json")
    try:
        with open(path, "r") as f:
            parsed = json.load(f)
    except FileNotFoundError:
        logger.warning(f"OAuth client secrets not found at {path}")
        return None, redirect_uri
    except json.JSONDecodeError:
        logger.error(f"Invalid JSON in OAuth client secrets {path}")
        return None, redirect_uri

    block = parsed.get("installed") or parsed.get("web") or {}
    return block.get("client_id"), redirect_uri


def get_auth_url() -> Optional[str]:
    """Google consent URL the caller can visit to (re)authorize Sheets access."""
    client_id, redirect_uri = _client_id_and_redirect()
    if not client_id:
        return None
    url = httpx.URL(AUTH_ENDPOINT, params={
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "access_type": "offline",
        "prompt": "consent",
    })
    return str(url)


def is_authorized(auth_token: Optional[str]) -> bool:
    # Expired tokens surface later as a 401 from the Sheets API.
    return bool(auth_token and str(auth_token).strip())
