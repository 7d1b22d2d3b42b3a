"""
Zen Tasks — Google Calendar Authentication.

Calendar access feeds both the nudge job (free/busy) and the task agent
(upcoming events). Server deployments configure a refresh token plus
client id and secret; local setups run this module once to produce a
token file via the OAuth2 consent flow.
"""

from __future__ import annotations

import logging
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]
TOKEN_URI = "https://oauth2.googleapis.com/token"


def _credentials_from_refresh_token(settings) -> Credentials:
    return Credentials(
        token=None,
        refresh_token=settings.GOOGLE_REFRESH_TOKEN,
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        token_uri=TOKEN_URI,
        scopes=SCOPES,
    )


def load_credentials() -> Credentials:
    """Return valid credentials without user interaction.

    Flow:
    1. Prefer the configured refresh token.
    2. Otherwise load the token file written by the consent flow.
    3. Refresh if expired.

    Raises FileNotFoundError when neither source is configured.
    """
    from zentasks.config import settings

    if settings.GOOGLE_REFRESH_TOKEN:
        creds = _credentials_from_refresh_token(settings)
        logger.debug("Using configured Google refresh token")
    else:
        token_path = Path(settings.GOOGLE_TOKEN_PATH)
        if not token_path.exists():
            raise FileNotFoundError(
                f"No GOOGLE_REFRESH_TOKEN set and no token file at {token_path}. "
                "Run `python -m zentasks.integrations.google_auth` first."
            )
        creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)
        logger.debug("Loaded existing token from %s", token_path)

    if not creds.valid and creds.refresh_token:
        creds.refresh(Request())
        logger.info("Google token refreshed successfully")
    return creds


def get_calendar_service():
    """Authenticate and return a Google Calendar API v3 service object."""
    creds = load_credentials()
    service = build("calendar", "v3", credentials=creds, cache_discovery=False)
    logger.info("Google Calendar service built successfully")
    return service


def run_consent_flow() -> Credentials:
    """Interactive OAuth2 consent; persists the token for later runs."""
    from zentasks.config import settings

    creds_path = Path(settings.GOOGLE_CREDENTIALS_PATH)
    if not creds_path.exists():
        raise FileNotFoundError(
            f"Google credentials file not found at {creds_path}. "
            "Download it from the Google Cloud Console."
        )
    flow = InstalledAppFlow.from_client_secrets_file(str(creds_path), SCOPES)
    creds = flow.run_local_server(port=0)
    logger.info("New credentials obtained via OAuth2 consent flow")

    token_path = Path(settings.GOOGLE_TOKEN_PATH)
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json())
    logger.debug("Token saved to %s", token_path)
    return creds


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    print("Running Google Calendar authorization flow...")
    credentials = run_consent_flow()
    print(f"Auth successful! Refresh token: {credentials.refresh_token}")
    svc = build("calendar", "v3", credentials=credentials, cache_discovery=False)
    events = svc.events().list(calendarId="primary", maxResults=3).execute()
    items = events.get("items", [])
    print(f"Found {len(items)} upcoming event(s).")
    for item in items:
        print(f"  - {item.get('summary', '(no title)')}")
