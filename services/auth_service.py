from __future__ import annotations

import json
import logging
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from utils.config import MailboxConfig

LOGGER = logging.getLogger(__name__)


class AuthService:
    """Handle OAuth2 credential lifecycle for the watched mailbox."""

    def __init__(self, mailbox: MailboxConfig):
        self._mailbox = mailbox

    @property
    def scopes(self) -> list[str]:
        return list(self._mailbox.scopes)

    def _save_credentials(self, creds: Credentials) -> None:
        token_path: Path = self._mailbox.token_path
        LOGGER.debug("Persisting OAuth tokens for %s to %s", self._mailbox.name, token_path)
        token_path.parent.mkdir(parents=True, exist_ok=True)
        token_path.write_text(creds.to_json(), encoding="utf-8")

    def _load_existing_credentials(self) -> Credentials | None:
        token_path: Path = self._mailbox.token_path
        if not token_path.exists():
            return None
        LOGGER.debug("Loading cached credential from %s", token_path)
        data = json.loads(token_path.read_text(encoding="utf-8"))
        return Credentials.from_authorized_user_info(data, self.scopes)

    def authenticate(self) -> Credentials:
        creds = self._load_existing_credentials()
        if creds and creds.valid:
            return creds

        if creds and creds.expired and creds.refresh_token:
            LOGGER.info("Refreshing expired Gmail token for %s", self._mailbox.name)
            creds.refresh(Request())
            self._save_credentials(creds)
            return creds

        credentials_file = self._mailbox.credentials_file
        if not credentials_file.exists():
            raise FileNotFoundError(f"Missing Gmail client secrets at {credentials_file}")
        LOGGER.info("Initiating OAuth flow using %s", credentials_file)
        flow = InstalledAppFlow.from_client_secrets_file(str(credentials_file), scopes=self.scopes)
        creds = flow.run_local_server(port=0)
        self._save_credentials(creds)
        return creds
