from __future__ import annotations

import base64
import logging
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional, Sequence

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from services.auth_service import AuthService
from utils.config import MailboxConfig

LOGGER = logging.getLogger(__name__)
LABEL_CONFLICT_STATUS = 409


class GmailService:
    """Wrapper around the Gmail API implementing the MailClient operations."""

    def __init__(self, mailbox: MailboxConfig, auth_service: AuthService):
        self._mailbox = mailbox
        self._auth_service = auth_service
        creds = self._auth_service.authenticate()
        self._client = build("gmail", "v1", credentials=creds, cache_discovery=False)

    @property
    def user_id(self) -> str:
        return self._mailbox.user_id

    def resolve_label_id(self, name: str, create_if_not_exists: bool = False) -> Optional[str]:
        label_id = self._find_label_id(name)
        if label_id or not create_if_not_exists:
            return label_id

        body = {"name": name, "labelListVisibility": "labelShow", "messageListVisibility": "show"}
        try:
            response = self._client.users().labels().create(userId=self.user_id, body=body).execute()
        except HttpError as exc:
            # Someone else created it between our lookup and create.
            if exc.resp.status == LABEL_CONFLICT_STATUS:
                LOGGER.info("Label %s was created concurrently, looking it up again", name)
                return self._find_label_id(name)
            LOGGER.error("Failed to create label %s: %s", name, exc)
            raise
        LOGGER.info("Created label %s with id %s", name, response["id"])
        return response["id"]

    def delete_label(self, label_id: str) -> None:
        try:
            self._client.users().labels().delete(userId=self.user_id, id=label_id).execute()
        except HttpError as exc:
            LOGGER.error("Failed to delete label %s: %s", label_id, exc)
            raise
        LOGGER.info("Deleted label %s", label_id)

    def search(
        self,
        criteria: str,
        fields: Optional[str] = None,
        fmt: Optional[str] = None,
        metadata_headers: Optional[Sequence[str]] = None,
        max_results: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        summaries: List[Dict[str, Any]] = []
        page_token: Optional[str] = None
        try:
            while True:
                request: Dict[str, Any] = {"userId": self.user_id, "q": criteria}
                if max_results:
                    request["maxResults"] = max_results
                if page_token:
                    request["pageToken"] = page_token
                response = self._client.users().messages().list(**request).execute()
                summaries.extend(response.get("messages", []))
                page_token = response.get("nextPageToken")
                if not page_token or (max_results and len(summaries) >= max_results):
                    break
        except HttpError as exc:
            LOGGER.error("Search '%s' failed: %s", criteria, exc)
            raise

        if max_results:
            summaries = summaries[:max_results]
        LOGGER.debug("Search '%s' matched %s message(s)", criteria, len(summaries))
        if not (fields or fmt):
            return summaries
        return [
            self.fetch_message(summary["id"], fields=fields, fmt=fmt, metadata_headers=metadata_headers)
            for summary in summaries
        ]

    def send_message(self, sender: str, to: str, subject: str, body: str) -> Dict[str, Any]:
        message = MIMEText(body, "plain", "utf-8")
        message["to"] = to
        message["from"] = sender
        message["subject"] = subject
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode()
        try:
            response = (
                self._client.users()
                .messages()
                .send(userId=self.user_id, body={"raw": raw})
                .execute()
            )
        except HttpError as exc:
            LOGGER.error("Failed to send message '%s' to %s: %s", subject, to, exc)
            raise
        LOGGER.info("Sent message %s to %s", response.get("id"), to)
        return response

    def fetch_message(
        self,
        message_id: str,
        fields: Optional[str] = None,
        fmt: Optional[str] = None,
        metadata_headers: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        request: Dict[str, Any] = {"userId": self.user_id, "id": message_id}
        if fmt:
            request["format"] = fmt
        if fields:
            request["fields"] = fields
        if metadata_headers:
            request["metadataHeaders"] = list(metadata_headers)
        try:
            return self._client.users().messages().get(**request).execute()
        except HttpError as exc:
            LOGGER.error("Failed to fetch message %s: %s", message_id, exc)
            raise

    def batch_modify_labels(
        self,
        message_ids: Sequence[str],
        add_label_ids: Optional[Sequence[str]] = None,
        remove_label_ids: Optional[Sequence[str]] = None,
    ) -> Optional[Dict[str, Any]]:
        body: Dict[str, Any] = {"ids": list(message_ids)}
        if add_label_ids:
            body["addLabelIds"] = list(add_label_ids)
        if remove_label_ids:
            body["removeLabelIds"] = list(remove_label_ids)
        try:
            response = (
                self._client.users()
                .messages()
                .batchModify(userId=self.user_id, body=body)
                .execute()
            )
        except HttpError as exc:
            LOGGER.error("Failed to modify labels on %s: %s", list(message_ids), exc)
            raise
        LOGGER.info(
            "Modified labels on %s (added %s, removed %s)",
            list(message_ids),
            list(add_label_ids or []),
            list(remove_label_ids or []),
        )
        # batchModify answers with an empty body on success.
        return response or None

    def trash_message(self, message_id: str) -> Dict[str, Any]:
        try:
            response = (
                self._client.users()
                .messages()
                .trash(userId=self.user_id, id=message_id)
                .execute()
            )
        except HttpError as exc:
            LOGGER.error("Failed to trash message %s: %s", message_id, exc)
            raise
        LOGGER.info("Trashed message %s", message_id)
        return response

    def _find_label_id(self, name: str) -> Optional[str]:
        for label in self._list_labels():
            if label["name"].lower() == name.lower():
                LOGGER.debug("Label %s already exists as %s", name, label["id"])
                return label["id"]
        return None

    def _list_labels(self) -> List[Dict]:
        try:
            response = self._client.users().labels().list(userId=self.user_id).execute()
        except HttpError as exc:
            LOGGER.error("Failed to list labels: %s", exc)
            raise
        return response.get("labels", [])
