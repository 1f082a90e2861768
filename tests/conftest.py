from __future__ import annotations

import copy
import re
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

import pytest

from services.mail_client import TRASH_LABEL, UNREAD_LABEL


_UNSET = object()


class FakeProviderError(Exception):
    """Stands in for googleapiclient's HttpError."""


class FakeMailClient:
    """In-memory mailbox understanding the subset of Gmail search used here."""

    def __init__(self) -> None:
        self.labels: Dict[str, str] = {}
        self.messages: Dict[str, Dict[str, Any]] = {}
        self.calls: Counter[str] = Counter()
        self.fetch_requests: List[Dict[str, Any]] = []
        self.batch_requests: List[Dict[str, Any]] = []
        self.fail_on: set[str] = set()
        self.batch_response: Optional[Dict[str, Any]] | str = ""
        self.label_resolution_override: Any = _UNSET
        self._next_id = 0

    def _record(self, operation: str) -> None:
        self.calls[operation] += 1
        if operation in self.fail_on:
            raise FakeProviderError(f"{operation} failed")

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}{self._next_id:04d}"

    def add_message(
        self,
        subject: str,
        body: str,
        sender: str = "Reports <reports@example.com>",
        label_ids: Sequence[str] = ("INBOX", UNREAD_LABEL),
    ) -> str:
        message_id = self._new_id("msg")
        self.messages[message_id] = {
            "id": message_id,
            "threadId": message_id,
            "labelIds": list(label_ids),
            "snippet": body,
            "payload": {
                "headers": [
                    {"name": "Subject", "value": subject},
                    {"name": "From", "value": sender},
                ],
            },
        }
        return message_id

    def resolve_label_id(self, name: str, create_if_not_exists: bool = False) -> Optional[str]:
        self._record("resolve_label_id")
        if self.label_resolution_override is not _UNSET:
            return self.label_resolution_override
        if name in self.labels:
            return self.labels[name]
        if not create_if_not_exists:
            return None
        self.calls["create_label"] += 1
        self.labels[name] = self._new_id("Label_")
        return self.labels[name]

    def delete_label(self, label_id: str) -> None:
        self._record("delete_label")
        self.labels = {name: value for name, value in self.labels.items() if value != label_id}

    def search(
        self,
        criteria: str,
        fields: Optional[str] = None,
        fmt: Optional[str] = None,
        metadata_headers: Optional[Sequence[str]] = None,
        max_results: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        self._record("search")
        subject = re.search(r'subject:"([^"]*)"', criteria)
        sender = re.search(r'from:"([^"]*)"', criteria)
        hits: List[Dict[str, Any]] = []
        # Gmail lists newest first.
        for message in reversed(list(self.messages.values())):
            headers = {h["name"].lower(): h["value"] for h in message["payload"]["headers"]}
            if TRASH_LABEL in message["labelIds"]:
                continue
            if "is:unread" in criteria and UNREAD_LABEL not in message["labelIds"]:
                continue
            if subject and subject.group(1) != headers.get("subject"):
                continue
            if sender and sender.group(1) not in headers.get("from", ""):
                continue
            hits.append({"id": message["id"], "threadId": message["threadId"]})
        return hits

    def send_message(self, sender: str, to: str, subject: str, body: str) -> Dict[str, Any]:
        self._record("send_message")
        message_id = self.add_message(subject, body, sender=sender)
        return {"id": message_id, "threadId": message_id, "labelIds": ["SENT"]}

    def fetch_message(
        self,
        message_id: str,
        fields: Optional[str] = None,
        fmt: Optional[str] = None,
        metadata_headers: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        self._record("fetch_message")
        self.fetch_requests.append(
            {"id": message_id, "fields": fields, "format": fmt, "metadata_headers": metadata_headers}
        )
        if message_id not in self.messages:
            raise FakeProviderError(f"Message {message_id} not found")
        return copy.deepcopy(self.messages[message_id])

    def batch_modify_labels(
        self,
        message_ids: Sequence[str],
        add_label_ids: Optional[Sequence[str]] = None,
        remove_label_ids: Optional[Sequence[str]] = None,
    ) -> Optional[Dict[str, Any]] | str:
        self._record("batch_modify_labels")
        self.batch_requests.append(
            {"ids": list(message_ids), "add": list(add_label_ids or []), "remove": list(remove_label_ids or [])}
        )
        for message_id in message_ids:
            labels = self.messages[message_id]["labelIds"]
            for label in add_label_ids or []:
                if label not in labels:
                    labels.append(label)
            for label in remove_label_ids or []:
                if label in labels:
                    labels.remove(label)
        return self.batch_response

    def trash_message(self, message_id: str) -> Dict[str, Any]:
        self._record("trash_message")
        labels = self.messages[message_id]["labelIds"]
        labels[:] = [label for label in labels if label != "INBOX"] + [TRASH_LABEL]
        return {"id": message_id, "threadId": message_id, "labelIds": list(labels)}


@pytest.fixture
def mail_client() -> FakeMailClient:
    return FakeMailClient()
