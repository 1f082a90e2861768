from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence


@dataclass(slots=True)
class EmailMessage:
    """View over a Gmail message resource as returned by messages.get."""

    id: str
    thread_id: str | None = None
    label_ids: List[str] = field(default_factory=list)
    snippet: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    payload: Dict[str, Any] = field(default_factory=dict)
    body: str = ""
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "EmailMessage":
        payload = resource.get("payload") or {}
        return cls(
            id=resource["id"],
            thread_id=resource.get("threadId"),
            label_ids=list(resource.get("labelIds") or []),
            snippet=resource.get("snippet", ""),
            headers=headers_to_dict(payload.get("headers", [])),
            payload=payload,
            body=extract_body(payload),
            raw=resource,
        )

    @property
    def subject(self) -> str:
        return self.headers.get("subject", "")

    @property
    def sender(self) -> str | None:
        return self.headers.get("from")

    def has_label(self, label_id: str) -> bool:
        return label_id in self.label_ids


def headers_to_dict(headers: Sequence[Dict[str, str]]) -> Dict[str, str]:
    mapped: Dict[str, str] = {}
    for header in headers:
        name = header.get("name", "").lower()
        value = header.get("value", "")
        mapped[name] = value
    return mapped


def extract_body(payload: Dict) -> str:
    if "body" in payload and payload["body"].get("data"):
        return _decode_base64(payload["body"]["data"])
    for part in payload.get("parts", []) or []:
        mime_type = part.get("mimeType", "")
        if mime_type == "text/plain":
            data = part.get("body", {}).get("data")
            if data:
                return _decode_base64(data)
        if part.get("parts"):
            nested = extract_body(part)
            if nested:
                return nested
    return ""


def _decode_base64(data: str) -> str:
    try:
        decoded = base64.urlsafe_b64decode(data).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return ""
    return decoded
