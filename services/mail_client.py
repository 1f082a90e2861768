from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence

UNREAD_LABEL = "UNREAD"
TRASH_LABEL = "TRASH"


class MailClient(Protocol):
    """Mailbox operations an EmailNotification relies on.

    Implementations are synchronous; the notification runs them in a worker
    thread. Provider errors are raised as-is.
    """

    def resolve_label_id(self, name: str, create_if_not_exists: bool = False) -> Optional[str]:
        ...

    def delete_label(self, label_id: str) -> None:
        ...

    def search(
        self,
        criteria: str,
        fields: Optional[str] = None,
        fmt: Optional[str] = None,
        metadata_headers: Optional[Sequence[str]] = None,
        max_results: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...

    def send_message(self, sender: str, to: str, subject: str, body: str) -> Dict[str, Any]:
        ...

    def fetch_message(
        self,
        message_id: str,
        fields: Optional[str] = None,
        fmt: Optional[str] = None,
        metadata_headers: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        ...

    def batch_modify_labels(
        self,
        message_ids: Sequence[str],
        add_label_ids: Optional[Sequence[str]] = None,
        remove_label_ids: Optional[Sequence[str]] = None,
    ) -> Optional[Dict[str, Any]]:
        ...

    def trash_message(self, message_id: str) -> Dict[str, Any]:
        ...
