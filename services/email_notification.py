from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

from models.email_message import EmailMessage
from models.notification import (
    MatchResult,
    NotificationQuery,
    NotificationState,
    UpdateLabelsOptions,
)
from services.errors import LabelResolutionError, NotificationStateError
from services.mail_client import UNREAD_LABEL, MailClient

LOGGER = logging.getLogger(__name__)
LABEL_CHECK_FIELDS = "id,labelIds"


class EmailNotification:
    """Track one expected notification email and move it through processing.

    An instance searches once, remembers what it matched and caches the fetched
    message until a flush or a label change. Calls on the same instance must not
    overlap; separate instances share nothing.
    """

    def __init__(self, query: NotificationQuery, client: MailClient):
        self._query = query
        self._client = client
        self._match: Optional[MatchResult] = None
        self._processed_label_id: Optional[str] = query.processed_label_id
        self._message: Optional[EmailMessage] = None
        self._trash_responses: Dict[str, Dict[str, Any]] = {}
        self._state = NotificationState.UNRESOLVED

    @property
    def query(self) -> NotificationQuery:
        return self._query

    @property
    def state(self) -> NotificationState:
        return self._state

    @property
    def match(self) -> Optional[MatchResult]:
        return self._match

    async def has_been_received(self) -> bool:
        match = await self._resolve_match()
        return match.received

    async def get_processed_label_id(self) -> str:
        if self._processed_label_id:
            return self._processed_label_id

        name = self._query.processed_label_name
        label_id = await asyncio.to_thread(self._client.resolve_label_id, name, create_if_not_exists=True)
        if not label_id:
            raise LabelResolutionError(f"Could not resolve an id for label '{name}'")
        LOGGER.debug("Resolved processed label %s to %s", name, label_id)
        self._processed_label_id = label_id
        return label_id

    async def all_have_been_processed(self) -> bool:
        match = await self._resolve_match()
        if not match.received:
            return False

        label_id = await self.get_processed_label_id()
        message = await self.get_message()
        processed = message.has_label(label_id)
        for message_id in match.message_ids[1:]:
            if not processed:
                break
            resource = await asyncio.to_thread(
                self._client.fetch_message,
                message_id,
                fields=LABEL_CHECK_FIELDS,
                fmt="minimal",
            )
            processed = label_id in (resource.get("labelIds") or [])

        if self._state is not NotificationState.TRASHED:
            self._state = (
                NotificationState.RECEIVED_PROCESSED if processed else NotificationState.RECEIVED_UNPROCESSED
            )
        return processed

    async def get_message_id(self) -> str:
        match = await self._require_match("get the message id")
        return match.message_id

    async def get_message(self) -> EmailMessage:
        match = await self._require_match("get the message")
        if self._message is not None:
            LOGGER.debug("Serving message %s from cache", self._message.id)
            return self._message

        resource = await asyncio.to_thread(
            self._client.fetch_message,
            match.message_id,
            fields=self._query.fields_param(),
            fmt=self._query.format,
            metadata_headers=self._query.metadata_headers,
        )
        message = EmailMessage.from_resource({"id": match.message_id, **resource})
        self._message = message
        LOGGER.debug("Cached message %s", message.id)
        return message

    def flush(self) -> None:
        if self._message is not None:
            LOGGER.debug("Flushing cached message %s", self._message.id)
        self._message = None

    async def update_labels(
        self, options: UpdateLabelsOptions | Mapping[str, Any] | None = None
    ) -> Optional[Dict[str, Any]]:
        if not isinstance(options, UpdateLabelsOptions):
            options = UpdateLabelsOptions.from_mapping(options)

        match = await self._require_match("update labels")
        self._ensure_not_trashed("update labels")
        if options.is_empty:
            LOGGER.debug("No label changes requested for %s", list(match.message_ids))
            return None

        add_label_ids: List[str] = []
        if options.apply_processed_label:
            add_label_ids.append(await self.get_processed_label_id())
        remove_label_ids = [UNREAD_LABEL] if options.mark_as_read else []

        response = await asyncio.to_thread(
            self._client.batch_modify_labels,
            list(match.message_ids),
            add_label_ids=add_label_ids or None,
            remove_label_ids=remove_label_ids or None,
        )
        self.flush()
        if options.apply_processed_label:
            self._state = NotificationState.RECEIVED_PROCESSED
        LOGGER.info(
            "Updated labels on %s (processed=%s, read=%s)",
            list(match.message_ids),
            options.apply_processed_label,
            options.mark_as_read,
        )

        if not response:
            return None
        return response

    async def trash(self) -> List[Dict[str, Any]]:
        match = await self._require_match("trash")
        self._ensure_not_trashed("trash")

        # A retry after a partial failure only trashes what is still pending.
        pending = [message_id for message_id in match.message_ids if message_id not in self._trash_responses]
        trashed_now = 0
        try:
            for message_id in pending:
                response = await asyncio.to_thread(self._client.trash_message, message_id)
                self._trash_responses[message_id] = response
                trashed_now += 1
        finally:
            if trashed_now:
                self.flush()

        self._state = NotificationState.TRASHED
        LOGGER.info("Trashed %s notification message(s)", len(match.message_ids))
        return [self._trash_responses[message_id] for message_id in match.message_ids]

    async def _resolve_match(self) -> MatchResult:
        if self._match is not None:
            return self._match

        summaries = await asyncio.to_thread(self._client.search, self._query.search_criteria)
        message_ids = tuple(dict.fromkeys(summary["id"] for summary in summaries))
        match = MatchResult(message_ids)
        self._match = match
        if match.received:
            self._state = NotificationState.RECEIVED_UNPROCESSED
            LOGGER.info(
                "Notification '%s' received (%s match(es), using %s)",
                self._query.search_criteria,
                len(message_ids),
                match.message_id,
            )
        else:
            self._state = NotificationState.NOT_RECEIVED
            LOGGER.info("Notification '%s' not received", self._query.search_criteria)
        return match

    async def _require_match(self, action: str) -> MatchResult:
        match = await self._resolve_match()
        if not match.received:
            raise NotificationStateError(
                f"Cannot {action}: no message matches '{self._query.search_criteria}'"
            )
        return match

    def _ensure_not_trashed(self, action: str) -> None:
        if self._state is NotificationState.TRASHED:
            raise NotificationStateError(f"Cannot {action}: the notification has already been trashed")
