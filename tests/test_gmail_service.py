from __future__ import annotations

import base64
import email
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

import services.gmail_service as gmail_module
from services.gmail_service import GmailService
from utils.config import MailboxConfig


def _http_error(status: int) -> HttpError:
    return HttpError(SimpleNamespace(status=status, reason="error"), b"{}")


@pytest.fixture
def api(monkeypatch):
    client = MagicMock(name="gmail")
    monkeypatch.setattr(gmail_module, "build", lambda *args, **kwargs: client)
    return client


@pytest.fixture
def service(api, tmp_path: Path) -> GmailService:
    mailbox = MailboxConfig(
        name="test",
        credentials_file=tmp_path / "credentials.json",
        token_dir=tmp_path,
        token_file="token.json",
        user_id="me",
    )
    auth = MagicMock()
    auth.authenticate.return_value = object()
    return GmailService(mailbox, auth)


def test_resolve_label_id_finds_existing_label_case_insensitively(service, api):
    api.users().labels().list().execute.return_value = {"labels": [{"id": "Label_7", "name": "App-Test-Processed"}]}

    assert service.resolve_label_id("app-test-processed", create_if_not_exists=True) == "Label_7"
    api.users().labels().create.assert_not_called()


def test_resolve_label_id_returns_none_without_create(service, api):
    api.users().labels().list().execute.return_value = {"labels": []}

    assert service.resolve_label_id("missing") is None


def test_resolve_label_id_creates_missing_label(service, api):
    api.users().labels().list().execute.return_value = {"labels": []}
    api.users().labels().create().execute.return_value = {"id": "Label_9"}

    assert service.resolve_label_id("app-test-processed", create_if_not_exists=True) == "Label_9"
    _, kwargs = api.users().labels().create.call_args
    assert kwargs["body"]["name"] == "app-test-processed"


def test_resolve_label_id_reuses_label_created_concurrently(service, api):
    api.users().labels().list().execute.side_effect = [
        {"labels": []},
        {"labels": [{"id": "Label_3", "name": "app-test-processed"}]},
    ]
    api.users().labels().create().execute.side_effect = _http_error(409)

    assert service.resolve_label_id("app-test-processed", create_if_not_exists=True) == "Label_3"


def test_resolve_label_id_propagates_other_errors(service, api):
    api.users().labels().list().execute.return_value = {"labels": []}
    api.users().labels().create().execute.side_effect = _http_error(403)

    with pytest.raises(HttpError):
        service.resolve_label_id("app-test-processed", create_if_not_exists=True)


def test_search_follows_pages(service, api):
    api.users().messages().list().execute.side_effect = [
        {"messages": [{"id": "a"}], "nextPageToken": "p2"},
        {"messages": [{"id": "b"}]},
    ]

    assert [m["id"] for m in service.search("is:unread")] == ["a", "b"]
    _, kwargs = api.users().messages().list.call_args
    assert kwargs == {"userId": "me", "q": "is:unread", "pageToken": "p2"}


def test_search_hydrates_when_format_requested(service, api):
    api.users().messages().list().execute.return_value = {"messages": [{"id": "a"}]}
    api.users().messages().get().execute.return_value = {"id": "a", "snippet": "hi"}

    results = service.search("is:unread", fields="id,snippet", fmt="metadata", metadata_headers=["subject"])

    assert results == [{"id": "a", "snippet": "hi"}]
    _, kwargs = api.users().messages().get.call_args
    assert kwargs == {
        "userId": "me",
        "id": "a",
        "format": "metadata",
        "fields": "id,snippet",
        "metadataHeaders": ["subject"],
    }


def test_search_errors_propagate(service, api):
    api.users().messages().list().execute.side_effect = _http_error(429)

    with pytest.raises(HttpError):
        service.search("is:unread")


def test_batch_modify_treats_empty_body_as_success(service, api):
    api.users().messages().batchModify().execute.return_value = ""

    assert service.batch_modify_labels(["a"], add_label_ids=["Label_1"], remove_label_ids=["UNREAD"]) is None
    _, kwargs = api.users().messages().batchModify.call_args
    assert kwargs["body"] == {"ids": ["a"], "addLabelIds": ["Label_1"], "removeLabelIds": ["UNREAD"]}


def test_trash_message_returns_resource(service, api):
    api.users().messages().trash().execute.return_value = {"id": "a", "labelIds": ["TRASH"]}

    assert service.trash_message("a")["labelIds"] == ["TRASH"]


def test_send_message_encodes_mime(service, api):
    api.users().messages().send().execute.return_value = {"id": "sent-1"}

    response = service.send_message("Reports <r@example.com>", "me@example.com", "Daily", "This is some content")

    assert response == {"id": "sent-1"}
    _, kwargs = api.users().messages().send.call_args
    parsed = email.message_from_bytes(base64.urlsafe_b64decode(kwargs["body"]["raw"]))
    assert parsed["subject"] == "Daily"
    assert parsed["to"] == "me@example.com"
    assert parsed.get_payload(decode=True).decode("utf-8") == "This is some content"


def test_delete_label(service, api):
    service.delete_label("Label_1")

    _, kwargs = api.users().labels().delete.call_args
    assert kwargs == {"userId": "me", "id": "Label_1"}
