from __future__ import annotations

import base64
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

from models.notification import NotificationQuery, processed_label_name


PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_SCOPES: Tuple[str, ...] = ("https://www.googleapis.com/auth/gmail.modify",)


@dataclass(slots=True)
class MailboxConfig:
    """Connection parameters handed to the Gmail client untouched."""

    name: str
    credentials_file: Path
    token_dir: Path
    token_file: str
    user_id: str = "me"
    scopes: Tuple[str, ...] = DEFAULT_SCOPES

    @property
    def token_path(self) -> Path:
        return self.token_dir / self.token_file


@dataclass(slots=True)
class NotificationConfig:
    name: str
    search_criteria: str
    processed_label_name: str
    processed_label_id: Optional[str] = None
    ret_fields: Optional[Tuple[str, ...]] = None
    format: Optional[str] = None
    metadata_headers: Optional[Tuple[str, ...]] = None

    def to_query(self) -> NotificationQuery:
        return NotificationQuery(
            search_criteria=self.search_criteria,
            processed_label_name=self.processed_label_name,
            processed_label_id=self.processed_label_id,
            ret_fields=self.ret_fields,
            format=self.format,
            metadata_headers=self.metadata_headers,
        )


@dataclass(slots=True)
class AppConfig:
    app_name: str
    environment: str
    log_dir: Path
    log_level: str
    stats_file: Path
    mailbox: MailboxConfig
    notifications_file: Path
    notifications: Dict[str, NotificationConfig] = field(default_factory=dict)

    @property
    def processed_label_name(self) -> str:
        return processed_label_name(self.app_name, self.environment)

    def get_notification(self, name: Optional[str]) -> NotificationConfig:
        if not self.notifications:
            raise KeyError(
                f"No notifications configured. Add entries to {self.notifications_file} "
                "or set NOTIFICATION_SEARCH_CRITERIA."
            )
        if not name:
            if "default" in self.notifications:
                return self.notifications["default"]
            return next(iter(self.notifications.values()))
        if name not in self.notifications:
            available = ", ".join(sorted(self.notifications))
            raise KeyError(f"Unknown notification '{name}'. Available notifications: {available}")
        return self.notifications[name]


def _resolve_path(value: str | None, fallback: str) -> Path:
    candidate = Path(value or fallback)
    if not candidate.is_absolute():
        candidate = PROJECT_ROOT / candidate
    return candidate


def _split_list(value: str | None) -> Optional[Tuple[str, ...]]:
    if not value:
        return None
    items = tuple(item.strip() for item in value.split(",") if item.strip())
    return items or None


def _listify(value) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        return _split_list(value)
    return tuple(str(item) for item in value) or None


def _maybe_write_secret_file(target: Path, inline_value: str | None, b64_value: str | None) -> None:
    if not inline_value and not b64_value:
        return
    target.parent.mkdir(parents=True, exist_ok=True)
    if inline_value:
        target.write_text(inline_value, encoding="utf-8")
        return
    try:
        decoded = base64.b64decode(b64_value or "")
    except Exception as exc:  # noqa: BLE001
        raise ValueError("Failed to decode base64 secret payload") from exc
    target.write_bytes(decoded)


def _load_notifications(path: Path, default_label: str) -> Dict[str, NotificationConfig]:
    notifications: Dict[str, NotificationConfig] = {}
    if not path.exists():
        return notifications
    data = json.loads(path.read_text(encoding="utf-8"))
    for item in data.get("notifications", []):
        name = item.get("name")
        criteria = item.get("search_criteria")
        if not name or not criteria:
            continue
        notifications[name] = NotificationConfig(
            name=name,
            search_criteria=criteria,
            processed_label_name=item.get("processed_label_name") or default_label,
            processed_label_id=item.get("processed_label_id"),
            ret_fields=_listify(item.get("ret_fields")),
            format=item.get("format"),
            metadata_headers=_listify(item.get("metadata_headers")),
        )
    return notifications


def load_config(env_file: str | os.PathLike[str] | None = None) -> AppConfig:
    """Load configuration values from a .env file and environment variables."""

    if env_file:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(override=False)

    app_name = os.getenv("APP_NAME", "email-notification")
    environment = os.getenv("APP_ENV", "development")
    default_label = processed_label_name(app_name, environment)

    credentials_file = _resolve_path(os.getenv("GOOGLE_CLIENT_SECRETS"), "credentials.json")
    token_dir = _resolve_path(os.getenv("GOOGLE_TOKEN_DIR"), "credentials")
    token_file = os.getenv("GOOGLE_TOKEN_FILE", "token.json")
    log_dir = _resolve_path(os.getenv("LOG_DIR"), "logs")
    stats_file = _resolve_path(os.getenv("STATS_FILE"), "data/stats.json")
    notifications_file = _resolve_path(os.getenv("NOTIFICATIONS_FILE"), "notifications.json")

    log_dir.mkdir(parents=True, exist_ok=True)
    token_dir.mkdir(parents=True, exist_ok=True)
    stats_file.parent.mkdir(parents=True, exist_ok=True)

    _maybe_write_secret_file(
        credentials_file,
        os.getenv("GOOGLE_CLIENT_SECRETS_JSON"),
        os.getenv("GOOGLE_CLIENT_SECRETS_B64"),
    )
    _maybe_write_secret_file(
        token_dir / token_file,
        os.getenv("GOOGLE_TOKEN_JSON"),
        os.getenv("GOOGLE_TOKEN_B64"),
    )

    mailbox = MailboxConfig(
        name=os.getenv("MAILBOX_NAME", "default"),
        credentials_file=credentials_file,
        token_dir=token_dir,
        token_file=token_file,
        user_id=os.getenv("GMAIL_USER_ID", "me"),
        scopes=_split_list(os.getenv("GOOGLE_SCOPES")) or DEFAULT_SCOPES,
    )

    notifications = _load_notifications(notifications_file, default_label)
    search_criteria = os.getenv("NOTIFICATION_SEARCH_CRITERIA")
    if search_criteria:
        notifications["default"] = NotificationConfig(
            name="default",
            search_criteria=search_criteria,
            processed_label_name=os.getenv("PROCESSED_LABEL_NAME") or default_label,
            processed_label_id=os.getenv("PROCESSED_LABEL_ID") or None,
            ret_fields=_split_list(os.getenv("NOTIFICATION_RET_FIELDS")),
            format=os.getenv("NOTIFICATION_FORMAT") or None,
            metadata_headers=_split_list(os.getenv("NOTIFICATION_METADATA_HEADERS")),
        )

    return AppConfig(
        app_name=app_name,
        environment=environment,
        log_dir=log_dir,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        stats_file=stats_file,
        mailbox=mailbox,
        notifications_file=notifications_file,
        notifications=notifications,
    )
