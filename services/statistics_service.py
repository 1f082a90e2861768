from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict

LOGGER = logging.getLogger(__name__)


class StatisticsService:
    """Very small JSON-backed store of per-notification run counters."""

    def __init__(self, stats_file: Path):
        self._stats_file = stats_file
        self._stats_file.parent.mkdir(parents=True, exist_ok=True)
        self._stats_file.touch(exist_ok=True)
        if not self._stats_file.read_text(encoding="utf-8").strip():
            self._write({})

    def _read(self) -> Dict:
        try:
            return json.loads(self._stats_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            LOGGER.warning("Stats file was corrupt, resetting %s", self._stats_file)
            self._write({})
            return {}

    def _write(self, payload: Dict) -> None:
        self._stats_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def record_check(self, notification: str, received: bool, processed: bool) -> None:
        stats = self._read()
        bucket = self._notification_bucket(stats, notification)
        bucket["checks"] = bucket.get("checks", 0) + 1
        if received:
            bucket["received"] = bucket.get("received", 0) + 1
        if processed:
            bucket["already_processed"] = bucket.get("already_processed", 0) + 1
        self._write(stats)

    def record_processed(self, notification: str, message_count: int, trashed: bool) -> None:
        stats = self._read()
        bucket = self._notification_bucket(stats, notification)
        bucket["processed"] = bucket.get("processed", 0) + message_count
        if trashed:
            bucket["trashed"] = bucket.get("trashed", 0) + message_count
        self._write(stats)

    def snapshot(self) -> Dict:
        return self._read()

    def _notification_bucket(self, stats: Dict, notification: str) -> Dict:
        notifications = stats.setdefault("notifications", {})
        return notifications.setdefault(notification, {})
