from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping, Optional, Tuple

MESSAGE_FORMATS = frozenset({"full", "metadata", "minimal", "raw"})
LABEL_IDS_FIELD = "labelIds"

_OPTION_ALIASES = {
    "apply_processed_label": "apply_processed_label",
    "applyProcessedLabel": "apply_processed_label",
    "mark_as_read": "mark_as_read",
    "markAsRead": "mark_as_read",
}


def processed_label_name(app_name: str, environment: str) -> str:
    """Operator-facing name of the marker label, namespaced per environment."""

    return f"{app_name}-{environment}-processed"


def _as_tuple(value: Optional[Iterable[str] | str]) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.split(",")
    cleaned = tuple(item.strip() for item in value if item and item.strip())
    return cleaned or None


@dataclass(frozen=True, slots=True)
class NotificationQuery:
    """What to watch for: search criteria plus the label that marks it done."""

    search_criteria: str
    processed_label_name: str
    processed_label_id: Optional[str] = None
    ret_fields: Optional[Tuple[str, ...]] = None
    format: Optional[str] = None
    metadata_headers: Optional[Tuple[str, ...]] = None

    def __post_init__(self) -> None:
        if not self.search_criteria or not self.search_criteria.strip():
            raise ValueError("search_criteria must not be empty")
        if not self.processed_label_name or not self.processed_label_name.strip():
            raise ValueError("processed_label_name must not be empty")
        if self.format is not None and self.format not in MESSAGE_FORMATS:
            allowed = ", ".join(sorted(MESSAGE_FORMATS))
            raise ValueError(f"Unknown message format '{self.format}'. Expected one of: {allowed}")

        ret_fields = _as_tuple(self.ret_fields)
        # Processed status is decided from labelIds, so a projection must keep it.
        if ret_fields and LABEL_IDS_FIELD not in ret_fields:
            ret_fields = ret_fields + (LABEL_IDS_FIELD,)
        object.__setattr__(self, "ret_fields", ret_fields)
        object.__setattr__(self, "metadata_headers", _as_tuple(self.metadata_headers))
        object.__setattr__(self, "processed_label_id", self.processed_label_id or None)

    def fields_param(self) -> Optional[str]:
        if not self.ret_fields:
            return None
        return ",".join(self.ret_fields)


@dataclass(frozen=True, slots=True)
class UpdateLabelsOptions:
    apply_processed_label: bool = False
    mark_as_read: bool = False

    def __post_init__(self) -> None:
        for name in ("apply_processed_label", "mark_as_read"):
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise ValueError(f"update_labels option '{name}' must be a bool, got {value!r}")

    @classmethod
    def from_mapping(cls, options: Optional[Mapping[str, object]]) -> "UpdateLabelsOptions":
        if not options:
            return cls()
        unknown = sorted(key for key in options if key not in _OPTION_ALIASES)
        if unknown:
            raise ValueError(f"Unknown update_labels option(s): {', '.join(unknown)}")
        values: dict[str, object] = {}
        for key, value in options.items():
            name = _OPTION_ALIASES[key]
            if name in values:
                raise ValueError(f"update_labels option '{name}' given more than once")
            values[name] = value
        return cls(**values)

    @property
    def is_empty(self) -> bool:
        return not (self.apply_processed_label or self.mark_as_read)


class NotificationState(str, Enum):
    UNRESOLVED = "unresolved"
    NOT_RECEIVED = "not_received"
    RECEIVED_UNPROCESSED = "received_unprocessed"
    RECEIVED_PROCESSED = "received_processed"
    TRASHED = "trashed"


@dataclass(frozen=True, slots=True)
class MatchResult:
    message_ids: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def received(self) -> bool:
        return bool(self.message_ids)

    @property
    def message_id(self) -> Optional[str]:
        return self.message_ids[0] if self.message_ids else None
