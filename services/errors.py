from __future__ import annotations


class NotificationStateError(RuntimeError):
    """Raised when an operation is not valid for the notification's current state."""


class LabelResolutionError(NotificationStateError):
    """Raised when the processed label name cannot be resolved to an id."""
