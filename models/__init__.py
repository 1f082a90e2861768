"""Value types for notification queries and Gmail messages."""
