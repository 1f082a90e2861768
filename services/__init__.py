"""Notification processing, the Gmail client and supporting services."""
