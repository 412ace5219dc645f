"""Guestbook web service: anonymous per-browser entries stored in MongoDB."""

__version__ = "0.1.0"
