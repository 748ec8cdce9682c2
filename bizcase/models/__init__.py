"""Typed assumption document and shared enums."""
