"""Logging setup and secret redaction."""
