"""Shared utilities: logging, errors and process inspection."""
