"""Shared utilities: errors, logging, configuration, console."""
