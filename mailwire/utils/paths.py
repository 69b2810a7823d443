"""Centralized path definitions for mailwire.

Single source of truth for the on-disk locations used by the CLI:
configuration, logs and the default download directory for retrieved mail.
"""

from pathlib import Path

# Base application directory
MAILWIRE_DIR = Path.home() / ".mailwire"

# Subdirectories
LOGS_DIR = MAILWIRE_DIR / "logs"
MAILDROP_DIR = MAILWIRE_DIR / "maildrop"

# Specific files
CONFIG_PATH = MAILWIRE_DIR / "config.json"
SHELL_HISTORY_PATH = MAILWIRE_DIR / "shell_history.txt"
