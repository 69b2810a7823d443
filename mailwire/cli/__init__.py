"""Command-line interface: fetch, send, shell and config."""
