"""Headless protocol engine."""
