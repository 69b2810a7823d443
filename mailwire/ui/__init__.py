"""User interaction kept outside the protocol engine."""
