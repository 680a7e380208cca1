"""Gatekeeper - grants Discord roles to members who verify an allow-listed email domain."""

__version__ = "0.1.0"
