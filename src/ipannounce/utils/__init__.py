"""Utility modules for ipannounce."""
