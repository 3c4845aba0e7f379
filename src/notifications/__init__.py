"""Outgoing booking emails."""
