"""Utility modules for btclient."""
