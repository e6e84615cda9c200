"""Peer discovery: DHT/tracker coordination and the HTTP tracker engine."""
