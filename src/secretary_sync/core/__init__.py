"""Shared errors, ports (Protocols), time helpers and the AppState container."""
