"""
Local persistence.

Components:
- local_store.py: SQLite key/value store behind the LocalStore port
- sync_markers.py: per-entity sync status table (synced / pending)
"""
