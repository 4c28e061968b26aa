"""
Remote document store side.

Components:
- query.py: filters, ordering, cursors and batch ops shared with the offline fallback
- sqlite_store.py: SQLite-file document store implementing the RemoteStore port
"""
