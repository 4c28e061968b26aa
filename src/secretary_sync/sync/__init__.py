"""
Sync subsystem.

Components:
- coordinator.py: local-first write path, remote-first read path, pending replay
- sync_loop.py: polling loop that replays pending writes
"""
