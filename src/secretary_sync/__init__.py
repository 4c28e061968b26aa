"""
secretary_sync: offline-first persistence and sync core for a personal task/schedule manager.

Packages:
- storage/: local SQLite key/value store + sync marker table
- remote/: query model and the SQLite-backed document store
- sync/: SyncCoordinator (local-then-remote writes, replay) and the replay loop
- cache/: BoundedCache (per-repository LRU)
- tasks/: Task model, duplicate policy, TaskRepository, JSON task source
- schedules/: Schedule model, workload math, ScheduleRepository
- llm/: schedule generators (OpenRouter, deterministic fallback)
- cli/: composition root and the `secretary` command
"""

__version__ = "0.1.0"
