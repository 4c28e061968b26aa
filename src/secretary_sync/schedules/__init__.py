"""
Schedule subsystem.

Components:
- schedule_models.py: Schedule, ScheduleItem, CompletionSnapshot, HistoryRecord
- workload.py: duration parsing, daily capacity, multi-day workload summary
- schedule_repository.py: current + history persistence, completion, rollovers, analytics
"""
