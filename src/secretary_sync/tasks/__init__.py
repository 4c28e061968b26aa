"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Section, Priority) and legacy-field normalization
- dedup.py: duplicate matching policy and survivor selection
- task_repository.py: CRUD, pagination, migration and dedup on top of the SyncCoordinator
- task_source.py: JSON file TaskSource
"""
