# tests/test_bootstrap.py

from __future__ import annotations

import argparse
from types import SimpleNamespace
from typing import Any

import pytest

from secretary_sync.cli.bootstrap import create_initial_state, start_sync_loop
from secretary_sync.cli.main import build_parser, cmd_history, cmd_patterns, cmd_plan, cmd_status
from secretary_sync.core.errors import ScheduleGenerationError
from secretary_sync.llm.fallback import FallbackScheduleGenerator
from secretary_sync.tasks.task_repository import TaskRepository

from .fakes import FakeRemoteStore, RecordingScheduleGenerator


class FailingGenerator:
    def generate(self, tasks: list[Any], target_date: str, context: Any) -> dict[str, Any]:
        raise ScheduleGenerationError("no models left")


def test_create_initial_state_wires_components(settings: SimpleNamespace) -> None:
    remote = FakeRemoteStore()
    state = create_initial_state(settings=settings, remote=remote)

    assert isinstance(state.tasks, TaskRepository)
    assert state.remote is remote
    assert settings.local_db_path.exists()
    # No API key configured.
    assert isinstance(state.generator, FallbackScheduleGenerator)
    assert [c.name for c in state.caches()] == ["tasks", "schedules", "history"]


def test_remote_disabled_starts_offline(settings: SimpleNamespace) -> None:
    settings.remote_enabled = False
    state = create_initial_state(settings=settings)
    assert state.coordinator.is_online() is False


@pytest.mark.asyncio
async def test_close_stops_sync_loop_and_clears_caches(settings: SimpleNamespace) -> None:
    state = create_initial_state(settings=settings, remote=FakeRemoteStore())
    await state.tasks.create({"text": "Buy milk"})
    assert len(state.tasks.cache) == 1

    task = start_sync_loop(state)
    assert start_sync_loop(state) is task

    await state.close()
    assert task.cancelled()
    assert state.sync_task is None
    assert len(state.tasks.cache) == 0


@pytest.mark.asyncio
async def test_plan_saves_generated_schedule(settings: SimpleNamespace, capsys: pytest.CaptureFixture[str]) -> None:
    generator = RecordingScheduleGenerator(
        {"schedule": [{"time": "09:00", "task": "Write report", "duration": "1 hour"}], "summary": "ok"}
    )
    state = create_initial_state(settings=settings, remote=FakeRemoteStore(), generator=generator)
    try:
        await state.tasks.create({"text": "Write report", "section": "today"})

        assert await cmd_plan(state, argparse.Namespace(date="2024-06-02")) == 0

        tasks, target_date, context = generator.calls[0]
        assert target_date == "2024-06-02"
        assert [t.text for t in tasks] == ["Write report"]
        assert context.current_date == "2024-06-02"

        schedule = await state.schedules.load("2024-06-02")
        assert schedule is not None
        assert [i.task for i in schedule.items] == ["Write report"]
        assert '"totalMinutes": 60' in capsys.readouterr().out
    finally:
        await state.close()


@pytest.mark.asyncio
async def test_plan_falls_back_when_generator_fails(settings: SimpleNamespace) -> None:
    state = create_initial_state(settings=settings, remote=FakeRemoteStore(), generator=FailingGenerator())
    try:
        await state.tasks.create({"text": "Write report", "section": "today"})
        await cmd_plan(state, argparse.Namespace(date="2024-06-02"))

        schedule = await state.schedules.load("2024-06-02")
        assert schedule is not None
        assert schedule.extra.get("fallback") is True
        assert schedule.items[0].time == "09:00"
    finally:
        await state.close()


@pytest.mark.asyncio
async def test_status_and_history_commands(settings: SimpleNamespace, capsys: pytest.CaptureFixture[str]) -> None:
    state = create_initial_state(settings=settings, remote=FakeRemoteStore())
    try:
        await state.schedules.save("2024-06-01", {"schedule": [{"task": "Gym"}]})

        assert await cmd_status(state, argparse.Namespace()) == 0
        assert '"pending": 0' in capsys.readouterr().out

        args = build_parser().parse_args(["history", "--start", "2024-06-01", "--end", "2024-06-30"])
        assert args.func is cmd_history
        assert await args.func(state, args) == 0
        assert '"total": 1' in capsys.readouterr().out
    finally:
        await state.close()


def test_parser_defaults() -> None:
    args = build_parser().parse_args(["context", "--date", "2024-06-03"])
    assert (args.date, args.before, args.after) == ("2024-06-03", 2, 3)

    with pytest.raises(SystemExit):
        build_parser().parse_args([])


@pytest.mark.asyncio
async def test_plan_passes_completion_patterns_to_generator(settings: SimpleNamespace) -> None:
    generator = RecordingScheduleGenerator()
    state = create_initial_state(settings=settings, remote=FakeRemoteStore(), generator=generator)
    try:
        await state.schedules.save("2024-06-01", {"schedule": [{"task": "Gym", "time": "07:00", "completed": True}]})

        await cmd_plan(state, argparse.Namespace(date="2024-06-02"))

        _, _, context = generator.calls[0]
        assert context.patterns["sampleDays"] == 1
        assert context.patterns["averageCompletion"] == 100

        args = build_parser().parse_args(["patterns", "--date", "2024-06-01", "--days", "7"])
        assert args.func is cmd_patterns
        assert await args.func(state, args) == 0
    finally:
        await state.close()
