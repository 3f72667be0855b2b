from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from alarms.manager import AlarmListener, AlarmManager
from settings import Settings
from toolserver import McpServer, SerialExecutor, ToolRegistry


class ManualClock:
    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def set(self, hour: int, minute: int, second: int = 0) -> None:
        self.current = self.current.replace(hour=hour, minute=minute, second=second)

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class RecordingListener(AlarmListener):
    def __init__(self) -> None:
        self.triggered: List[int] = []
        self.snoozed: List[int] = []
        self.stopped: List[int] = []

    def on_alarm_triggered(self, alarm) -> None:
        self.triggered.append(alarm.id)

    def on_alarm_snoozed(self, alarm) -> None:
        self.snoozed.append(alarm.id)

    def on_alarm_stopped(self, alarm) -> None:
        self.stopped.append(alarm.id)


class Outbox(list):
    """Collects serialized replies the server hands to its sender."""

    def __call__(self, message: str) -> None:
        self.append(message)

    def replies(self) -> List[dict]:
        return [json.loads(m) for m in self]

    def last(self) -> dict:
        return json.loads(self[-1])


def tuesday(hour: int = 7, minute: int = 0) -> datetime:
    # 2025-01-07 is a Tuesday
    return datetime(2025, 1, 7, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(tuesday())


@pytest.fixture
def settings() -> Settings:
    return Settings("alarms")


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def manager(settings, clock, listener) -> AlarmManager:
    manager = AlarmManager(settings, clock=clock)
    manager.add_listener(listener)
    return manager


@pytest.fixture
def executor():
    executor = SerialExecutor(name="test-executor")
    executor.start()
    yield executor
    executor.shutdown()


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()


@pytest.fixture
def server(registry, executor, outbox) -> McpServer:
    return McpServer(registry, executor, outbox, server_name="test-board", server_version="1.2.3")
