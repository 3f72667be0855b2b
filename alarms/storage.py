from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Tuple

from settings import Settings

logger = logging.getLogger(__name__)

ALARM_SETTINGS_NAMESPACE = "alarms"
SLOT_PREFIX = "alarm_"

ALL_DAYS_MASK = 0b1111111
WEEKDAYS_MASK = 0b0111110
WEEKENDS_MASK = 0b1000001


class RepeatMode(IntEnum):
    ONCE = 0
    DAILY = 1
    WEEKDAYS = 2
    WEEKENDS = 3
    CUSTOM = 4


class AlarmStatus(IntEnum):
    ENABLED = 0
    DISABLED = 1
    TRIGGERED = 2
    SNOOZED = 3


FIXED_MODE_MASKS = {
    RepeatMode.DAILY: ALL_DAYS_MASK,
    RepeatMode.WEEKDAYS: WEEKDAYS_MASK,
    RepeatMode.WEEKENDS: WEEKENDS_MASK,
}


@dataclass
class AlarmRecord:
    id: int
    hour: int
    minute: int
    repeat_mode: RepeatMode = RepeatMode.ONCE
    weekdays_mask: int = 0
    status: AlarmStatus = AlarmStatus.ENABLED
    label: str = ""
    sound: str = ""
    snooze_count: int = 0
    max_snooze_count: int = 3
    snooze_minutes: int = 5
    last_triggered_time: int = 0
    next_snooze_time: int = 0

    @property
    def minute_of_day(self) -> int:
        return self.hour * 60 + self.minute

    @property
    def is_active(self) -> bool:
        return self.status in (AlarmStatus.TRIGGERED, AlarmStatus.SNOOZED)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "hour": self.hour,
            "minute": self.minute,
            "repeat": int(self.repeat_mode),
            "weekdays": self.weekdays_mask,
            "status": int(self.status),
            "label": self.label,
            "music": self.sound,
            "snooze_minutes": self.snooze_minutes,
            "max_snooze": self.max_snooze_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AlarmRecord":
        """Rebuild a stored alarm; transient ringing state never survives a restart."""
        if "id" not in data or "hour" not in data or "minute" not in data:
            raise ValueError("Alarm payload missing id/hour/minute fields")
        status = AlarmStatus(int(data.get("status", AlarmStatus.ENABLED)))
        if status in (AlarmStatus.TRIGGERED, AlarmStatus.SNOOZED):
            status = AlarmStatus.ENABLED
        return cls(
            id=int(data["id"]),
            hour=int(data["hour"]),
            minute=int(data["minute"]),
            repeat_mode=RepeatMode(int(data.get("repeat", RepeatMode.ONCE))),
            weekdays_mask=int(data.get("weekdays", 0)) & ALL_DAYS_MASK,
            status=status,
            label=str(data.get("label") or ""),
            sound=str(data.get("music") or ""),
            snooze_minutes=int(data.get("snooze_minutes", 5)),
            max_snooze_count=int(data.get("max_snooze", 3)),
        )


def mask_for_mode(repeat_mode: RepeatMode, current_mask: int = 0) -> int:
    return FIXED_MODE_MASKS.get(repeat_mode, current_mask & ALL_DAYS_MASK)


def load_alarms(settings: Settings) -> Tuple[List[AlarmRecord], int]:
    count = settings.get_int("count", 0)
    logger.info("Loading %s alarms from storage", count)
    alarms: List[AlarmRecord] = []
    for index in range(count):
        raw = settings.get_string(f"{SLOT_PREFIX}{index}")
        if not raw:
            continue
        try:
            alarms.append(AlarmRecord.from_dict(json.loads(raw)))
        except Exception as exc:
            logger.warning("Skipping %s%s due to parse error: %s", SLOT_PREFIX, index, exc)

    next_id = settings.get_int("next_id", 1)
    highest = max((a.id for a in alarms), default=0)
    if next_id <= highest:
        logger.warning("Stored next_id %s is behind alarm id %s, bumping it", next_id, highest)
        next_id = highest + 1
    return alarms, next_id


def save_alarms(settings: Settings, alarms: List[AlarmRecord], next_id: int) -> None:
    for index, alarm in enumerate(alarms):
        settings.set_string(f"{SLOT_PREFIX}{index}", json.dumps(alarm.to_dict(), ensure_ascii=False, separators=(",", ":")))
    # drop every slot past the end, including ones left behind by a stale count
    for key in settings.keys():
        slot = key[len(SLOT_PREFIX):]
        if key.startswith(SLOT_PREFIX) and slot.isdigit() and int(slot) >= len(alarms):
            settings.erase_key(key)
    settings.set_int("count", len(alarms))
    settings.set_int("next_id", next_id)
