from __future__ import annotations

import logging
from dataclasses import replace
from threading import Event, Lock, Thread
from typing import List, Optional, Tuple

from settings import Settings
from time_utils import SystemClock, weekday_index

from .storage import AlarmRecord, AlarmStatus, RepeatMode, load_alarms, mask_for_mode, save_alarms

logger = logging.getLogger(__name__)

INVALID_ALARM_ID = -1
MINUTES_PER_DAY = 24 * 60
RETRIGGER_GUARD_SECONDS = 60

REPEAT_MODE_NAMES = {
    RepeatMode.ONCE: "once",
    RepeatMode.DAILY: "daily",
    RepeatMode.WEEKDAYS: "weekdays",
    RepeatMode.WEEKENDS: "weekends",
    RepeatMode.CUSTOM: "custom",
}


class AlarmListener:
    """Receives alarm lifecycle events.

    Hooks run on the thread that caused the transition, after the manager's
    lock is released. Anything slow should be handed to another execution
    context.
    """

    def on_alarm_triggered(self, alarm: AlarmRecord) -> None:
        pass

    def on_alarm_snoozed(self, alarm: AlarmRecord) -> None:
        pass

    def on_alarm_stopped(self, alarm: AlarmRecord) -> None:
        pass


def format_time(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def format_alarm_time(alarm: AlarmRecord) -> str:
    return f"{format_time(alarm.hour, alarm.minute)} ({REPEAT_MODE_NAMES[alarm.repeat_mode]})"


def is_weekday_active(alarm: AlarmRecord, weekday: int) -> bool:
    """weekday: 0=Sunday ... 6=Saturday. One-shot alarms are eligible on any day."""
    if alarm.repeat_mode == RepeatMode.ONCE:
        return True
    return bool(alarm.weekdays_mask & (1 << weekday))


def _valid_time(hour: int, minute: int) -> bool:
    return 0 <= hour <= 23 and 0 <= minute <= 59


class AlarmManager:
    def __init__(
        self,
        settings: Settings,
        clock=None,
        check_interval: float = 1.0,
        default_snooze_minutes: int = 5,
        default_max_snooze_count: int = 3,
    ):
        self.settings = settings
        self.clock = clock or SystemClock()
        self.check_interval = max(0.2, check_interval)
        self.default_snooze_minutes = 5
        self.default_max_snooze_count = 3
        self.set_default_snooze_minutes(default_snooze_minutes)
        self.set_default_max_snooze_count(default_max_snooze_count)

        self._alarms: List[AlarmRecord] = []
        self._next_id = 1
        self._lock = Lock()
        self._save_lock = Lock()
        self._listeners: List[AlarmListener] = []
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    # lifecycle

    def load(self) -> None:
        alarms, next_id = load_alarms(self.settings)
        with self._lock:
            self._alarms = alarms
            self._next_id = next_id
        logger.info("Loaded %s alarms (next id %s)", len(alarms), next_id)

    def start(self) -> None:
        self.load()
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="alarm-scheduler", daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2)
        self._thread = None
        self.stop_all_active_alarms()
        self._persist()

    def add_listener(self, listener: AlarmListener) -> None:
        self._listeners.append(listener)

    def set_default_snooze_minutes(self, minutes: int) -> None:
        self.default_snooze_minutes = max(1, min(60, minutes))

    def set_default_max_snooze_count(self, count: int) -> None:
        self.default_max_snooze_count = max(0, min(10, count))

    # store

    def add_alarm(
        self,
        hour: int,
        minute: int,
        repeat_mode: RepeatMode = RepeatMode.ONCE,
        label: str = "",
        sound: str = "",
        weekdays_mask: int = 0,
    ) -> int:
        if not _valid_time(hour, minute):
            logger.error("Invalid alarm time: %02d:%02d", hour, minute)
            return INVALID_ALARM_ID
        try:
            repeat_mode = RepeatMode(repeat_mode)
        except ValueError:
            logger.error("Invalid repeat mode: %s", repeat_mode)
            return INVALID_ALARM_ID

        with self._lock:
            alarm = AlarmRecord(
                id=self._next_id,
                hour=hour,
                minute=minute,
                repeat_mode=repeat_mode,
                weekdays_mask=mask_for_mode(repeat_mode, weekdays_mask),
                label=label,
                sound=sound,
                snooze_minutes=self.default_snooze_minutes,
                max_snooze_count=self.default_max_snooze_count,
            )
            self._next_id += 1
            self._alarms.append(alarm)
        self._persist()
        logger.info(
            "Added alarm %s: %s, repeat=%s, label=%r, sound=%r",
            alarm.id,
            format_time(hour, minute),
            REPEAT_MODE_NAMES[repeat_mode],
            label,
            sound,
        )
        return alarm.id

    def remove_alarm(self, alarm_id: int) -> bool:
        with self._lock:
            alarm = self._find(alarm_id)
            if alarm is not None:
                self._alarms.remove(alarm)
        if alarm is None:
            logger.warning("Alarm %s not found for removal", alarm_id)
            return False
        self._persist()
        logger.info("Removed alarm %s", alarm_id)
        return True

    def enable_alarm(self, alarm_id: int, enabled: bool = True) -> bool:
        with self._lock:
            alarm = self._find(alarm_id)
            if alarm is not None:
                alarm.status = AlarmStatus.ENABLED if enabled else AlarmStatus.DISABLED
        if alarm is None:
            logger.warning("Alarm %s not found", alarm_id)
            return False
        self._persist()
        logger.info("Alarm %s %s", alarm_id, "enabled" if enabled else "disabled")
        return True

    def modify_alarm(
        self,
        alarm_id: int,
        hour: int,
        minute: int,
        repeat_mode: RepeatMode = RepeatMode.ONCE,
        label: str = "",
        sound: str = "",
        weekdays_mask: Optional[int] = None,
    ) -> bool:
        if not _valid_time(hour, minute):
            logger.error("Invalid alarm time: %02d:%02d", hour, minute)
            return False
        try:
            repeat_mode = RepeatMode(repeat_mode)
        except ValueError:
            logger.error("Invalid repeat mode: %s", repeat_mode)
            return False

        with self._lock:
            alarm = self._find(alarm_id)
            if alarm is not None:
                alarm.hour = hour
                alarm.minute = minute
                alarm.repeat_mode = repeat_mode
                alarm.label = label
                alarm.sound = sound
                # snooze state and last_triggered_time are left alone
                mask = alarm.weekdays_mask if weekdays_mask is None else weekdays_mask
                alarm.weekdays_mask = mask_for_mode(repeat_mode, mask)
        if alarm is None:
            logger.warning("Alarm %s not found for modification", alarm_id)
            return False
        self._persist()
        logger.info("Modified alarm %s: %s", alarm_id, format_time(hour, minute))
        return True

    def get_all_alarms(self) -> List[AlarmRecord]:
        with self._lock:
            return [replace(a) for a in self._alarms]

    def get_active_alarms(self) -> List[AlarmRecord]:
        with self._lock:
            return [replace(a) for a in self._alarms if a.is_active]

    def get_alarm(self, alarm_id: int) -> Optional[AlarmRecord]:
        with self._lock:
            alarm = self._find(alarm_id)
            return replace(alarm) if alarm is not None else None

    def get_next_alarm_info(self) -> str:
        now = self.clock.now()
        current_minute = now.hour * 60 + now.minute
        today = weekday_index(now)

        best: Optional[AlarmRecord] = None
        best_delta = MINUTES_PER_DAY * 7
        with self._lock:
            for alarm in self._alarms:
                if alarm.status != AlarmStatus.ENABLED:
                    continue
                for day_offset in range(7):
                    if day_offset == 0 and alarm.minute_of_day <= current_minute:
                        continue
                    if alarm.repeat_mode == RepeatMode.ONCE and day_offset > 0:
                        continue
                    if not is_weekday_active(alarm, (today + day_offset) % 7):
                        continue
                    delta = day_offset * MINUTES_PER_DAY + alarm.minute_of_day - current_minute
                    if delta < best_delta:
                        best_delta = delta
                        best = replace(alarm)
                    break

        if best is None:
            return "No active alarms"

        text = f"Next alarm: {format_time(best.hour, best.minute)}"
        if best_delta < MINUTES_PER_DAY:
            hours, minutes = divmod(best_delta, 60)
            text += f" (in {hours}h {minutes}m)" if hours else f" (in {minutes} min)"
        else:
            text += f" (in {best_delta // MINUTES_PER_DAY} days)"
        if best.label:
            text += f" - {best.label}"
        return text

    # scheduler

    def check_alarms(self) -> int:
        """Evaluate every alarm against the current minute; returns how many fired."""
        now = self.clock.now()
        now_ts = int(now.timestamp())
        current_minute = now.hour * 60 + now.minute
        today = weekday_index(now)

        events: List[Tuple[str, AlarmRecord]] = []
        with self._lock:
            for alarm in self._alarms:
                if alarm.status == AlarmStatus.SNOOZED and now_ts >= alarm.next_snooze_time:
                    alarm.status = AlarmStatus.TRIGGERED
                    alarm.next_snooze_time = 0
                    logger.info("Snooze ended for alarm %s, triggering again", alarm.id)
                    events.append(("on_alarm_triggered", replace(alarm)))
                    continue

                if alarm.status != AlarmStatus.ENABLED:
                    continue
                if alarm.minute_of_day != current_minute:
                    continue
                if not is_weekday_active(alarm, today):
                    continue
                if alarm.last_triggered_time > 0 and now_ts - alarm.last_triggered_time < RETRIGGER_GUARD_SECONDS:
                    continue

                alarm.status = AlarmStatus.TRIGGERED
                alarm.last_triggered_time = now_ts
                alarm.snooze_count = 0
                logger.info(
                    "Triggering alarm %s: %s - %s",
                    alarm.id,
                    format_time(alarm.hour, alarm.minute),
                    alarm.label,
                )
                events.append(("on_alarm_triggered", replace(alarm)))

        self._notify(events)
        return len(events)

    def snooze_alarm(self, alarm_id: int) -> bool:
        now_ts = int(self.clock.now().timestamp())
        with self._lock:
            alarm = self._find(alarm_id)
            if alarm is None or alarm.status != AlarmStatus.TRIGGERED:
                return False
            if alarm.snooze_count < alarm.max_snooze_count:
                alarm.snooze_count += 1
                alarm.status = AlarmStatus.SNOOZED
                alarm.next_snooze_time = now_ts + alarm.snooze_minutes * 60
                logger.info(
                    "Snoozed alarm %s for %s minutes (count: %s/%s)",
                    alarm_id,
                    alarm.snooze_minutes,
                    alarm.snooze_count,
                    alarm.max_snooze_count,
                )
                snoozed = replace(alarm)
            else:
                logger.info("Alarm %s exceeded max snooze count, stopping", alarm_id)
                snoozed = None
                stopped = self._stop_locked(alarm)

        if snoozed is not None:
            self._notify([("on_alarm_snoozed", snoozed)])
            return True
        self._persist()
        self._notify([("on_alarm_stopped", stopped)])
        return False

    def stop_alarm(self, alarm_id: int) -> bool:
        with self._lock:
            alarm = self._find(alarm_id)
            if alarm is None or not alarm.is_active:
                return False
            stopped = self._stop_locked(alarm)
        logger.info("Stopped alarm %s", alarm_id)
        self._persist()
        self._notify([("on_alarm_stopped", stopped)])
        return True

    def stop_all_active_alarms(self) -> int:
        with self._lock:
            stopped = [self._stop_locked(a) for a in self._alarms if a.is_active]
        if stopped:
            logger.info("Stopped %s active alarms", len(stopped))
            self._persist()
            self._notify([("on_alarm_stopped", a) for a in stopped])
        return len(stopped)

    # internals

    def _find(self, alarm_id: int) -> Optional[AlarmRecord]:
        for alarm in self._alarms:
            if alarm.id == alarm_id:
                return alarm
        return None

    def _stop_locked(self, alarm: AlarmRecord) -> AlarmRecord:
        alarm.status = AlarmStatus.DISABLED if alarm.repeat_mode == RepeatMode.ONCE else AlarmStatus.ENABLED
        alarm.snooze_count = 0
        alarm.next_snooze_time = 0
        return replace(alarm)

    def _persist(self) -> None:
        # snapshot under the state lock, write outside it; _save_lock keeps writes ordered
        with self._save_lock:
            with self._lock:
                alarms = [replace(a) for a in self._alarms]
                next_id = self._next_id
            try:
                save_alarms(self.settings, alarms, next_id)
            except OSError as exc:
                logger.error("Failed to save alarms: %s", exc)

    def _notify(self, events: List[Tuple[str, AlarmRecord]]) -> None:
        for hook, alarm in events:
            for listener in list(self._listeners):
                try:
                    getattr(listener, hook)(alarm)
                except Exception:  # pragma: no cover - callback safety
                    logger.error("%s listener failed for alarm %s", hook, alarm.id, exc_info=True)

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.check_alarms()
            except Exception:  # pragma: no cover - keep the tick alive
                logger.error("Alarm check failed", exc_info=True)
            self._stop_event.wait(self.check_interval)
