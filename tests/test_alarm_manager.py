import json
import threading

from alarms.manager import INVALID_ALARM_ID, AlarmListener, AlarmManager, format_alarm_time, is_weekday_active
from alarms.storage import AlarmStatus, RepeatMode


def test_add_alarm_returns_increasing_ids(manager):
    first = manager.add_alarm(7, 30)
    second = manager.add_alarm(0, 0)
    third = manager.add_alarm(23, 59, RepeatMode.DAILY)
    assert first < second < third
    assert [a.id for a in manager.get_all_alarms()] == [first, second, third]


def test_add_alarm_rejects_invalid_time(manager):
    assert manager.add_alarm(24, 0) == INVALID_ALARM_ID
    assert manager.add_alarm(7, 60) == INVALID_ALARM_ID
    assert manager.add_alarm(-1, 0) == INVALID_ALARM_ID
    assert manager.add_alarm(7, -5) == INVALID_ALARM_ID
    assert manager.get_all_alarms() == []


def test_invalid_add_does_not_consume_an_id(manager):
    manager.add_alarm(24, 0)
    assert manager.add_alarm(6, 0) == 1


def test_weekday_masks_follow_repeat_mode(manager):
    weekdays = manager.get_alarm(manager.add_alarm(7, 0, RepeatMode.WEEKDAYS))
    weekends = manager.get_alarm(manager.add_alarm(9, 0, RepeatMode.WEEKENDS))
    daily = manager.get_alarm(manager.add_alarm(8, 0, RepeatMode.DAILY))
    custom = manager.get_alarm(manager.add_alarm(8, 0, RepeatMode.CUSTOM, weekdays_mask=0b0001010))

    assert [is_weekday_active(weekdays, d) for d in range(7)] == [False, True, True, True, True, True, False]
    assert [is_weekday_active(weekends, d) for d in range(7)] == [True, False, False, False, False, False, True]
    assert daily.weekdays_mask == 0b1111111
    assert custom.weekdays_mask == 0b0001010


def test_once_alarm_is_eligible_any_day(manager):
    alarm = manager.get_alarm(manager.add_alarm(7, 0, RepeatMode.ONCE))
    assert all(is_weekday_active(alarm, d) for d in range(7))


def test_daily_alarm_end_to_end(manager, clock, listener):
    alarm_id = manager.add_alarm(7, 30, RepeatMode.DAILY, "wake up", "")
    clock.set(7, 29, 59)
    assert manager.check_alarms() == 0

    clock.set(7, 30)
    assert manager.check_alarms() == 1
    assert manager.get_alarm(alarm_id).status == AlarmStatus.TRIGGERED
    assert listener.triggered == [alarm_id]

    clock.advance(seconds=20)
    manager.check_alarms()
    assert listener.triggered == [alarm_id]

    assert manager.stop_alarm(alarm_id)
    assert manager.get_alarm(alarm_id).status == AlarmStatus.ENABLED
    assert listener.stopped == [alarm_id]


def test_stopped_alarm_does_not_retrigger_within_same_minute(manager, clock, listener):
    alarm_id = manager.add_alarm(7, 30, RepeatMode.DAILY)
    clock.set(7, 30, 5)
    manager.check_alarms()
    manager.stop_alarm(alarm_id)

    clock.set(7, 30, 50)
    assert manager.check_alarms() == 0
    assert listener.triggered == [alarm_id]


def test_daily_alarm_fires_again_next_day(manager, clock, listener):
    alarm_id = manager.add_alarm(7, 30, RepeatMode.DAILY)
    clock.set(7, 30)
    manager.check_alarms()
    manager.stop_alarm(alarm_id)

    clock.advance(days=1)
    assert manager.check_alarms() == 1
    assert listener.triggered == [alarm_id, alarm_id]


def test_passed_time_does_not_trigger(manager, clock, listener):
    manager.add_alarm(7, 29, RepeatMode.DAILY)
    clock.set(7, 30)
    assert manager.check_alarms() == 0
    assert listener.triggered == []


def test_weekend_alarm_skips_tuesday(manager, clock):
    alarm_id = manager.add_alarm(7, 30, RepeatMode.WEEKENDS)
    clock.set(7, 30)
    assert manager.check_alarms() == 0
    assert manager.get_alarm(alarm_id).status == AlarmStatus.ENABLED

    clock.advance(days=4)  # Saturday
    assert manager.check_alarms() == 1


def test_disabled_alarm_does_not_trigger(manager, clock):
    alarm_id = manager.add_alarm(7, 30, RepeatMode.DAILY)
    assert manager.enable_alarm(alarm_id, False)
    clock.set(7, 30)
    assert manager.check_alarms() == 0
    assert manager.get_alarm(alarm_id).status == AlarmStatus.DISABLED

    assert manager.enable_alarm(alarm_id)
    assert manager.check_alarms() == 1


def test_once_alarm_stops_to_disabled(manager, clock):
    alarm_id = manager.add_alarm(7, 30)
    clock.set(7, 30)
    manager.check_alarms()
    assert manager.stop_alarm(alarm_id)
    assert manager.get_alarm(alarm_id).status == AlarmStatus.DISABLED


def test_snooze_retriggers_after_interval(manager, clock, listener):
    alarm_id = manager.add_alarm(7, 30, RepeatMode.DAILY)
    clock.set(7, 30)
    manager.check_alarms()

    assert manager.snooze_alarm(alarm_id)
    snoozed = manager.get_alarm(alarm_id)
    assert snoozed.status == AlarmStatus.SNOOZED
    assert snoozed.snooze_count == 1
    assert listener.snoozed == [alarm_id]
    assert manager.get_active_alarms()[0].id == alarm_id

    clock.advance(minutes=4, seconds=59)
    manager.check_alarms()
    assert manager.get_alarm(alarm_id).status == AlarmStatus.SNOOZED

    clock.advance(seconds=1)
    manager.check_alarms()
    alarm = manager.get_alarm(alarm_id)
    assert alarm.status == AlarmStatus.TRIGGERED
    assert alarm.next_snooze_time == 0
    assert listener.triggered == [alarm_id, alarm_id]


def test_snooze_cap_force_stops(manager, clock, listener):
    alarm_id = manager.add_alarm(7, 30, RepeatMode.DAILY)
    clock.set(7, 30)
    manager.check_alarms()

    for _ in range(3):
        assert manager.snooze_alarm(alarm_id)
        clock.advance(minutes=5)
        manager.check_alarms()

    assert manager.get_alarm(alarm_id).status == AlarmStatus.TRIGGERED
    assert manager.snooze_alarm(alarm_id) is False
    alarm = manager.get_alarm(alarm_id)
    assert alarm.status == AlarmStatus.ENABLED
    assert alarm.snooze_count == 0
    assert listener.snoozed == [alarm_id] * 3
    assert listener.stopped == [alarm_id]


def test_snooze_requires_triggered_state(manager):
    alarm_id = manager.add_alarm(7, 30)
    assert manager.snooze_alarm(alarm_id) is False
    assert manager.snooze_alarm(999) is False
    assert manager.stop_alarm(alarm_id) is False
    assert manager.stop_alarm(999) is False


def test_stop_all_active_alarms(manager, clock, listener):
    first = manager.add_alarm(7, 30, RepeatMode.DAILY)
    second = manager.add_alarm(7, 30)
    manager.add_alarm(8, 0)
    clock.set(7, 30)
    manager.check_alarms()
    manager.snooze_alarm(first)

    assert manager.stop_all_active_alarms() == 2
    assert manager.get_active_alarms() == []
    assert sorted(listener.stopped) == [first, second]


def test_snapshots_are_copies(manager):
    alarm_id = manager.add_alarm(7, 30, label="wake up")
    snapshot = manager.get_all_alarms()[0]
    snapshot.label = "changed"
    snapshot.status = AlarmStatus.TRIGGERED
    stored = manager.get_alarm(alarm_id)
    assert stored.label == "wake up"
    assert stored.status == AlarmStatus.ENABLED


def test_remove_alarm(manager):
    alarm_id = manager.add_alarm(7, 30)
    assert manager.remove_alarm(alarm_id)
    assert manager.remove_alarm(alarm_id) is False
    assert manager.get_all_alarms() == []
    assert manager.add_alarm(8, 0) == alarm_id + 1


def test_modify_alarm_rederives_mask(manager):
    alarm_id = manager.add_alarm(7, 30, RepeatMode.DAILY, "old")
    assert manager.modify_alarm(alarm_id, 6, 45, RepeatMode.WEEKENDS, "new", "birdsong")
    alarm = manager.get_alarm(alarm_id)
    assert (alarm.hour, alarm.minute, alarm.label, alarm.sound) == (6, 45, "new", "birdsong")
    assert alarm.weekdays_mask == 0b1000001

    assert manager.modify_alarm(alarm_id, 6, 45, RepeatMode.CUSTOM)
    assert manager.get_alarm(alarm_id).weekdays_mask == 0b1000001
    assert manager.modify_alarm(alarm_id, 6, 45, RepeatMode.CUSTOM, weekdays_mask=0b0000100)
    assert manager.get_alarm(alarm_id).weekdays_mask == 0b0000100


def test_modify_alarm_failures(manager):
    alarm_id = manager.add_alarm(7, 30)
    assert manager.modify_alarm(999, 7, 0) is False
    assert manager.modify_alarm(alarm_id, 25, 0) is False
    assert manager.enable_alarm(999) is False


def test_next_alarm_info(manager, clock):
    assert manager.get_next_alarm_info() == "No active alarms"

    manager.add_alarm(9, 15, RepeatMode.DAILY)
    assert manager.get_next_alarm_info() == "Next alarm: 09:15 (in 2h 15m)"

    manager.add_alarm(7, 30, RepeatMode.DAILY, "wake up")
    assert manager.get_next_alarm_info() == "Next alarm: 07:30 (in 30 min) - wake up"


def test_next_alarm_info_looks_ahead_days(manager, clock):
    manager.add_alarm(8, 0, RepeatMode.WEEKENDS)
    assert manager.get_next_alarm_info() == "Next alarm: 08:00 (in 4 days)"


def test_next_alarm_info_skips_passed_once_alarm(manager, clock):
    manager.add_alarm(6, 0)
    assert manager.get_next_alarm_info() == "No active alarms"


def test_next_alarm_info_tie_keeps_store_order(manager):
    manager.add_alarm(8, 0, label="first")
    manager.add_alarm(8, 0, label="second")
    assert manager.get_next_alarm_info().endswith("- first")


def test_default_snooze_settings_are_clamped(settings, clock):
    manager = AlarmManager(settings, clock=clock, default_snooze_minutes=0, default_max_snooze_count=42)
    assert manager.default_snooze_minutes == 1
    assert manager.default_max_snooze_count == 10
    alarm = manager.get_alarm(manager.add_alarm(7, 0))
    assert (alarm.snooze_minutes, alarm.max_snooze_count) == (1, 10)


def test_failing_listener_does_not_block_others(settings, clock, listener):
    class Broken(AlarmListener):
        def on_alarm_triggered(self, alarm):
            raise RuntimeError("display offline")

    manager = AlarmManager(settings, clock=clock)
    manager.add_listener(Broken())
    manager.add_listener(listener)
    alarm_id = manager.add_alarm(7, 30)
    clock.set(7, 30)
    assert manager.check_alarms() == 1
    assert listener.triggered == [alarm_id]


def test_format_alarm_time(manager):
    alarm = manager.get_alarm(manager.add_alarm(7, 5, RepeatMode.WEEKDAYS))
    assert format_alarm_time(alarm) == "07:05 (weekdays)"


def test_concurrent_adds_while_checking(settings, clock, listener):
    manager = AlarmManager(settings, clock=clock)
    manager.add_listener(listener)
    adders_done = threading.Event()
    errors = []

    def add_many():
        try:
            for _ in range(25):
                manager.add_alarm(7, 0, RepeatMode.DAILY)
        except Exception as exc:
            errors.append(exc)

    def check_loop():
        try:
            while not adders_done.is_set():
                manager.check_alarms()
                for alarm in manager.get_active_alarms():
                    manager.snooze_alarm(alarm.id)
                manager.stop_all_active_alarms()
        except Exception as exc:
            errors.append(exc)

    checker = threading.Thread(target=check_loop)
    adders = [threading.Thread(target=add_many) for _ in range(4)]
    checker.start()
    for t in adders:
        t.start()
    for t in adders:
        t.join()
    adders_done.set()
    checker.join()

    assert errors == []
    ids = [a.id for a in manager.get_all_alarms()]
    assert sorted(ids) == list(range(1, 101))
    assert settings.get_int("count") == 100
    assert settings.get_int("next_id") == 101
    stored = [json.loads(settings.get_string(f"alarm_{i}"))["id"] for i in range(100)]
    assert stored == ids
