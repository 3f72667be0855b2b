"""Alarm subsystem: recurring alarms, snooze/stop lifecycle and alarm tools."""

from .manager import INVALID_ALARM_ID, AlarmListener, AlarmManager
from .storage import AlarmRecord, AlarmStatus, RepeatMode
from .tools import register_alarm_tools
