from __future__ import annotations

import logging
from typing import List

from toolserver.registry import Parameter, ParameterType, ToolRegistry

from .manager import INVALID_ALARM_ID, REPEAT_MODE_NAMES, AlarmManager, format_alarm_time, format_time
from .sounds import format_sound_catalog
from .storage import AlarmRecord, AlarmStatus, RepeatMode

logger = logging.getLogger(__name__)

STATUS_NAMES = {
    AlarmStatus.ENABLED: "enabled",
    AlarmStatus.DISABLED: "disabled",
    AlarmStatus.TRIGGERED: "ringing",
    AlarmStatus.SNOOZED: "snoozed",
}

ALARM_TIME_PARAMETERS = [
    Parameter("hour", ParameterType.INTEGER, minimum=0, maximum=23),
    Parameter("minute", ParameterType.INTEGER, minimum=0, maximum=59),
    Parameter("repeat_mode", ParameterType.INTEGER, 0, minimum=0, maximum=4),
    Parameter("label", ParameterType.STRING, ""),
    Parameter("music_name", ParameterType.STRING, ""),
    Parameter("weekdays_mask", ParameterType.INTEGER, 0, minimum=0, maximum=127),
]

ALARM_TIME_HELP = (
    "  `hour`: Hour of the alarm (0-23)\n"
    "  `minute`: Minute of the alarm (0-59)\n"
    "  `repeat_mode`: Repeat mode (0=once, 1=daily, 2=weekdays, 3=weekends, 4=custom)\n"
    "  `label`: Optional label/description for the alarm\n"
    "  `music_name`: Optional sound to play (leave empty for a random default sound)\n"
    "  `weekdays_mask`: Days for custom mode, bit 0=Sunday ... bit 6=Saturday\n"
)


def describe_alarm(alarm: AlarmRecord) -> str:
    text = f"ID {alarm.id}: {format_alarm_time(alarm)}"
    if alarm.label:
        text += f" - {alarm.label}"
    text += f" [{STATUS_NAMES[alarm.status]}]"
    if alarm.sound:
        text += f" (sound: {alarm.sound})"
    return text


def _repeat_mode(value: int):
    try:
        return RepeatMode(value)
    except ValueError:
        return None


def register_alarm_tools(registry: ToolRegistry, manager: AlarmManager) -> None:
    def add_alarm(args) -> str:
        repeat_mode = _repeat_mode(args["repeat_mode"])
        if repeat_mode is None:
            return f"Unknown repeat mode {args['repeat_mode']}"
        alarm_id = manager.add_alarm(
            args["hour"],
            args["minute"],
            repeat_mode,
            args["label"],
            args["music_name"],
            args["weekdays_mask"],
        )
        if alarm_id == INVALID_ALARM_ID:
            return "Failed to set alarm, please check the time"
        text = f"Alarm {alarm_id} set for {format_time(args['hour'], args['minute'])}"
        if args["label"]:
            text += f" - {args['label']}"
        if args["music_name"]:
            text += f" (sound: {args['music_name']})"
        return text + f" ({REPEAT_MODE_NAMES[repeat_mode]})"

    def list_alarms(args) -> str:
        alarms = manager.get_all_alarms()
        if not alarms:
            return "No alarms set"
        lines: List[str] = ["Alarms:"]
        lines.extend(describe_alarm(a) for a in alarms)
        lines.append("")
        lines.append(manager.get_next_alarm_info())
        return "\n".join(lines)

    def remove_alarm(args) -> str:
        alarm_id = args["alarm_id"]
        if manager.remove_alarm(alarm_id):
            return f"Removed alarm ID {alarm_id}"
        return f"Alarm ID {alarm_id} not found"

    def toggle_alarm(args) -> str:
        alarm_id = args["alarm_id"]
        enabled = args["enabled"]
        if manager.enable_alarm(alarm_id, enabled):
            return f"Alarm ID {alarm_id} {'enabled' if enabled else 'disabled'}"
        return f"Alarm ID {alarm_id} not found"

    def modify_alarm(args) -> str:
        repeat_mode = _repeat_mode(args["repeat_mode"])
        if repeat_mode is None:
            return f"Unknown repeat mode {args['repeat_mode']}"
        mask = args["weekdays_mask"] if repeat_mode == RepeatMode.CUSTOM else None
        alarm_id = args["alarm_id"]
        if manager.modify_alarm(
            alarm_id, args["hour"], args["minute"], repeat_mode, args["label"], args["music_name"], mask
        ):
            return f"Alarm ID {alarm_id} changed to {format_time(args['hour'], args['minute'])}"
        return f"Failed to modify alarm ID {alarm_id}, check the id and time"

    def first_active_id() -> int:
        active = manager.get_active_alarms()
        return active[0].id if active else INVALID_ALARM_ID

    def snooze_alarm(args) -> str:
        alarm_id = args["alarm_id"]
        if alarm_id == -1:
            alarm_id = first_active_id()
            if alarm_id == INVALID_ALARM_ID:
                return "No alarm is ringing"
        alarm = manager.get_alarm(alarm_id)
        if manager.snooze_alarm(alarm_id):
            return f"Alarm snoozed for {alarm.snooze_minutes} minutes"
        logger.info("Snooze refused for alarm %s", alarm_id)
        return "Could not snooze the alarm, it may have reached the snooze limit"

    def stop_alarm(args) -> str:
        alarm_id = args["alarm_id"]
        if alarm_id == -1:
            alarm_id = first_active_id()
            if alarm_id == INVALID_ALARM_ID:
                return "No alarm is ringing"
        if manager.stop_alarm(alarm_id):
            return "Alarm stopped"
        return "No active alarm found"

    registry.add_tool(
        "self.alarm.add",
        "Set a new alarm. When users ask for an alarm, create it with the given parameters.\n"
        "Parameters:\n" + ALARM_TIME_HELP + "Returns:\n  Alarm ID if successful, error message if failed.",
        ALARM_TIME_PARAMETERS,
        add_alarm,
    )
    registry.add_tool(
        "self.alarm.list",
        "List all alarms and show their status, followed by when the next alarm rings.",
        [],
        list_alarms,
    )
    registry.add_tool(
        "self.alarm.remove",
        "Remove/delete an alarm by ID.\nParameters:\n  `alarm_id`: ID of the alarm to remove",
        [Parameter("alarm_id", ParameterType.INTEGER)],
        remove_alarm,
    )
    registry.add_tool(
        "self.alarm.toggle",
        "Enable or disable an alarm by ID.\n"
        "Parameters:\n  `alarm_id`: ID of the alarm\n  `enabled`: True to enable, false to disable",
        [Parameter("alarm_id", ParameterType.INTEGER), Parameter("enabled", ParameterType.BOOLEAN, True)],
        toggle_alarm,
    )
    registry.add_tool(
        "self.alarm.modify",
        "Change the time, repeat mode, label or sound of an existing alarm.\n"
        "Parameters:\n  `alarm_id`: ID of the alarm to change\n" + ALARM_TIME_HELP,
        [Parameter("alarm_id", ParameterType.INTEGER)] + ALARM_TIME_PARAMETERS,
        modify_alarm,
    )
    registry.add_tool(
        "self.alarm.snooze",
        "Snooze the currently ringing alarm.\n"
        "Parameters:\n  `alarm_id`: ID of the alarm to snooze (optional, defaults to the first ringing alarm)",
        [Parameter("alarm_id", ParameterType.INTEGER, -1)],
        snooze_alarm,
    )
    registry.add_tool(
        "self.alarm.stop",
        "Stop the currently ringing alarm.\n"
        "Parameters:\n  `alarm_id`: ID of the alarm to stop (optional, defaults to the first ringing alarm)",
        [Parameter("alarm_id", ParameterType.INTEGER, -1)],
        stop_alarm,
    )
    registry.add_tool(
        "self.alarm.music_list",
        "Show the default alarm sounds that can be used as `music_name` when setting an alarm.",
        [],
        lambda args: format_sound_catalog(),
    )
